"""
Backend package for the Park Himmelrych website.

This package provides a FastAPI application serving the public site, the
admin panel and a small JSON API on top of Firebase (Firestore, Cloud
Storage and Firebase Auth), with in-memory stand-ins for local runs and tests.
"""

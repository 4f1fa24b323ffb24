"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

import firebase_admin
from fastapi import Depends, HTTPException, Request
from firebase_admin import credentials, firestore, storage as firebase_storage

from shared.types import User
from site_backend.auth import AuthClient, FirebaseAuthClient, InMemoryAuthClient, user_from_claims
from site_backend.config import Settings, get_settings
from site_backend.content import ContentService
from site_backend.db import ContentDb, FirestoreContentDb, InMemoryContentDb
from site_backend.rate_limit import (
    InMemoryRateLimitStore,
    LoginRateLimiter,
    RedisRateLimitStore,
)
from site_backend.storage import FirebaseStorageClient, InMemoryStorageClient, StorageClient

logger = logging.getLogger(__name__)

_db_client: ContentDb | None = None
_storage_client: StorageClient | None = None
_auth_client: AuthClient | None = None
_rate_limiter: LoginRateLimiter | None = None


def _use_in_memory(settings: Settings) -> bool:
    return settings.use_in_memory_backends or not settings.firebase_configured


def get_firebase_app(settings: Settings) -> firebase_admin.App:
    """Initialise the default Firebase app once and return it."""
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass
    if settings.google_application_credentials:
        cred = credentials.Certificate(settings.google_application_credentials)
    else:
        cred = credentials.ApplicationDefault()
    logger.info("Initialising Firebase app for %s", settings.firebase_project_id)
    return firebase_admin.initialize_app(
        cred,
        {
            "projectId": settings.firebase_project_id,
            "storageBucket": settings.firebase_storage_bucket,
        },
    )


def get_db_client() -> ContentDb:
    """
    Return a singleton document store so in-memory state persists across requests.
    """
    global _db_client
    if _db_client:
        return _db_client

    settings = get_settings()
    if _use_in_memory(settings):
        _db_client = InMemoryContentDb()
    else:
        app = get_firebase_app(settings)
        _db_client = FirestoreContentDb(firestore.client(app))
    return _db_client


def get_storage_client() -> StorageClient:
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if _use_in_memory(settings):
        _storage_client = InMemoryStorageClient()
    else:
        app = get_firebase_app(settings)
        _storage_client = FirebaseStorageClient(firebase_storage.bucket(app=app))
    return _storage_client


def get_auth_client() -> AuthClient:
    global _auth_client
    if _auth_client:
        return _auth_client

    settings = get_settings()
    if _use_in_memory(settings):
        _auth_client = InMemoryAuthClient()
    else:
        _auth_client = FirebaseAuthClient(
            api_key=settings.firebase_api_key, app=get_firebase_app(settings)
        )
    return _auth_client


def get_rate_limiter() -> LoginRateLimiter:
    global _rate_limiter
    if _rate_limiter:
        return _rate_limiter

    settings = get_settings()
    if settings.redis_url:
        store = RedisRateLimitStore(
            url=settings.redis_url, key_prefix=settings.rate_limit_key_prefix
        )
    else:
        store = InMemoryRateLimitStore()
    _rate_limiter = LoginRateLimiter(
        store,
        base_delay=settings.login_base_delay_seconds,
        max_attempts=settings.login_max_attempts,
        reset_after=settings.login_reset_after_seconds,
    )
    return _rate_limiter


def get_content_service(
    db: ContentDb = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
) -> ContentService:
    settings = get_settings()
    return ContentService(
        db,
        storage,
        max_image_size=settings.max_image_size_bytes,
        max_document_size=settings.max_document_size_bytes,
    )


def session_max_age() -> timedelta:
    return timedelta(days=get_settings().session_max_age_days)


def client_key(request: Request) -> str:
    """
    Identifies the client for login rate limiting. Behind a trusted proxy the
    address has already been rewritten by ``ProxyHeadersMiddleware``.
    """
    return request.client.host if request.client else "unknown"


def get_current_user(
    request: Request,
    auth: AuthClient = Depends(get_auth_client),
    db: ContentDb = Depends(get_db_client),
) -> Optional[User]:
    """
    Resolve the signed-in user from the session cookie, or from a Firebase
    ID token sent as ``Authorization: Bearer <token>``.
    """
    settings = get_settings()
    claims = None
    session_cookie = request.cookies.get(settings.session_cookie_name)
    if session_cookie:
        claims = auth.verify_session_cookie(session_cookie)
    if claims is None:
        header = request.headers.get("authorization", "")
        scheme, _, token = header.partition(" ")
        if scheme.lower() == "bearer" and token:
            claims = auth.verify_id_token(token.strip())
    if claims is None:
        return None
    return user_from_claims(claims, db, settings.require_admin_flag)


def require_admin(user: Optional[User] = Depends(get_current_user)) -> User:
    if user is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


def reset_dependencies() -> None:
    """Drop cached clients (useful in tests)."""
    global _db_client, _storage_client, _auth_client, _rate_limiter
    _db_client = None
    _storage_client = None
    _auth_client = None
    _rate_limiter = None

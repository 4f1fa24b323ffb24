"""
Storage abstraction for Cloud Storage for Firebase and in-memory testing.

Objects are addressed by their path inside the bucket. Public pages link to
Firebase-style download URLs (``.../o/<encoded path>?alt=media&token=...``),
which is also what gets stored on content records.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Optional, Protocol
from urllib.parse import quote, unquote, urlparse

from google.api_core import exceptions as google_exceptions

DOWNLOAD_TOKEN_METADATA_KEY = "firebaseStorageDownloadTokens"
FIREBASE_STORAGE_HOST = "https://firebasestorage.googleapis.com"


class StorageClient(Protocol):
    """Defines the operations the site needs from object storage."""

    def upload_bytes(self, path: str, data: bytes, content_type: str) -> str:
        """Stores ``data`` at ``path`` and returns its download URL."""
        ...

    def get_download_url(self, path: str) -> Optional[str]:
        """Returns the download URL of ``path``, or None if it does not exist."""
        ...

    def delete(self, path: str) -> None:
        """Deletes ``path``; raises FileNotFoundError if it does not exist."""
        ...


def path_from_url(url: str) -> str:
    """
    Resolves a stored reference to an object path.

    Accepts Firebase download URLs, ``gs://bucket/path`` URLs and bare paths.
    """
    if url.startswith("gs://"):
        _, _, path = url[len("gs://") :].partition("/")
        return path
    parsed = urlparse(url)
    if not parsed.scheme:
        return url
    marker = "/o/"
    if marker not in parsed.path:
        raise ValueError(f"Not a storage download URL: {url}")
    return unquote(parsed.path.split(marker, 1)[1])


@dataclass
class StoredObject:
    data: bytes
    content_type: str
    token: str


@dataclass
class InMemoryStorageClient:
    """Test double for storage interactions."""

    base_url: str = "https://example.test/storage/v0/b/test-bucket"
    stored_objects: dict = field(default_factory=dict)

    def _url(self, path: str, token: str) -> str:
        return f"{self.base_url}/o/{quote(path, safe='')}?alt=media&token={token}"

    def upload_bytes(self, path: str, data: bytes, content_type: str) -> str:
        token = uuid.uuid4().hex
        self.stored_objects[path] = StoredObject(
            data=bytes(data), content_type=content_type, token=token
        )
        return self._url(path, token)

    def get_download_url(self, path: str) -> Optional[str]:
        stored = self.stored_objects.get(path)
        if stored is None:
            return None
        return self._url(path, stored.token)

    def delete(self, path: str) -> None:
        if path not in self.stored_objects:
            raise FileNotFoundError(path)
        del self.stored_objects[path]

    def get_bytes(self, path: str) -> bytes:
        stored = self.stored_objects.get(path)
        if stored is None:
            raise FileNotFoundError(path)
        return stored.data

    def reset(self) -> None:
        self.stored_objects.clear()


class FirebaseStorageClient:
    """
    Cloud Storage for Firebase client. Takes a ``google.cloud.storage.Bucket``,
    usually ``firebase_admin.storage.bucket()``.
    """

    def __init__(self, bucket):
        self.bucket = bucket

    def _url(self, path: str, token: str) -> str:
        return (
            f"{FIREBASE_STORAGE_HOST}/v0/b/{self.bucket.name}/o/"
            f"{quote(path, safe='')}?alt=media&token={token}"
        )

    def upload_bytes(self, path: str, data: bytes, content_type: str) -> str:
        token = uuid.uuid4().hex
        blob = self.bucket.blob(path)
        # The token makes the object readable through the Firebase download
        # endpoint, the same way the client SDKs' getDownloadURL does.
        blob.metadata = {DOWNLOAD_TOKEN_METADATA_KEY: token}
        blob.upload_from_string(data, content_type=content_type)
        return self._url(path, token)

    def get_download_url(self, path: str) -> Optional[str]:
        blob = self.bucket.get_blob(path)
        if blob is None:
            return None
        tokens = (blob.metadata or {}).get(DOWNLOAD_TOKEN_METADATA_KEY)
        if tokens:
            token = tokens.split(",")[0]
        else:
            token = uuid.uuid4().hex
            blob.metadata = {**(blob.metadata or {}), DOWNLOAD_TOKEN_METADATA_KEY: token}
            blob.patch()
        return self._url(path, token)

    def delete(self, path: str) -> None:
        try:
            self.bucket.blob(path).delete()
        except google_exceptions.NotFound as e:
            raise FileNotFoundError(path) from e

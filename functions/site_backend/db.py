"""
Document store abstraction for Firestore and an in-memory test implementation.

Documents are plain dicts with camelCase keys, as they are stored in
Firestore. Returned documents carry their document id under ``"id"``.
"""

from __future__ import annotations

import copy
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional, Protocol

from google.api_core import exceptions as google_exceptions
from google.cloud.firestore_v1 import SERVER_TIMESTAMP
from google.cloud.firestore_v1.base_query import FieldFilter

from shared.firebase_constants import CREATED_AT_FIELD, UPDATED_AT_FIELD

QueryOperator = Literal["==", "array_contains"]


class DocumentNotFoundError(Exception):
    """Raised when updating a document that does not exist."""

    def __init__(self, collection: str, doc_id: str):
        super().__init__(f"{collection}/{doc_id} not found")
        self.collection = collection
        self.doc_id = doc_id


class ContentDb(Protocol):
    """Interface for document access."""

    def list_documents(self, collection: str) -> list[dict]:
        ...

    def get_document(self, collection: str, doc_id: str) -> Optional[dict]:
        ...

    def query_documents(
        self,
        collection: str,
        field: str,
        op: QueryOperator,
        value: Any,
        limit: int | None = None,
    ) -> list[dict]:
        ...

    def add_document(self, collection: str, data: dict) -> str:
        ...

    def set_document(
        self, collection: str, doc_id: str, data: dict, merge: bool = False
    ) -> None:
        ...

    def update_document(self, collection: str, doc_id: str, data: dict) -> None:
        ...

    def delete_document(self, collection: str, doc_id: str) -> None:
        ...


def _with_id(doc_id: str, data: dict) -> dict:
    document = dict(data)
    document["id"] = doc_id
    return document


def _strip_id(data: dict) -> dict:
    return {key: value for key, value in data.items() if key != "id"}


class InMemoryContentDb:
    """Simple in-memory document store for development and tests."""

    def __init__(self):
        self.collections: Dict[str, Dict[str, dict]] = {}

    def _collection(self, collection: str) -> Dict[str, dict]:
        return self.collections.setdefault(collection, {})

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    def list_documents(self, collection: str) -> list[dict]:
        return [
            _with_id(doc_id, copy.deepcopy(data))
            for doc_id, data in self._collection(collection).items()
        ]

    def get_document(self, collection: str, doc_id: str) -> Optional[dict]:
        data = self._collection(collection).get(doc_id)
        if data is None:
            return None
        return _with_id(doc_id, copy.deepcopy(data))

    def query_documents(
        self,
        collection: str,
        field: str,
        op: QueryOperator,
        value: Any,
        limit: int | None = None,
    ) -> list[dict]:
        results = []
        for document in self.list_documents(collection):
            current = document.get(field)
            if op == "==":
                matched = current == value
            elif op == "array_contains":
                matched = isinstance(current, list) and value in current
            else:
                raise ValueError(f"Unsupported query operator: {op}")
            if matched:
                results.append(document)
            if limit is not None and len(results) >= limit:
                break
        return results

    def add_document(self, collection: str, data: dict) -> str:
        doc_id = uuid.uuid4().hex
        now = self._now()
        stored = copy.deepcopy(_strip_id(data))
        stored[CREATED_AT_FIELD] = now
        stored[UPDATED_AT_FIELD] = now
        self._collection(collection)[doc_id] = stored
        return doc_id

    def set_document(
        self, collection: str, doc_id: str, data: dict, merge: bool = False
    ) -> None:
        documents = self._collection(collection)
        stored = copy.deepcopy(_strip_id(data))
        if merge and doc_id in documents:
            documents[doc_id].update(stored)
        else:
            stored.setdefault(CREATED_AT_FIELD, self._now())
            documents[doc_id] = stored
        documents[doc_id][UPDATED_AT_FIELD] = self._now()

    def update_document(self, collection: str, doc_id: str, data: dict) -> None:
        documents = self._collection(collection)
        if doc_id not in documents:
            raise DocumentNotFoundError(collection, doc_id)
        documents[doc_id].update(copy.deepcopy(_strip_id(data)))
        documents[doc_id][UPDATED_AT_FIELD] = self._now()

    def delete_document(self, collection: str, doc_id: str) -> None:
        self._collection(collection).pop(doc_id, None)

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.collections.clear()


class FirestoreContentDb:
    """
    Cloud Firestore implementation. Takes a ``google.cloud.firestore.Client``,
    usually ``firebase_admin.firestore.client()``.
    """

    def __init__(self, client):
        self.client = client

    @staticmethod
    def _snapshot_to_dict(snapshot) -> dict:
        return _with_id(snapshot.id, snapshot.to_dict() or {})

    def list_documents(self, collection: str) -> list[dict]:
        return [
            self._snapshot_to_dict(snapshot)
            for snapshot in self.client.collection(collection).stream()
        ]

    def get_document(self, collection: str, doc_id: str) -> Optional[dict]:
        snapshot = self.client.collection(collection).document(doc_id).get()
        if not snapshot.exists:
            return None
        return self._snapshot_to_dict(snapshot)

    def query_documents(
        self,
        collection: str,
        field: str,
        op: QueryOperator,
        value: Any,
        limit: int | None = None,
    ) -> list[dict]:
        query = self.client.collection(collection).where(
            filter=FieldFilter(field, op, value)
        )
        if limit is not None:
            query = query.limit(limit)
        return [self._snapshot_to_dict(snapshot) for snapshot in query.stream()]

    def add_document(self, collection: str, data: dict) -> str:
        payload = _strip_id(data)
        payload[CREATED_AT_FIELD] = SERVER_TIMESTAMP
        payload[UPDATED_AT_FIELD] = SERVER_TIMESTAMP
        _, doc_ref = self.client.collection(collection).add(payload)
        return doc_ref.id

    def set_document(
        self, collection: str, doc_id: str, data: dict, merge: bool = False
    ) -> None:
        payload = _strip_id(data)
        payload[UPDATED_AT_FIELD] = SERVER_TIMESTAMP
        if not merge:
            payload.setdefault(CREATED_AT_FIELD, SERVER_TIMESTAMP)
        self.client.collection(collection).document(doc_id).set(
            payload, merge=merge
        )

    def update_document(self, collection: str, doc_id: str, data: dict) -> None:
        payload = _strip_id(data)
        payload[UPDATED_AT_FIELD] = SERVER_TIMESTAMP
        try:
            self.client.collection(collection).document(doc_id).update(payload)
        except google_exceptions.NotFound as e:
            raise DocumentNotFoundError(collection, doc_id) from e

    def delete_document(self, collection: str, doc_id: str) -> None:
        self.client.collection(collection).document(doc_id).delete()

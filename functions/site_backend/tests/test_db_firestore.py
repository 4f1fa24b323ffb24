import unittest
from unittest.mock import MagicMock

from google.api_core import exceptions as google_exceptions
from google.cloud.firestore_v1 import SERVER_TIMESTAMP

from site_backend.db import DocumentNotFoundError, FirestoreContentDb, InMemoryContentDb


def snapshot(doc_id, data, exists=True):
    mock = MagicMock()
    mock.id = doc_id
    mock.exists = exists
    mock.to_dict.return_value = data
    return mock


class FirestoreContentDbTests(unittest.TestCase):
    """
    Checks the calls made against a mocked ``google.cloud.firestore.Client``.
    """

    def setUp(self):
        self.client = MagicMock()
        self.collection = self.client.collection.return_value
        self.document = self.collection.document.return_value
        self.db = FirestoreContentDb(self.client)

    def test_list_documents_adds_ids(self):
        self.collection.stream.return_value = [snapshot("a", {"title": "A"})]

        self.assertEqual(
            self.db.list_documents("exhibitions"), [{"title": "A", "id": "a"}]
        )
        self.client.collection.assert_called_with("exhibitions")

    def test_get_missing_document(self):
        self.document.get.return_value = snapshot("x", None, exists=False)
        self.assertIsNone(self.db.get_document("artists", "x"))

    def test_query_documents(self):
        query = self.collection.where.return_value
        query.limit.return_value.stream.return_value = [snapshot("u1", {"isAdmin": True})]

        results = self.db.query_documents("users", "isAdmin", "==", True, limit=1)

        self.assertEqual(results, [{"isAdmin": True, "id": "u1"}])
        field_filter = self.collection.where.call_args.kwargs["filter"]
        self.assertEqual(field_filter.field_path, "isAdmin")
        self.assertEqual(field_filter.op_string, "==")
        self.assertEqual(field_filter.value, True)
        query.limit.assert_called_once_with(1)

    def test_add_document_stamps_timestamps(self):
        self.collection.add.return_value = (None, MagicMock(id="new-id"))

        doc_id = self.db.add_document("artists", {"id": "ignored", "name": "Anna"})

        self.assertEqual(doc_id, "new-id")
        self.collection.add.assert_called_once_with(
            {"name": "Anna", "createdAt": SERVER_TIMESTAMP, "updatedAt": SERVER_TIMESTAMP}
        )

    def test_set_document_merge(self):
        self.db.set_document("mapContent", "current", {"imageUrl": "u"}, merge=True)
        self.document.set.assert_called_once_with(
            {"imageUrl": "u", "updatedAt": SERVER_TIMESTAMP}, merge=True
        )

    def test_update_missing_document(self):
        self.document.update.side_effect = google_exceptions.NotFound("gone")
        with self.assertRaises(DocumentNotFoundError):
            self.db.update_document("exhibitions", "gone", {"title": "x"})

    def test_delete_document(self):
        self.db.delete_document("artLocations", "loc")
        self.collection.document.assert_called_with("loc")
        self.document.delete.assert_called_once_with()


class InMemoryContentDbTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryContentDb()

    def test_documents_are_copies(self):
        doc_id = self.db.add_document("artists", {"portfolio": []})
        document = self.db.get_document("artists", doc_id)
        document["portfolio"].append("changed")

        self.assertEqual(self.db.get_document("artists", doc_id)["portfolio"], [])
        self.assertIn("createdAt", document)

    def test_array_contains_query(self):
        self.db.add_document("exhibitions", {"artistIds": ["a", "b"]})
        self.db.add_document("exhibitions", {"artistIds": ["c"]})

        self.assertEqual(
            len(self.db.query_documents("exhibitions", "artistIds", "array_contains", "b")),
            1,
        )

    def test_update_missing(self):
        with self.assertRaises(DocumentNotFoundError):
            self.db.update_document("exhibitions", "missing", {})


if __name__ == "__main__":
    unittest.main()

import unittest
from unittest.mock import MagicMock

from google.api_core import exceptions as google_exceptions

from site_backend.storage import (
    DOWNLOAD_TOKEN_METADATA_KEY,
    FirebaseStorageClient,
    InMemoryStorageClient,
    path_from_url,
)


class PathFromUrlTests(unittest.TestCase):
    def test_firebase_download_url(self):
        url = (
            "https://firebasestorage.googleapis.com/v0/b/park.appspot.com/o/"
            "exhibitions%2F1700-bild.png?alt=media&token=abc"
        )
        self.assertEqual(path_from_url(url), "exhibitions/1700-bild.png")

    def test_gs_url_and_bare_path(self):
        self.assertEqual(path_from_url("gs://bucket/map/current.jpg"), "map/current.jpg")
        self.assertEqual(path_from_url("artists/a.png"), "artists/a.png")

    def test_foreign_url(self):
        with self.assertRaises(ValueError):
            path_from_url("https://images.unsplash.com/photo-1")


class FirebaseStorageClientTests(unittest.TestCase):
    def setUp(self):
        self.bucket = MagicMock()
        self.bucket.name = "park.appspot.com"
        self.client = FirebaseStorageClient(self.bucket)

    def test_upload_sets_download_token(self):
        blob = self.bucket.blob.return_value

        url = self.client.upload_bytes("map/current.jpg", b"data", "image/jpeg")

        self.bucket.blob.assert_called_once_with("map/current.jpg")
        blob.upload_from_string.assert_called_once_with(b"data", content_type="image/jpeg")
        token = blob.metadata[DOWNLOAD_TOKEN_METADATA_KEY]
        self.assertEqual(
            url,
            "https://firebasestorage.googleapis.com/v0/b/park.appspot.com/o/"
            f"map%2Fcurrent.jpg?alt=media&token={token}",
        )

    def test_get_download_url(self):
        self.bucket.get_blob.return_value = None
        self.assertIsNone(self.client.get_download_url("documents/x.pdf"))

        blob = MagicMock(metadata={DOWNLOAD_TOKEN_METADATA_KEY: "t1,t2"})
        self.bucket.get_blob.return_value = blob
        self.assertTrue(self.client.get_download_url("documents/x.pdf").endswith("token=t1"))

    def test_get_download_url_adds_missing_token(self):
        blob = MagicMock(metadata=None)
        self.bucket.get_blob.return_value = blob

        url = self.client.get_download_url("documents/x.pdf")

        blob.patch.assert_called_once_with()
        self.assertIn(blob.metadata[DOWNLOAD_TOKEN_METADATA_KEY], url)

    def test_delete_missing(self):
        self.bucket.blob.return_value.delete.side_effect = google_exceptions.NotFound(
            "gone"
        )
        with self.assertRaises(FileNotFoundError):
            self.client.delete("artists/gone.png")


class InMemoryStorageClientTests(unittest.TestCase):
    def test_upload_and_delete(self):
        storage = InMemoryStorageClient()
        url = storage.upload_bytes("artists/a.png", b"x", "image/png")

        self.assertEqual(path_from_url(url), "artists/a.png")
        self.assertEqual(storage.get_download_url("artists/a.png"), url)
        self.assertEqual(storage.get_bytes("artists/a.png"), b"x")

        storage.delete("artists/a.png")
        with self.assertRaises(FileNotFoundError):
            storage.delete("artists/a.png")


if __name__ == "__main__":
    unittest.main()

import unittest

from shared.types import (
    ArtLocation,
    Artist,
    Coordinates,
    Exhibition,
    Milestone,
    PortfolioItem,
    VisitorInfo,
)
from site_backend.content import (
    ContentNotFoundError,
    ContentService,
    ContentValidationError,
    FileUpload,
    normalize_milestone_year,
    sanitize_filename,
)
from site_backend.db import InMemoryContentDb
from site_backend.storage import InMemoryStorageClient

PNG = FileUpload(filename="bild.png", content_type="image/png", data=b"png-bytes")


def make_exhibition(**overrides) -> Exhibition:
    exhibition = Exhibition(
        title="Licht",
        description="Lang",
        short_description="Kurz",
        main_image="https://example.test/main.jpg",
        start_date="2024-05-01",
        end_date="2024-06-01",
        visitor_info=VisitorInfo(hours="10-18", ticket_info="Gratis", location="Park"),
    )
    for key, value in overrides.items():
        setattr(exhibition, key, value)
    return exhibition


class ContentServiceTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryContentDb()
        self.storage = InMemoryStorageClient()
        self.content = ContentService(self.db, self.storage, clock=lambda: 1700000000.0)

    def test_upload_image_path(self):
        url = self.content.upload_image(
            FileUpload("Mein Bild (1).png", "image/png", b"x"), "exhibitions"
        )
        self.assertIn("exhibitions/1700000000000-Mein-Bild-1-.png", self.storage.stored_objects)
        self.assertTrue(url.startswith(self.storage.base_url))

    def test_upload_image_validation(self):
        with self.assertRaisesRegex(ContentValidationError, "must be an image"):
            self.content.upload_image(
                FileUpload("a.pdf", "application/pdf", b"x"), "artists"
            )
        with self.assertRaisesRegex(ContentValidationError, "less than 5MB"):
            self.content.upload_image(
                FileUpload("a.png", "image/png", b"0" * (5 * 1024 * 1024 + 1)),
                "artists",
            )
        with self.assertRaises(ContentValidationError):
            self.content.upload_image(PNG, "elsewhere")

    def test_delete_image_ignores_missing_objects(self):
        self.content.delete_image("https://example.test/storage/v0/b/x/o/gone.png")
        self.content.delete_image("not a url at all://")
        self.content.delete_image("")

    def test_exhibitions_sorted_by_start_date_descending(self):
        self.content.create_exhibition(make_exhibition(title="A", start_date="2023-01-01"))
        self.content.create_exhibition(make_exhibition(title="B", start_date="2024-01-01"))

        titles = [e.title for e in self.content.list_exhibitions()]

        self.assertEqual(titles, ["B", "A"])

    def test_featured_and_regular_exhibitions(self):
        self.content.create_exhibition(
            make_exhibition(title="Featured", start_date="2023-01-01", is_featured=True)
        )
        self.content.create_exhibition(make_exhibition(title="Other", start_date="2024-01-01"))

        exhibitions = self.content.list_exhibitions()
        featured = self.content.get_featured_exhibition(exhibitions)
        regular = self.content.list_regular_exhibitions(featured, exhibitions)

        self.assertEqual(featured.title, "Featured")
        self.assertEqual([e.title for e in regular], ["Other"])

    def test_fallback_featured_is_not_listed_twice(self):
        self.content.create_exhibition(make_exhibition(title="Old", start_date="2023-01-01"))
        self.content.create_exhibition(make_exhibition(title="New", start_date="2024-01-01"))

        exhibitions = self.content.list_exhibitions()
        featured = self.content.get_featured_exhibition(exhibitions)

        self.assertEqual(featured.title, "New")
        self.assertEqual(
            [e.title for e in self.content.list_regular_exhibitions(featured, exhibitions)],
            ["Old"],
        )

    def test_create_exhibition_requires_main_image(self):
        with self.assertRaisesRegex(ContentValidationError, "Main image is required"):
            self.content.create_exhibition(make_exhibition(main_image=""))

    def test_update_and_get_exhibition(self):
        exhibition_id = self.content.create_exhibition(make_exhibition())
        updated = make_exhibition(title="Neu", artist_ids=["a1"])

        self.content.update_exhibition(exhibition_id, updated)

        fetched = self.content.get_exhibition(exhibition_id)
        self.assertEqual(fetched.id, exhibition_id)
        self.assertEqual(fetched.title, "Neu")
        self.assertEqual(fetched.visitor_info.ticket_info, "Gratis")
        self.assertEqual(
            [e.id for e in self.content.list_exhibitions_for_artist("a1")],
            [exhibition_id],
        )

    def test_missing_records(self):
        with self.assertRaises(ContentNotFoundError):
            self.content.get_exhibition("missing")
        with self.assertRaises(ContentNotFoundError):
            self.content.update_artist("missing", Artist(name="x"))

    def test_delete_exhibition_removes_images(self):
        main = self.content.upload_image(PNG, "exhibitions", name="main.png")
        gallery = self.content.upload_image(PNG, "exhibitions", name="g.png")
        exhibition_id = self.content.create_exhibition(
            make_exhibition(main_image=main, gallery=[gallery])
        )

        self.content.delete_exhibition(exhibition_id)

        self.assertEqual(self.storage.stored_objects, {})
        self.assertEqual(self.db.list_documents("exhibitions"), [])

    def test_artists_sorted_by_name_and_exhibitions_kept(self):
        anna = self.content.create_artist(Artist(name="anna", main_image="a.jpg"))
        self.content.create_artist(Artist(name="Bruno", main_image="b.jpg"))
        self.db.update_document("artists", anna, {"exhibitions": ["e1"]})

        self.content.update_artist(
            anna,
            Artist(
                name="Anna",
                main_image="a.jpg",
                portfolio=[PortfolioItem(image_url="w.jpg", title="Werk")],
            ),
        )

        artists = self.content.list_artists()
        self.assertEqual([a.name for a in artists], ["Anna", "Bruno"])
        self.assertEqual(artists[0].exhibitions, ["e1"])
        self.assertEqual(artists[0].portfolio[0].title, "Werk")

    def test_art_locations(self):
        location_id = self.content.create_art_location(
            ArtLocation(
                title="Pin",
                description="Desc",
                artist="Anna",
                coordinates=Coordinates(x=10, y=20),
            )
        )

        location = self.content.get_art_location(location_id)
        self.assertEqual(location.coordinates, Coordinates(x=10, y=20))
        self.assertIsNone(location.artist_id)

        self.content.delete_art_location(location_id)
        self.assertEqual(self.content.list_art_locations(), [])

    def test_map_url_falls_back_to_stored_file(self):
        self.assertIsNone(self.content.get_map_url())

        url = self.storage.upload_bytes("map/current.jpg", b"x", "image/jpeg")
        self.assertEqual(self.content.get_map_url(), url)

    def test_set_map_image(self):
        url = self.content.set_map_image(
            FileUpload("karte.jpg", "image/jpeg", b"jpeg")
        )

        self.assertEqual(self.content.get_map_content().image_url, url)
        self.assertEqual(self.content.get_map_content().storage_path, "map/current.jpg")
        self.assertEqual(self.content.get_map_url(), url)

    def test_history_content(self):
        self.assertIsNone(self.content.get_history_content())

        first_id = self.content.save_history_content(
            "Text",
            [Milestone(year=1900, title="A"), Milestone(year="oops", title="B")],
        )
        second_id = self.content.save_history_content(
            "Neu", [Milestone(year=1800, title="C"), Milestone(year=1950, title="D")]
        )

        self.assertEqual(first_id, second_id)
        history = self.content.get_history_content()
        self.assertEqual(history.main_text, "Neu")
        self.assertEqual([m.year for m in history.milestones], [1950, 1800])

    def test_documents(self):
        url = self.content.upload_document(
            FileUpload("privacy.pdf", "application/pdf", b"%PDF"), "datenschutz.pdf"
        )
        self.assertEqual(self.content.get_document_url("datenschutz.pdf"), url)
        with self.assertRaises(ContentNotFoundError):
            self.content.get_document_url("missing.pdf")
        with self.assertRaisesRegex(ContentValidationError, "PDF"):
            self.content.upload_document(PNG, "datenschutz.pdf")

    def test_document_size_limit(self):
        too_big = FileUpload(
            "privacy.pdf", "application/pdf", b"0" * (10 * 1024 * 1024 + 1)
        )
        with self.assertRaisesRegex(
            ContentValidationError, "Document must be less than 10MB"
        ):
            self.content.upload_document(too_big, "datenschutz.pdf")
        self.assertFalse(self.storage.stored_objects)


class HelperTests(unittest.TestCase):
    def test_normalize_milestone_year(self):
        self.assertEqual(normalize_milestone_year("1901", current_year=2024), 1901)
        self.assertEqual(normalize_milestone_year(1850, current_year=2024), 1850)
        self.assertEqual(normalize_milestone_year("", current_year=2024), 2024)
        self.assertEqual(normalize_milestone_year(None, current_year=2024), 2024)
        self.assertEqual(normalize_milestone_year("0", current_year=2024), 2024)

    def test_sanitize_filename(self):
        self.assertEqual(sanitize_filename("../etc/passwd"), "etc-passwd")
        self.assertEqual(sanitize_filename(""), "upload")


if __name__ == "__main__":
    unittest.main()

import os
import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient

from site_backend.app import create_app
from site_backend.config import get_settings
from site_backend.dependencies import (
    get_auth_client,
    get_db_client,
    get_storage_client,
    reset_dependencies,
)

TEST_ENV = {
    "USE_IN_MEMORY_BACKENDS": "true",
    "SESSION_COOKIE_SECURE": "false",
    "REDIS_URL": "",
}

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-image"


def exhibition_json(**overrides):
    data = {
        "title": "Licht und Stein",
        "description": "Skulpturen im Park.",
        "short_description": "Skulpturen",
        "main_image": "https://example.test/img/main.jpg",
        "gallery": [],
        "start_date": "2024-05-01",
        "end_date": "2024-09-30",
        "artist_ids": [],
        "is_featured": False,
        "visitor_info": {
            "hours": "10-18",
            "ticket_info": "Free",
            "location": "Park",
        },
    }
    data.update(overrides)
    return data


class SiteApiTestCase(unittest.TestCase):
    def setUp(self):
        env = patch.dict(os.environ, TEST_ENV)
        env.start()
        self.addCleanup(env.stop)
        get_settings.cache_clear()
        self.addCleanup(get_settings.cache_clear)
        reset_dependencies()
        self.addCleanup(reset_dependencies)
        self.client = TestClient(create_app())

    def use_env(self, **overrides):
        """Rebuilds the app with extra environment settings."""
        env = patch.dict(os.environ, overrides)
        env.start()
        self.addCleanup(env.stop)
        get_settings.cache_clear()
        reset_dependencies()
        self.client = TestClient(create_app())

    def login(self, email="admin@example.com", password="secret123"):
        get_auth_client().add_user(email, password)
        response = self.client.post(
            "/api/auth/login", json={"email": email, "password": password}
        )
        self.assertEqual(response.status_code, 200, response.text)
        return response


class PublicApiTests(SiteApiTestCase):
    def test_health(self):
        response = self.client.get("/api/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok"})

    def test_featured_exhibition_falls_back_to_latest_start(self):
        db = get_db_client()
        db.add_document(
            "exhibitions",
            {"title": "Old", "startDate": "2023-01-01", "isFeatured": False},
        )
        db.add_document(
            "exhibitions",
            {"title": "New", "startDate": "2024-06-01", "isFeatured": False},
        )

        response = self.client.get("/api/exhibitions/featured")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["exhibition"]["title"], "New")

    def test_featured_exhibition_empty(self):
        response = self.client.get("/api/exhibitions/featured")
        self.assertEqual(response.json(), {"exhibition": None})

    def test_missing_exhibition_returns_404(self):
        response = self.client.get("/api/exhibitions/missing")
        self.assertEqual(response.status_code, 404)
        self.assertIn("missing", response.json()["detail"])

    def test_artist_detail_includes_exhibitions(self):
        db = get_db_client()
        artist_id = db.add_document(
            "artists", {"name": "Anna", "bio": "Bio", "mainImage": "a.jpg"}
        )
        db.add_document(
            "exhibitions",
            {"title": "With Anna", "startDate": "2024-01-01", "artistIds": [artist_id]},
        )
        db.add_document(
            "exhibitions",
            {"title": "Without", "startDate": "2024-02-01", "artistIds": []},
        )

        response = self.client.get(f"/api/artists/{artist_id}")

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["artist"]["name"], "Anna")
        self.assertEqual(
            [e["title"] for e in payload["exhibitions"]], ["With Anna"]
        )

    def test_map_uses_default_when_nothing_uploaded(self):
        response = self.client.get("/api/map")
        payload = response.json()
        self.assertIsNone(payload["map_url"])
        self.assertEqual(payload["default_map_url"], get_settings().default_map_url)
        self.assertEqual(payload["locations"], [])

    def test_history_milestones_newest_first(self):
        get_db_client().add_document(
            "historyContent",
            {
                "mainText": "Text",
                "milestones": [
                    {"year": 1900, "title": "A", "description": ""},
                    {"year": 2001, "title": "B", "description": ""},
                ],
            },
        )

        response = self.client.get("/api/history")

        years = [m["year"] for m in response.json()["history"]["milestones"]]
        self.assertEqual(years, [2001, 1900])

    def test_document_url(self):
        get_storage_client().upload_bytes(
            "documents/datenschutz.pdf", b"%PDF", "application/pdf"
        )
        response = self.client.get("/api/documents/datenschutz.pdf")
        self.assertEqual(response.status_code, 200)
        self.assertIn("documents%2Fdatenschutz.pdf", response.json()["url"])

        self.assertEqual(
            self.client.get("/api/documents/other.pdf").status_code, 404
        )


class AuthApiTests(SiteApiTestCase):
    def test_login_sets_session_cookie(self):
        response = self.login()
        self.assertEqual(response.json()["email"], "admin@example.com")
        self.assertIn("session", response.cookies)

        me = self.client.get("/api/auth/me")
        self.assertEqual(me.status_code, 200)
        self.assertTrue(me.json()["is_admin"])

    def test_wrong_password_then_rate_limited(self):
        get_auth_client().add_user("admin@example.com", "secret123")

        first = self.client.post(
            "/api/auth/login",
            json={"email": "admin@example.com", "password": "nope"},
        )
        self.assertEqual(first.status_code, 401)
        self.assertEqual(first.json()["detail"], "Invalid email or password")

        second = self.client.post(
            "/api/auth/login",
            json={"email": "admin@example.com", "password": "secret123"},
        )
        self.assertEqual(second.status_code, 429)
        self.assertIn("Please wait 60 seconds", second.json()["detail"])
        self.assertEqual(second.headers["retry-after"], "60")

    def test_logout_revokes_session(self):
        self.login()
        response = self.client.post("/api/auth/logout")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.client.get("/api/auth/me").status_code, 401)

    def test_bearer_id_token(self):
        auth = get_auth_client()
        auth.add_user("admin@example.com", "secret123")
        token = auth.sign_in("admin@example.com", "secret123").id_token

        response = self.client.get(
            "/api/auth/me", headers={"Authorization": f"Bearer {token}"}
        )

        self.assertEqual(response.status_code, 200)

    def test_admin_routes_require_login(self):
        response = self.client.post("/api/admin/exhibitions", json=exhibition_json())
        self.assertEqual(response.status_code, 401)

    def test_forwarded_for_from_untrusted_client_is_ignored(self):
        get_auth_client().add_user("admin@example.com", "secret123")

        statuses = [
            self.client.post(
                "/api/auth/login",
                json={"email": "admin@example.com", "password": "nope"},
                headers={"X-Forwarded-For": f"10.0.0.{i}"},
            ).status_code
            for i in range(5)
        ]

        self.assertEqual(statuses, [401, 429, 429, 429, 429])

    def test_forwarded_for_from_trusted_proxy_identifies_client(self):
        self.use_env(FORWARDED_ALLOW_IPS="testclient")
        get_auth_client().add_user("admin@example.com", "secret123")

        def attempt(address):
            return self.client.post(
                "/api/auth/login",
                json={"email": "admin@example.com", "password": "nope"},
                headers={"X-Forwarded-For": address},
            ).status_code

        self.assertEqual(attempt("10.0.0.1"), 401)
        self.assertEqual(attempt("10.0.0.1"), 429)
        self.assertEqual(attempt("10.0.0.2"), 401)

    def test_non_admin_login_rejected_when_flag_required(self):
        self.use_env(REQUIRE_ADMIN_FLAG="true")
        auth = get_auth_client()
        auth.add_user("visitor@example.com", "secret123", uid="visitor-uid")

        response = self.client.post(
            "/api/auth/login",
            json={"email": "visitor@example.com", "password": "secret123"},
        )

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["detail"], "Admin access required")
        self.assertNotIn("session", response.cookies)

        token = auth.sign_in("visitor@example.com", "secret123").id_token
        me = self.client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        self.assertEqual(me.status_code, 403)

    def test_flagged_admin_login_when_flag_required(self):
        self.use_env(REQUIRE_ADMIN_FLAG="true")
        get_auth_client().add_user("admin@example.com", "secret123", uid="admin-uid")
        get_db_client().set_document(
            "users", "admin-uid", {"email": "admin@example.com", "isAdmin": True}
        )

        response = self.client.post(
            "/api/auth/login",
            json={"email": "admin@example.com", "password": "secret123"},
        )

        self.assertEqual(response.status_code, 200, response.text)
        self.assertTrue(response.json()["is_admin"])
        self.assertEqual(self.client.get("/api/auth/me").status_code, 200)


class AdminApiTests(SiteApiTestCase):
    def setUp(self):
        super().setUp()
        self.login()

    def test_exhibition_crud(self):
        created = self.client.post("/api/admin/exhibitions", json=exhibition_json())
        self.assertEqual(created.status_code, 201, created.text)
        exhibition_id = created.json()["id"]

        updated = self.client.put(
            f"/api/admin/exhibitions/{exhibition_id}",
            json=exhibition_json(title="Neu", main_image=""),
        )
        self.assertEqual(updated.status_code, 200, updated.text)

        fetched = self.client.get(f"/api/exhibitions/{exhibition_id}").json()
        self.assertEqual(fetched["title"], "Neu")
        # An empty main image keeps the current one.
        self.assertEqual(fetched["main_image"], "https://example.test/img/main.jpg")

        deleted = self.client.delete(f"/api/admin/exhibitions/{exhibition_id}")
        self.assertEqual(deleted.status_code, 200)
        self.assertEqual(
            self.client.get(f"/api/exhibitions/{exhibition_id}").status_code, 404
        )

    def test_create_exhibition_requires_main_image(self):
        response = self.client.post(
            "/api/admin/exhibitions", json=exhibition_json(main_image="")
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "Main image is required")

    def test_create_exhibition_rejects_end_before_start(self):
        response = self.client.post(
            "/api/admin/exhibitions",
            json=exhibition_json(start_date="2024-09-01", end_date="2024-08-01"),
        )
        self.assertEqual(response.status_code, 422)

    def test_update_missing_exhibition(self):
        response = self.client.put(
            "/api/admin/exhibitions/missing", json=exhibition_json()
        )
        self.assertEqual(response.status_code, 404)

    def test_upload_image(self):
        response = self.client.post(
            "/api/admin/uploads/artists",
            files={"file": ("portrait.png", PNG_BYTES, "image/png")},
        )
        self.assertEqual(response.status_code, 201, response.text)
        self.assertIn("artists%2F", response.json()["url"])

    def test_upload_rejects_non_images(self):
        response = self.client.post(
            "/api/admin/uploads/artists",
            files={"file": ("notes.txt", b"hello", "text/plain")},
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "File must be an image")

    def test_upload_rejects_large_images(self):
        data = b"0" * (5 * 1024 * 1024 + 1)
        response = self.client.post(
            "/api/admin/uploads/exhibitions",
            files={"file": ("big.jpg", data, "image/jpeg")},
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "Image must be less than 5MB")

    def test_upload_unknown_folder(self):
        response = self.client.post(
            "/api/admin/uploads/secrets",
            files={"file": ("a.png", PNG_BYTES, "image/png")},
        )
        self.assertEqual(response.status_code, 404)

    def test_artist_crud_deletes_images(self):
        storage = get_storage_client()
        main_url = storage.upload_bytes("artists/main.png", PNG_BYTES, "image/png")
        work_url = storage.upload_bytes("artists/work.png", PNG_BYTES, "image/png")

        created = self.client.post(
            "/api/admin/artists",
            json={
                "name": "Anna",
                "bio": "Bio",
                "main_image": main_url,
                "portfolio": [{"image_url": work_url, "title": "Work", "year": "2020"}],
            },
        )
        self.assertEqual(created.status_code, 201, created.text)
        artist_id = created.json()["id"]
        self.assertEqual(
            self.client.get(f"/api/artists/{artist_id}").json()["artist"]["exhibitions"],
            [],
        )

        self.client.delete(f"/api/admin/artists/{artist_id}")

        self.assertEqual(storage.stored_objects, {})

    def test_location_coordinates_must_be_percentages(self):
        response = self.client.post(
            "/api/admin/locations",
            json={
                "title": "Pin",
                "description": "Desc",
                "artist": "Anna",
                "coordinates": {"x": 120, "y": 10},
            },
        )
        self.assertEqual(response.status_code, 422)

    def test_location_crud(self):
        created = self.client.post(
            "/api/admin/locations",
            json={
                "title": "Pin",
                "description": "Desc",
                "artist": "Anna",
                "coordinates": {"x": 25.5, "y": 40},
            },
        )
        self.assertEqual(created.status_code, 201, created.text)

        locations = self.client.get("/api/map").json()["locations"]
        self.assertEqual(len(locations), 1)
        self.assertEqual(locations[0]["coordinates"], {"x": 25.5, "y": 40.0})

        location_id = created.json()["id"]
        self.client.delete(f"/api/admin/locations/{location_id}")
        self.assertEqual(self.client.get("/api/map").json()["locations"], [])

    def test_map_image_upload(self):
        response = self.client.put(
            "/api/admin/map/image",
            files={"file": ("map.jpg", PNG_BYTES, "image/jpeg")},
        )
        self.assertEqual(response.status_code, 200, response.text)

        payload = self.client.get("/api/map").json()
        self.assertEqual(payload["map_url"], response.json()["url"])
        self.assertIn("map%2Fcurrent.jpg", payload["map_url"])

    def test_save_history_normalizes_years(self):
        response = self.client.put(
            "/api/admin/history",
            json={
                "main_text": "Geschichte",
                "milestones": [
                    {"year": "abc", "title": "Unknown", "description": ""},
                    {"year": 1850, "title": "Built", "description": ""},
                ],
            },
        )
        self.assertEqual(response.status_code, 200, response.text)

        # Saving again updates the same document.
        again = self.client.put(
            "/api/admin/history", json={"main_text": "Neu", "milestones": []}
        )
        self.assertEqual(again.json()["id"], response.json()["id"])

        history = self.client.get("/api/history").json()["history"]
        self.assertEqual(history["main_text"], "Neu")

    def test_upload_document(self):
        response = self.client.put(
            "/api/admin/documents/datenschutz.pdf",
            files={"file": ("privacy.pdf", b"%PDF-1.4", "application/pdf")},
        )
        self.assertEqual(response.status_code, 200, response.text)

        rejected = self.client.put(
            "/api/admin/documents/datenschutz.pdf",
            files={"file": ("privacy.png", PNG_BYTES, "image/png")},
        )
        self.assertEqual(rejected.status_code, 400)

    def test_upload_document_too_large(self):
        response = self.client.put(
            "/api/admin/documents/datenschutz.pdf",
            files={
                "file": (
                    "privacy.pdf",
                    b"0" * (10 * 1024 * 1024 + 1),
                    "application/pdf",
                )
            },
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "Document must be less than 10MB")
        self.assertEqual(
            self.client.get("/api/documents/datenschutz.pdf").status_code, 404
        )


if __name__ == "__main__":
    unittest.main()

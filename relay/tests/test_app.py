import unittest
from unittest.mock import MagicMock
from urllib.parse import quote

from fastapi.testclient import TestClient

from relay.app import create_app
from relay.catalog import ENTRY_TYPE, InMemoryCatalogClient
from relay.config import Settings, get_settings
from relay.dependencies import get_catalog_client, get_storage_client
from relay.errors import CatalogError, UpstreamAuthError
from relay.storage import InMemoryStorageClient

NOW_MS = 1700000000000


class RelayApiTests(unittest.TestCase):
    def setUp(self):
        self.app = create_app()
        self.storage = InMemoryStorageClient(now_ms=lambda: NOW_MS)
        self.catalog = InMemoryCatalogClient()
        self.app.dependency_overrides[get_storage_client] = lambda: self.storage
        self.app.dependency_overrides[get_catalog_client] = lambda: self.catalog
        self.client = TestClient(self.app)

    def _seed(self, **fields):
        return self.catalog.create(ENTRY_TYPE, fields)

    def test_health(self):
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok"})

    def test_upload_url_contains_filename_and_timestamp(self):
        response = self.client.post(
            "/get-upload-url", json={"filename": "clip.mp4", "contentType": "video/mp4"}
        )
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertIn(f"submissions/{NOW_MS}-clip.mp4", payload["publicUrl"])
        self.assertEqual(
            payload["uploadUrl"],
            f"http://testserver/upload/submissions%2F{NOW_MS}-clip.mp4",
        )

    def test_upload_url_requires_fields(self):
        response = self.client.post("/get-upload-url", json={"filename": "clip.mp4"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "filename and contentType required")

    def test_upload_url_without_body_is_bad_request(self):
        response = self.client.post("/get-upload-url")
        self.assertEqual(response.status_code, 400)

    def test_upload_url_auth_failure(self):
        storage = MagicMock()
        storage.issue_upload_target.side_effect = UpstreamAuthError(
            "Failed to authorize object storage: 401", upstream_status=401
        )
        self.app.dependency_overrides[get_storage_client] = lambda: storage
        response = self.client.post(
            "/get-upload-url", json={"filename": "clip.mp4", "contentType": "video/mp4"}
        )
        self.assertEqual(response.status_code, 502)
        self.assertEqual(response.json()["error"], "Failed to generate upload URL")
        self.assertEqual(response.json()["upstream_status"], 401)

    def test_upload_and_delete_round_trip(self):
        key = f"submissions%2F{NOW_MS}-clip.mp4"
        response = self.client.put(
            f"/upload/{key}", content=b"\x00\x01video", headers={"Content-Type": "video/mp4"}
        )
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["success"])
        self.assertTrue(response.json()["publicUrl"].endswith(f"submissions/{NOW_MS}-clip.mp4"))
        self.assertEqual(
            self.storage.stored_objects[f"submissions/{NOW_MS}-clip.mp4"],
            (b"\x00\x01video", "video/mp4"),
        )

        response = self.client.delete(f"/delete/{key}")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"success": True, "message": "File deleted"})

    def test_upload_key_with_literal_percent(self):
        response = self.client.post(
            "/get-upload-url", json={"filename": "clip%20final.mp4", "contentType": "video/mp4"}
        )
        upload_url = response.json()["uploadUrl"]
        self.assertEqual(
            upload_url,
            f"http://testserver/upload/submissions%2F{NOW_MS}-clip%2520final.mp4",
        )
        key = f"submissions/{NOW_MS}-clip%20final.mp4"

        response = self.client.put(
            upload_url, content=b"video", headers={"Content-Type": "video/mp4"}
        )
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["publicUrl"].endswith(key))
        self.assertEqual(list(self.storage.stored_objects), [key])

        response = self.client.delete(upload_url.replace("/upload/", "/delete/"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.storage.stored_objects, {})

    def test_upload_too_large(self):
        self.app.dependency_overrides[get_settings] = lambda: Settings(max_upload_bytes=4)
        response = self.client.put(
            "/upload/submissions%2F1-clip.mp4", content=b"0123456789",
            headers={"Content-Type": "video/mp4"},
        )
        self.assertEqual(response.status_code, 413)
        self.assertEqual(self.storage.stored_objects, {})

    def test_upload_failure_is_reported(self):
        storage = MagicMock()
        storage.upload_file.side_effect = RuntimeError("boom")
        self.app.dependency_overrides[get_storage_client] = lambda: storage
        response = self.client.put(
            "/upload/submissions%2F1-clip.mp4", content=b"abc",
            headers={"Content-Type": "video/mp4"},
        )
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"error": "Failed to upload file"})

    def test_delete_missing_file(self):
        response = self.client.delete("/delete/submissions%2Fnope.mp4")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error"], "File not found")

    def test_submit_chug_creates_unverified_entry(self):
        response = self.client.post(
            "/submit-chug",
            data={
                "contact[handle_text]": "@chugger",
                "contact[container]": "can",
                "contact[leaderboard_type]": "RAB",
                "contact[video_upload_url]": "https://example.test/storage/file/b/k.mp4",
                "contact[time_s]": "12.34",
                "contact[volume_oz]": "16",
                "contact[verified]": "true",
            },
        )
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertTrue(payload["success"])
        self.assertTrue(payload["metaobject"]["id"].startswith("gid://shopify/Metaobject/"))
        [record] = self.catalog.query(ENTRY_TYPE, 10)
        self.assertFalse(record.verified)
        self.assertEqual(record.fields["time_to_rim_s"], "0.25")

    def test_submit_chug_accepts_json(self):
        response = self.client.post(
            "/submit-chug",
            json={
                "contact[handle_text]": "@chugger",
                "contact[container]": "bottle",
                "contact[leaderboard_type]": "RAB",
                "contact[video_url]": "https://youtu.be/abc",
                "contact[time_s]": "8.1",
                "contact[volume_oz]": "12",
            },
        )
        self.assertEqual(response.status_code, 200)

    def test_submit_chug_without_video_is_rejected(self):
        response = self.client.post(
            "/submit-chug",
            data={
                "contact[handle_text]": "@chugger",
                "contact[container]": "can",
                "contact[leaderboard_type]": "RAB",
                "contact[time_s]": "12.34",
                "contact[volume_oz]": "16",
            },
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "Either video_url or video_upload_url required")
        self.assertEqual(self.catalog.query(ENTRY_TYPE, 10), [])

    def test_submit_chug_catalog_rejection(self):
        catalog = MagicMock()
        catalog.create.side_effect = CatalogError(
            "metaobjectCreate rejected", details=[{"field": ["fields"], "message": "bad"}]
        )
        self.app.dependency_overrides[get_catalog_client] = lambda: catalog
        response = self.client.post(
            "/submit-chug",
            json={
                "contact[handle_text]": "@c",
                "contact[container]": "can",
                "contact[leaderboard_type]": "RAB",
                "contact[video_url]": "https://youtu.be/abc",
                "contact[time_s]": "8.1",
                "contact[volume_oz]": "12",
            },
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(
            response.json(),
            {
                "error": "Failed to create metaobject",
                "details": [{"field": ["fields"], "message": "bad"}],
            },
        )

    def test_leaderboard_by_type_filters_and_sorts(self):
        self._seed(leaderboard_type="RAB", verified="true", time_s="10.5", handle_text="slow")
        self._seed(leaderboard_type="RAB", verified="true", time_s="9.2", handle_text="fast")
        self._seed(leaderboard_type="RAB", verified="false", time_s="1.0", handle_text="pending")
        self._seed(leaderboard_type="OTHER", verified="true", time_s="2.0", handle_text="other")

        response = self.client.get("/leaderboard/RAB")
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["leaderboard_type"], "RAB")
        self.assertEqual(payload["count"], 2)
        self.assertEqual([e["time_s"] for e in payload["entries"]], ["9.2", "10.5"])
        self.assertEqual(payload["entries"][0]["handle_text"], "fast")

    def test_leaderboard_by_name(self):
        self._seed(leaderboard_name="Pub Crawl", verified="true", time_s="abc")
        self._seed(leaderboard_name="Pub Crawl", verified="true", time_s="5")
        response = self.client.get("/whitelabel/name/Pub Crawl")
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["leaderboard_name"], "Pub Crawl")
        self.assertEqual([e["time_s"] for e in payload["entries"]], ["5", "abc"])

    def test_leaderboard_catalog_error_is_server_error(self):
        catalog = MagicMock()
        catalog.query.side_effect = CatalogError("Catalog query failed", details=[{"message": "Throttled"}])
        self.app.dependency_overrides[get_catalog_client] = lambda: catalog
        response = self.client.get("/leaderboard/RAB")
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()["error"], "Failed to fetch entries")

    def test_admin_unverified_returns_first_pending(self):
        self._seed(handle_text="done", verified="true")
        created = self._seed(handle_text="pending", verified="false")
        response = self.client.get("/admin/unverified")
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["id"], created.id)
        self.assertEqual(payload["fields"]["handle_text"], "pending")

    def test_admin_unverified_none_found(self):
        self._seed(handle_text="done", verified="true")
        response = self.client.get("/admin/unverified")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["message"], "No unverified submissions found")

    def test_admin_update_never_changes_verified(self):
        created = self._seed(handle_text="typo", verified="false")
        response = self.client.patch(
            f"/admin/submission/{quote(created.id, safe='')}",
            json={"handle_text": "fixed", "verified": "true", "volume_oz": 16},
        )
        self.assertEqual(response.status_code, 200)
        submission = response.json()["submission"]
        self.assertEqual(submission["fields"]["handle_text"], "fixed")
        self.assertEqual(submission["fields"]["verified"], "false")
        self.assertEqual(submission["fields"]["volume_oz"], "16")
        self.assertEqual(
            self.catalog.updates[-1], (created.id, {"handle_text": "fixed", "volume_oz": "16"})
        )

    def test_admin_update_rejects_null_values(self):
        created = self._seed(handle_text="ok", location="Austin", verified="false")
        response = self.client.patch(
            f"/admin/submission/{quote(created.id, safe='')}", json={"location": None}
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(
            response.json(),
            {
                "error": "Field values must not be null: location",
                "details": {"fields": ["location"]},
            },
        )
        self.assertEqual(self.catalog.updates, [])

    def test_admin_update_unknown_submission(self):
        response = self.client.patch(
            "/admin/submission/gid%3A%2F%2Fshopify%2FMetaobject%2F999", json={"location": "x"}
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "Failed to update submission")

    def test_admin_verify(self):
        created = self._seed(handle_text="ok", verified="false")
        response = self.client.post(f"/admin/verify/{quote(created.id, safe='')}")
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertTrue(payload["verified"])
        self.assertEqual(payload["submission"]["fields"]["verified"], "true")
        self.assertEqual(self.catalog.updates[-1], (created.id, {"verified": "true"}))

    def test_cors_allows_storefront_origin(self):
        response = self.client.options(
            "/leaderboard/RAB",
            headers={
                "Origin": "https://chugchamp.com",
                "Access-Control-Request-Method": "GET",
            },
        )
        self.assertEqual(
            response.headers.get("access-control-allow-origin"), "https://chugchamp.com"
        )


if __name__ == "__main__":
    unittest.main()

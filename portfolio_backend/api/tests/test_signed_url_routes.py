"""Tests for /api/signed-url*, /api/image/* endpoints."""

from unittest.mock import MagicMock

import pytest

from portfolio_backend.api.tests.conftest import BUCKET, SIGNED_URL_EXPIRES


# ── POST /api/signed-url ─────────────────────────────────────────────────────


class TestSignedUrl:
    def test_happy_path_bare_key(self, client):
        resp = client.post("/api/signed-url", json={"url": "m42.png"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["expiresIn"] == SIGNED_URL_EXPIRES
        assert body["url"].startswith("https://")
        assert "m42.png" in body["url"]

    def test_full_url_reference_is_cached_under_key(self, client, app):
        first = client.post("/api/signed-url", json={"url": f"https://storage.example/{BUCKET}/m42.png"})
        second = client.post("/api/signed-url", json={"url": "/m42.png"})
        assert first.status_code == 200
        assert first.json()["url"] == second.json()["url"]
        assert app.state.signed_urls.cache.get("m42.png") is not None

    def test_missing_url(self, client):
        resp = client.post("/api/signed-url", json={})
        assert resp.status_code == 400
        assert resp.json()["error"] == "URL is required"

    def test_unextractable_key(self, client):
        resp = client.post("/api/signed-url", json={"url": "https://storage.example/"})
        assert resp.status_code == 400
        assert "key" in resp.json()["error"].lower()

    def test_provider_failure_returns_500(self, client, app):
        failing = MagicMock()
        failing.generate_presigned_url.side_effect = RuntimeError("no credentials")
        app.state.signed_urls.s3_client = failing
        resp = client.post("/api/signed-url", json={"url": "never-signed.png"})
        assert resp.status_code == 500
        assert resp.json()["error"] == "Failed to generate signed URL"


# ── POST /api/signed-urls ────────────────────────────────────────────────────


class TestSignedUrls:
    def test_happy_path(self, client):
        refs = ["m42.png", "uploads/andromeda.png"]
        resp = client.post("/api/signed-urls", json={"urls": refs})
        assert resp.status_code == 200
        body = resp.json()
        assert body["expiresIn"] == SIGNED_URL_EXPIRES
        assert [item["original"] for item in body["urls"]] == refs
        for item in body["urls"]:
            assert item["signedUrl"].startswith("https://")

    def test_bad_items_reported_per_item(self, client):
        resp = client.post("/api/signed-urls", json={"urls": ["m42.png", "", 7]})
        assert resp.status_code == 200
        items = resp.json()["urls"]
        assert "signedUrl" in items[0]
        assert items[1]["error"] == "Could not extract key"
        assert items[2]["error"] == "Could not extract key"

    def test_missing_urls(self, client):
        resp = client.post("/api/signed-urls", json={})
        assert resp.status_code == 400
        assert "array" in resp.json()["error"].lower()

    def test_urls_not_a_list(self, client):
        resp = client.post("/api/signed-urls", json={"urls": "m42.png"})
        assert resp.status_code == 400


# ── GET /api/signed-url/{key} and /api/image/{key} ───────────────────────────


class TestSignedUrlByKey:
    def test_happy_path_with_cache_header(self, client):
        resp = client.get("/api/signed-url/m42.png")
        assert resp.status_code == 200
        assert resp.json()["url"].startswith("https://")
        cache_control = resp.headers["cache-control"]
        assert cache_control.startswith("public, max-age=")
        max_age = int(cache_control.split("=")[1])
        assert 0 < max_age <= int(SIGNED_URL_EXPIRES * 0.95)

    def test_nested_key(self, client):
        resp = client.get("/api/signed-url/uploads/andromeda.png")
        assert resp.status_code == 200
        assert "andromeda.png" in resp.json()["url"]

    def test_same_url_as_post(self, client):
        via_get = client.get("/api/signed-url/m42.png").json()["url"]
        via_post = client.post("/api/signed-url", json={"url": "m42.png"}).json()["url"]
        assert via_get == via_post


class TestImageRedirect:
    def test_redirects_to_signed_url(self, client):
        resp = client.get("/api/image/m42.png", follow_redirects=False)
        assert resp.status_code == 302
        assert resp.headers["location"].startswith("https://")
        assert "m42.png" in resp.headers["location"]
        assert resp.headers["cache-control"].startswith("public, max-age=")


class TestRequestBodies:
    @pytest.mark.parametrize("path", ["/api/signed-url", "/api/signed-urls"])
    @pytest.mark.parametrize("payload", ["m42.png", ["m42.png"], 42, None])
    def test_non_object_json_is_400(self, client, path, payload):
        resp = client.post(path, json=payload)
        assert resp.status_code == 400
        assert "required" in resp.json()["error"]

    def test_malformed_json_is_400(self, client):
        resp = client.post("/api/signed-url", content=b"{not json", headers={"content-type": "application/json"})
        assert resp.status_code == 400
        assert resp.json() == {"error": "Invalid request body"}

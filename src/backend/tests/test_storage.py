"""
Tests for receipt image storage (blob and multipart transports).
"""

import httpx
import pytest

from receiptsnap.errors import UploadError
from receiptsnap.services.storage import StorageService, UploadTransport

SUPABASE_URL = "https://example.supabase.co"
IMAGE = b"\x89PNG\r\n\x1a\nfake-png"


def test_file_name_is_upload_millis_plus_extension(fake_supabase):
    storage = StorageService(fake_supabase, extension=".jpg")
    assert storage.generate_file_name(now_ms=1700000000123) == "1700000000123.jpg"


def test_file_name_defaults_to_current_time(fake_supabase):
    name = StorageService(fake_supabase, extension=".jpg").generate_file_name()
    stem = name[:-len(".jpg")]
    assert stem.isdigit()
    assert len(stem) >= 13


class TestBlobTransport:

    @pytest.fixture
    def storage(self, fake_supabase):
        return StorageService(fake_supabase, bucket_name="receipts", transport=UploadTransport.BLOB)

    def test_upload_returns_name_and_public_url(self, storage, fake_supabase):
        name, url = storage.upload_image(IMAGE, content_type="image/png")

        assert ("receipts", name) in fake_supabase.storage.objects
        assert url == f"{SUPABASE_URL}/storage/v1/object/public/receipts/{name}"
        stored = fake_supabase.storage.objects[("receipts", name)]
        assert stored["options"] == {"content-type": "image/png"}

    def test_empty_image_is_rejected(self, storage, fake_supabase):
        with pytest.raises(UploadError):
            storage.upload_image(b"")
        assert fake_supabase.storage.objects == {}

    def test_backend_failure_becomes_upload_error(self, storage, fake_supabase):
        fake_supabase.storage.fail_upload = Exception("413 Payload Too Large")
        with pytest.raises(UploadError) as exc_info:
            storage.upload_image(IMAGE)
        assert "413" in exc_info.value.detail

    def test_missing_public_url_is_an_error(self, storage, monkeypatch):
        monkeypatch.setattr(storage, "public_url", lambda name: "")
        with pytest.raises(UploadError):
            storage.upload_image(IMAGE)

    def test_delete_image(self, storage, fake_supabase):
        name, _ = storage.upload_image(IMAGE)
        assert storage.delete_image(name) is True
        assert fake_supabase.storage.objects == {}


class TestMultipartTransport:

    def _storage(self, fake_supabase, handler):
        return StorageService(
            fake_supabase,
            bucket_name="receipts",
            transport=UploadTransport.MULTIPART,
            http_client=httpx.Client(transport=httpx.MockTransport(handler)),
            supabase_url=SUPABASE_URL + "/",
            api_key="anon-key",
        )

    def test_posts_form_data_to_object_endpoint(self, fake_supabase):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"Key": "receipts/x.jpg"})

        storage = self._storage(fake_supabase, handler)
        name, url = storage.upload_image(IMAGE, content_type="image/png", access_token="user-jwt")

        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == f"{SUPABASE_URL}/storage/v1/object/receipts/{name}"
        assert request.headers["Authorization"] == "Bearer user-jwt"
        assert request.headers["apikey"] == "anon-key"
        assert request.headers["content-type"].startswith("multipart/form-data")
        body = request.read()
        assert IMAGE in body
        assert name.encode() in body
        assert url.endswith(f"/receipts/{name}")

    def test_falls_back_to_api_key_without_user_token(self, fake_supabase):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={})

        self._storage(fake_supabase, handler).upload_image(IMAGE)
        assert seen[0].headers["Authorization"] == "Bearer anon-key"

    def test_http_error_becomes_upload_error(self, fake_supabase):
        storage = self._storage(fake_supabase, lambda request: httpx.Response(400, json={"error": "bad"}))
        with pytest.raises(UploadError):
            storage.upload_image(IMAGE)

    def test_network_error_becomes_upload_error(self, fake_supabase):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(UploadError):
            self._storage(fake_supabase, handler).upload_image(IMAGE)


class TestFileNameFromUrl:

    @pytest.fixture
    def storage(self, fake_supabase):
        return StorageService(fake_supabase, bucket_name="receipts")

    def test_extracts_object_name(self, storage):
        url = f"{SUPABASE_URL}/storage/v1/object/public/receipts/1700000000123.jpg"
        assert storage.file_name_from_url(url) == "1700000000123.jpg"

    def test_ignores_query_string(self, storage):
        url = f"{SUPABASE_URL}/storage/v1/object/public/receipts/1.jpg?t=5"
        assert storage.file_name_from_url(url) == "1.jpg"

    @pytest.mark.parametrize("url", [
        None,
        "",
        f"{SUPABASE_URL}/storage/v1/object/public/other/1.jpg",
        f"{SUPABASE_URL}/storage/v1/object/public/receipts/",
    ])
    def test_unknown_urls_give_none(self, storage, url):
        assert storage.file_name_from_url(url) is None

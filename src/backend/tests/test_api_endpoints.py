"""
API tests for capture, receipts and stats endpoints.

Supabase, the session and the extraction model are replaced through
FastAPI dependency overrides.
"""

import json
from datetime import timedelta, timezone
from types import SimpleNamespace
from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from receiptsnap.dependencies import get_client, get_extraction_service, get_session
from receiptsnap.main import app
from receiptsnap.services.extraction import ExtractionService
from receiptsnap.services.normalizer import normalize_extraction
from receiptsnap.services.persistence import SAVE_SUCCESS_MESSAGE
from receiptsnap.services.session import StaticSessionProvider
from receiptsnap.utils import dates

IMAGE = b"\xff\xd8\xff\xe0fake-jpeg"


@pytest.fixture
def openai_client():
    return Mock()


@pytest.fixture
def session(user_id):
    return StaticSessionProvider(user_id)


@pytest.fixture
def client(fake_supabase, session, openai_client):
    app.dependency_overrides[get_client] = lambda: fake_supabase
    app.dependency_overrides[get_session] = lambda: session
    app.dependency_overrides[get_extraction_service] = lambda: ExtractionService(client=openai_client)
    yield TestClient(app)
    app.dependency_overrides.clear()


def _reply(openai_client, payload):
    content = payload if isinstance(payload, str) else json.dumps(payload)
    openai_client.chat.completions.create.return_value = SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))]
    )


def _save(client, extraction):
    draft = normalize_extraction(extraction)
    response = client.post("/capture/save", data={"draft": draft.model_dump_json()})
    return response.json()["receipt_id"]


def test_root_and_health(client):
    assert client.get("/").json()["status"] == "running"
    assert client.get("/health").json() == {"status": "healthy"}


class TestAnalyze:

    def test_returns_editable_draft(self, client, openai_client, extraction_current):
        _reply(openai_client, extraction_current)

        response = client.post("/capture/analyze", files={"image": ("r.jpg", IMAGE, "image/jpeg")})

        assert response.status_code == 200
        body = response.json()
        assert body["store_name"] == "Edeka"
        assert body["generation"] == "current"
        assert body["time"] == "14:30"
        assert body["draft_id"]
        assert body["items"][0]["name"] == "Milk"

    def test_rejects_non_image_upload(self, client, openai_client):
        response = client.post("/capture/analyze", files={"image": ("r.txt", b"hello", "text/plain")})

        assert response.status_code == 400
        openai_client.chat.completions.create.assert_not_called()

    def test_rejects_empty_image(self, client):
        response = client.post("/capture/analyze", files={"image": ("r.jpg", b"", "image/jpeg")})
        assert response.status_code == 400

    def test_unreadable_reply_is_422(self, client, openai_client):
        _reply(openai_client, "no receipt here")

        response = client.post("/capture/analyze", files={"image": ("r.jpg", IMAGE, "image/jpeg")})

        assert response.status_code == 422
        assert response.json()["error"] == "Could not read the receipt. Please retake the photo."


class TestSave:

    def test_saves_draft_with_image(self, client, fake_supabase, extraction_current, user_id):
        draft = normalize_extraction(extraction_current)

        response = client.post(
            "/capture/save",
            data={"draft": draft.model_dump_json()},
            files={"image": ("r.jpg", IMAGE, "image/jpeg")}
        )

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["message"] == SAVE_SUCCESS_MESSAGE

        receipt = fake_supabase.tables["receipts"][0]
        assert receipt["id"] == body["receipt_id"]
        assert receipt["user_id"] == user_id
        assert receipt["image_url"].endswith(".jpg")
        assert len(fake_supabase.tables["receipt_items"]) == 1

    def test_date_override_from_form(self, client, fake_supabase, extraction_legacy):
        draft = normalize_extraction(extraction_legacy)

        response = client.post(
            "/capture/save",
            data={"draft": draft.model_dump_json(), "date": "07.03.24"}
        )

        assert response.status_code == 201
        assert fake_supabase.tables["receipts"][0]["timestamp"] == "2024-03-07"

    def test_time_override_uses_draft_date(self, client, fake_supabase, extraction_current, monkeypatch):
        monkeypatch.setattr(dates, "resolve_timezone", lambda name=None: timezone(timedelta(hours=1)))
        draft = normalize_extraction(extraction_current)

        response = client.post(
            "/capture/save",
            data={"draft": draft.model_dump_json(), "time": "09:15"}
        )

        assert response.status_code == 201
        assert fake_supabase.tables["receipts"][0]["timestamp"] == "2024-02-01T08:15:00+00:00"

    def test_time_override_without_any_date_is_422(self, client, fake_supabase, extraction_current):
        draft = normalize_extraction(extraction_current).model_copy(update={"date": ""})

        response = client.post(
            "/capture/save",
            data={"draft": draft.model_dump_json(), "time": "09:15"}
        )

        assert response.status_code == 422
        assert fake_supabase.tables["receipts"] == []

    def test_signed_out_is_401(self, client, session, fake_supabase, extraction_current):
        session.user_id = None
        draft = normalize_extraction(extraction_current)

        response = client.post("/capture/save", data={"draft": draft.model_dump_json()})

        assert response.status_code == 401
        assert response.json()["success"] is False
        assert fake_supabase.tables["receipts"] == []

    def test_missing_price_is_422(self, client, extraction_current):
        extraction_current["items"][0]["price"] = None
        draft = normalize_extraction(extraction_current)

        response = client.post("/capture/save", data={"draft": draft.model_dump_json()})

        assert response.status_code == 422
        assert response.json()["error"] == "DraftIncompleteError"

    def test_item_failure_is_500_with_receipt_id(self, client, fake_supabase, extraction_current):
        fake_supabase.fail("receipt_items", "insert")
        draft = normalize_extraction(extraction_current)

        response = client.post("/capture/save", data={"draft": draft.model_dump_json()})

        assert response.status_code == 500
        assert response.json()["receipt_id"] == fake_supabase.tables["receipts"][0]["id"]

    def test_upload_failure_is_502(self, client, fake_supabase, extraction_current):
        fake_supabase.storage.fail_upload = Exception("storage down")
        draft = normalize_extraction(extraction_current)

        response = client.post(
            "/capture/save",
            data={"draft": draft.model_dump_json()},
            files={"image": ("r.jpg", IMAGE, "image/jpeg")}
        )

        assert response.status_code == 502
        assert fake_supabase.tables["receipts"] == []

    def test_invalid_draft_is_422(self, client):
        response = client.post("/capture/save", data={"draft": "{\"store_name\": 1}"})
        assert response.status_code == 422


class TestReceipts:

    def test_list_and_get(self, client, extraction_current, extraction_legacy):
        edeka_id = _save(client, extraction_current)
        _save(client, extraction_legacy)

        listing = client.get("/receipts").json()
        assert listing["total"] == 2
        assert {r["store_name"] for r in listing["receipts"]} == {"Edeka", "Aldi"}

        receipt = client.get(f"/receipts/{edeka_id}").json()
        assert receipt["store_name"] == "Edeka"
        assert receipt["items"][0]["name"] == "Milk"

    def test_get_unknown_is_404(self, client):
        assert client.get("/receipts/does-not-exist").status_code == 404

    def test_delete(self, client, fake_supabase, extraction_current):
        receipt_id = _save(client, extraction_current)

        response = client.delete(f"/receipts/{receipt_id}")

        assert response.status_code == 200
        assert fake_supabase.tables["receipts"] == []
        assert client.delete(f"/receipts/{receipt_id}").status_code == 404

    def test_requires_session(self, client, session):
        session.user_id = None
        assert client.get("/receipts").status_code == 401


class TestStats:

    def test_monthly_spending_shape(self, client):
        response = client.get("/stats/monthly", params={"months": 6})

        assert response.status_code == 200
        body = response.json()
        assert len(body) == 6
        assert {"month", "label", "amount"} <= set(body[0])

    def test_months_out_of_range(self, client):
        assert client.get("/stats/monthly", params={"months": 0}).status_code == 422

    def test_item_history(self, client, extraction_current):
        _save(client, extraction_current)

        response = client.get("/stats/items/Milk")

        assert response.status_code == 200
        assert [point["store_name"] for point in response.json()] == ["Edeka"]

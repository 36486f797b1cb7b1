"""HTTP surface: status codes, redirects and response bodies."""

from datetime import date
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from rank_radar.api import app
from rank_radar.db_persistence import get_db
from rank_radar.gsc_client import AuthError, UpstreamRequestError
from rank_radar.models import SyncReport
from rank_radar.settings import Settings, get_settings
from rank_radar.sync import NoSiteConfiguredError

from conftest import FakeDatabase


@pytest.fixture
def db():
    return FakeDatabase()


@pytest.fixture
def client(db, settings):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_settings] = lambda: settings
    # No context manager: the lifespan (and its real pool) is not started
    yield TestClient(app)
    app.dependency_overrides.clear()


def _report(**overrides):
    values = dict(
        site_url="https://example.com/",
        start_date=date(2024, 3, 13),
        end_date=date(2024, 6, 13),
        total_rows=120,
        matched_keywords=14,
        upserted_records=14,
    )
    values.update(overrides)
    return SyncReport(**values)


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


class TestAuthRoutes:

    def test_auth_redirects_to_consent_url(self, client):
        with patch("rank_radar.api.GoogleAuthHandler") as handler_cls:
            handler_cls.return_value.get_authorization_url.return_value = "https://accounts.google.com/o/oauth2/auth?x=1"
            response = client.get("/api/gsc/auth", follow_redirects=False)

        assert response.status_code == 302
        assert response.headers["location"] == "https://accounts.google.com/o/oauth2/auth?x=1"

    def test_auth_without_client_config_is_500(self, db):
        app.dependency_overrides[get_db] = lambda: db
        app.dependency_overrides[get_settings] = lambda: Settings(GSC_CLIENT_ID="", GSC_CLIENT_SECRET="")
        try:
            response = TestClient(app).get("/api/gsc/auth", follow_redirects=False)
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 500
        assert "error" in response.json()

    def test_callback_success(self, client, db):
        with patch("rank_radar.api.GoogleAuthHandler") as handler_cls:
            response = client.get("/api/gsc/auth/callback?code=abc", follow_redirects=False)

        handler_cls.return_value.handle_callback.assert_called_once()
        code, store = handler_cls.return_value.handle_callback.call_args.args
        assert code == "abc"
        assert store.db is db
        assert response.status_code == 302
        assert response.headers["location"] == "http://dashboard.test/?success=authenticated"

    def test_callback_provider_error(self, client):
        response = client.get("/api/gsc/auth/callback?error=access_denied", follow_redirects=False)
        assert response.status_code == 302
        assert response.headers["location"] == "http://dashboard.test/?error=access_denied"

    def test_callback_without_code(self, client):
        response = client.get("/api/gsc/auth/callback", follow_redirects=False)
        assert response.headers["location"] == "http://dashboard.test/?error=No+authorization+code+received"

    def test_callback_exchange_failure(self, client):
        with patch("rank_radar.api.GoogleAuthHandler") as handler_cls:
            handler_cls.return_value.handle_callback.side_effect = RuntimeError("invalid_grant")
            response = client.get("/api/gsc/auth/callback?code=bad", follow_redirects=False)

        assert response.status_code == 302
        assert response.headers["location"] == "http://dashboard.test/?error=Failed+to+complete+authentication"


class TestBackfillRoute:

    def test_success_body(self, client):
        with patch("rank_radar.api.run_backfill_sync", return_value=_report()) as sync:
            response = client.post("/api/gsc/fetch", json={"siteUrl": "https://example.com/", "months": 3})

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "siteUrl": "https://example.com/",
            "dateRange": {"start": "2024-03-13", "end": "2024-06-13"},
            "totalRows": 120,
            "matchedKeywords": 14,
            "upsertedRecords": 14,
        }
        assert sync.call_args.kwargs == {"site_url": "https://example.com/", "months": 3}

    def test_missing_body_uses_defaults(self, client, settings):
        with patch("rank_radar.api.run_backfill_sync", return_value=_report()) as sync:
            response = client.post("/api/gsc/fetch")

        assert response.status_code == 200
        assert sync.call_args.kwargs == {"site_url": None, "months": settings.BACKFILL_MONTHS}

    def test_invalid_json_uses_defaults(self, client, settings):
        with patch("rank_radar.api.run_backfill_sync", return_value=_report()) as sync:
            response = client.post(
                "/api/gsc/fetch", content=b"{not json", headers={"Content-Type": "application/json"}
            )

        assert response.status_code == 200
        assert sync.call_args.kwargs["months"] == settings.BACKFILL_MONTHS

    def test_negative_months_is_400(self, client):
        with patch("rank_radar.api.run_backfill_sync") as sync:
            response = client.post("/api/gsc/fetch", json={"months": -2})

        assert response.status_code == 400
        sync.assert_not_called()

    @pytest.mark.parametrize("months", [True, "3", 1.5, 2.0])
    def test_non_integer_months_is_400(self, client, months):
        with patch("rank_radar.api.run_backfill_sync") as sync:
            response = client.post("/api/gsc/fetch", json={"months": months})

        assert response.status_code == 400
        assert "error" in response.json()
        sync.assert_not_called()

    def test_zero_months_uses_default(self, client, settings):
        with patch("rank_radar.api.run_backfill_sync", return_value=_report()) as sync:
            response = client.post("/api/gsc/fetch", json={"months": 0})

        assert response.status_code == 200
        assert sync.call_args.kwargs["months"] == settings.BACKFILL_MONTHS

    def test_no_keywords_is_informational(self, client):
        with patch("rank_radar.api.run_backfill_sync", return_value=_report(keywords_registered=False)):
            response = client.post("/api/gsc/fetch", json={})

        assert response.status_code == 200
        assert response.json() == {"message": "No keywords registered. Add keywords first."}

    @pytest.mark.parametrize("error, status", [
        (AuthError("Not authenticated"), 401),
        (NoSiteConfiguredError("No sites found in Search Console"), 404),
        (UpstreamRequestError("Search Analytics page 2 failed"), 500),
        (RuntimeError("Database error upserting rank"), 500),
    ])
    def test_error_mapping(self, client, error, status):
        with patch("rank_radar.api.run_backfill_sync", side_effect=error):
            response = client.post("/api/gsc/fetch", json={})

        assert response.status_code == status
        assert response.json() == {"error": str(error)}


class TestDailyRoute:

    def test_success_body(self, client):
        report = _report(start_date=date(2024, 6, 12), end_date=date(2024, 6, 12), upserted_records=5)
        with patch("rank_radar.api.run_incremental_sync", return_value=report):
            response = client.get("/api/gsc/fetch")

        assert response.status_code == 200
        assert response.json() == {"success": True, "date": "2024-06-12", "upsertedRecords": 5}

    def test_no_keywords(self, client):
        with patch("rank_radar.api.run_incremental_sync", return_value=_report(keywords_registered=False)):
            response = client.get("/api/gsc/fetch")
        assert response.json() == {"message": "No keywords registered"}

    def test_unauthenticated_end_to_end(self, client):
        # Real sync path: the empty fake database has no credential
        response = client.get("/api/gsc/fetch")
        assert response.status_code == 401
        assert "error" in response.json()

    def test_no_site_is_404(self, client):
        with patch("rank_radar.api.run_incremental_sync", side_effect=NoSiteConfiguredError("No sites found")):
            response = client.get("/api/gsc/fetch")
        assert response.status_code == 404

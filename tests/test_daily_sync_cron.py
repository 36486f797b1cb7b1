"""Exit codes of the daily sync command."""

from datetime import date
from unittest.mock import patch

import pytest

from rank_radar import daily_sync_cron
from rank_radar.gsc_client import AuthError
from rank_radar.models import SyncReport


def _report(**overrides):
    values = dict(
        site_url="https://example.com/",
        start_date=date(2024, 6, 12),
        end_date=date(2024, 6, 12),
        total_rows=40,
        matched_keywords=5,
        upserted_records=5,
    )
    values.update(overrides)
    return SyncReport(**values)


@pytest.fixture
def cron(settings):
    """Patch out the pool, the connection and the sync itself; yields the mocks."""
    with patch.object(daily_sync_cron, "get_settings", return_value=settings), \
            patch.object(daily_sync_cron, "setup_logging"), \
            patch.object(daily_sync_cron, "init_db_pool") as init_pool, \
            patch.object(daily_sync_cron, "close_db_pool") as close_pool, \
            patch.object(daily_sync_cron, "DatabasePersistence") as db_cls, \
            patch.object(daily_sync_cron, "run_incremental_sync") as sync:
        yield {"init_pool": init_pool, "close_pool": close_pool, "db": db_cls.return_value, "sync": sync}


def test_success_exits_zero(cron, settings):
    cron["sync"].return_value = _report()

    assert daily_sync_cron.main() == 0
    cron["sync"].assert_called_once_with(cron["db"], settings)
    cron["db"].disconnect.assert_called_once()
    cron["close_pool"].assert_called_once()


def test_no_keywords_exits_zero(cron):
    cron["sync"].return_value = _report(keywords_registered=False, total_rows=0, matched_keywords=0, upserted_records=0)
    assert daily_sync_cron.main() == 0


@pytest.mark.parametrize("error", [
    AuthError("Not authenticated. Please authenticate via /api/gsc/auth"),
    RuntimeError("Database error upserting rank"),
])
def test_sync_failure_exits_one(cron, error):
    cron["sync"].side_effect = error

    assert daily_sync_cron.main() == 1
    cron["db"].disconnect.assert_called_once()
    cron["close_pool"].assert_called_once()


def test_pool_failure_exits_one(cron):
    cron["init_pool"].side_effect = RuntimeError("Database pool initialization failed: refused")

    assert daily_sync_cron.main() == 1
    cron["sync"].assert_not_called()
    cron["close_pool"].assert_called_once()


def test_connect_failure_exits_one(cron):
    cron["db"].connect.side_effect = RuntimeError("Database connection failed: timeout")

    assert daily_sync_cron.main() == 1
    cron["sync"].assert_not_called()

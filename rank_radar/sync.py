"""
Keyword Rank Sync - backfill and incremental runs

Both modes share one flow:
  credential check -> authenticated client -> site -> window
  -> keyword lookup -> paginated fetch -> reconcile

No retries: a failed run is simply triggered again. That is safe because
every write is an upsert keyed by (keyword, date).
"""

import logging
from datetime import date
from typing import Callable, Optional, Tuple

from rank_radar.settings import Settings
from rank_radar.auth.credential_store import CredentialStore
from rank_radar.db_persistence import DatabasePersistence
from rank_radar.gsc_client import AuthError, GSCClient
from rank_radar.models import SyncReport
from rank_radar.rank_reconciler import RankReconciler, build_keyword_lookup
from rank_radar.utils.windows import backfill_window, incremental_window

logger = logging.getLogger(__name__)

ClientFactory = Callable[[Settings, CredentialStore], GSCClient]


class NoSiteConfiguredError(Exception):
    """Raised when Search Console lists no site to sync"""
    pass


def _authenticated_client(
    db: DatabasePersistence,
    settings: Settings,
    client_factory: ClientFactory,
) -> GSCClient:
    store = CredentialStore(db)
    if not store.is_authenticated():
        raise AuthError("Not authenticated. Please authenticate via /api/gsc/auth")
    return client_factory(settings, store)


def _resolve_site(client: GSCClient, site_url: Optional[str]) -> str:
    if site_url:
        return site_url
    site_url = client.first_site()
    if not site_url:
        raise NoSiteConfiguredError("No sites found in Search Console")
    return site_url


def _run_window(
    db: DatabasePersistence,
    client: GSCClient,
    site_url: str,
    window: Tuple[date, date],
) -> SyncReport:
    start_date, end_date = window
    report = SyncReport(site_url=site_url, start_date=start_date, end_date=end_date)

    keywords = db.fetch_all_keywords()
    if not keywords:
        logger.warning("[SYNC] No keywords registered; nothing to sync")
        report.keywords_registered = False
        return report

    keyword_lookup = build_keyword_lookup(keywords)
    logger.info("[SYNC] %d registered keywords", len(keywords))

    rows = client.fetch_search_analytics(site_url, start_date, end_date, ["query", "date"])
    result = RankReconciler(db).reconcile(rows, keyword_lookup)

    report.total_rows = len(rows)
    report.matched_keywords = result.matched_count
    report.upserted_records = result.written_count
    return report


def run_backfill_sync(
    db: DatabasePersistence,
    settings: Settings,
    site_url: Optional[str] = None,
    months: Optional[int] = None,
    today: Optional[date] = None,
    client_factory: ClientFactory = GSCClient,
) -> SyncReport:
    """
    Populate history: from (today - 2d - months) through (today - 2d).

    Args:
        db: Connected DatabasePersistence
        settings: Process settings
        site_url: GSC property; defaults to the first listed site
        months: How far back to go; defaults to settings.BACKFILL_MONTHS
        today: Anchor date; defaults to the current local date
    """
    today = today or date.today()
    months = months or settings.BACKFILL_MONTHS

    client = _authenticated_client(db, settings, client_factory)
    site_url = _resolve_site(client, site_url)
    window = backfill_window(today, months)

    logger.info("[SYNC] BACKFILL %s (%s to %s, %d months)", site_url, window[0], window[1], months)
    report = _run_window(db, client, site_url, window)
    _log_report("BACKFILL", report)
    return report


def run_incremental_sync(
    db: DatabasePersistence,
    settings: Settings,
    today: Optional[date] = None,
    client_factory: ClientFactory = GSCClient,
) -> SyncReport:
    """Capture the most recently finalized day (today - 3d) for the first listed site."""
    today = today or date.today()

    client = _authenticated_client(db, settings, client_factory)
    site_url = _resolve_site(client, None)
    window = incremental_window(today)

    logger.info("[SYNC] DAILY %s (%s)", site_url, window[0])
    report = _run_window(db, client, site_url, window)
    _log_report("DAILY", report)
    return report


def _log_report(mode: str, report: SyncReport) -> None:
    if not report.keywords_registered:
        return
    logger.info(
        "[SYNC] %s finished for %s: %d rows, %d matched, %d upserted",
        mode, report.site_url, report.total_rows,
        report.matched_keywords, report.upserted_records
    )


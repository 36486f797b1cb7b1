from __future__ import annotations
"""
Keyword Rank Radar - Daily Sync Cron
Runs the incremental (single finalized day) sync once and exits.

Exit codes:
  0 = synced, or nothing to sync (no keywords registered)
  1 = failure (not authenticated, no site, upstream or database error)
"""

import logging
import sys

from rank_radar.settings import get_settings
from rank_radar.logging_config import setup_logging
from rank_radar.db_persistence import DatabasePersistence, init_db_pool, close_db_pool
from rank_radar.sync import run_incremental_sync

logger = logging.getLogger("rank_radar.cron")


def main() -> int:
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)
    logger.info("[CRON] Starting daily keyword rank sync...")

    db = DatabasePersistence()

    try:
        init_db_pool(settings.DATABASE_URL, minconn=1, maxconn=2)
        db.connect()
        report = run_incremental_sync(db, settings)
    except Exception as e:
        logger.exception("[CRON] Daily sync FAILED: %s", e)
        return 1
    finally:
        db.disconnect()
        close_db_pool()

    if not report.keywords_registered:
        logger.warning("[CRON] No keywords registered. Nothing synced.")
        return 0

    logger.info("=" * 50)
    logger.info("[CRON] DAILY SYNC SUMMARY")
    logger.info("[CRON] Site:      %s", report.site_url)
    logger.info("[CRON] Date:      %s", report.start_date)
    logger.info("[CRON] Rows:      %d", report.total_rows)
    logger.info("[CRON] Upserted:  %d", report.upserted_records)
    logger.info("=" * 50)
    return 0


if __name__ == "__main__":
    sys.exit(main())

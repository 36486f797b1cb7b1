"""
Rank Reconciler

Matches Search Analytics rows (dimensions = [query, date]) against the
registered keywords and upserts one rank observation per (keyword, date).
Re-running the same window is safe: existing observations are overwritten.
"""

import logging
from datetime import date
from typing import Dict, Iterable, Sequence

from rank_radar.db_persistence import DatabasePersistence
from rank_radar.models import AnalyticsRow, Keyword, RankObservation, ReconcileResult

logger = logging.getLogger(__name__)

QUERY_KEY_INDEX = 0
DATE_KEY_INDEX = 1


def build_keyword_lookup(keywords: Iterable[Keyword]) -> Dict[str, str]:
    """
    Map lower-cased query -> keyword id.
    Built fresh for every sync; later keywords win on a case-insensitive clash.
    """
    return {keyword.query.lower(): keyword.id for keyword in keywords}


class RankReconciler:
    """Writes matched analytics rows as rank observations"""

    def __init__(self, db: DatabasePersistence):
        self.db = db

    def reconcile(self, rows: Sequence[AnalyticsRow], keyword_lookup: Dict[str, str]) -> ReconcileResult:
        """
        Upsert a rank observation for every row whose query is registered.

        Args:
            rows: Rows fetched with dimensions exactly [query, date]
            keyword_lookup: Output of build_keyword_lookup()

        Returns:
            ReconcileResult with matched and written counts (always equal)
        """
        result = ReconcileResult()

        self.db.begin_transaction()
        try:
            for row in rows:
                query = row.key(QUERY_KEY_INDEX)
                if not query:
                    continue

                keyword_id = keyword_lookup.get(query.lower())
                if keyword_id is None:
                    continue

                result.matched_count += 1

                # Taken as the date of record, no timezone handling
                row_date = date.fromisoformat(row.key(DATE_KEY_INDEX) or "")

                self.db.upsert_rank_observation(RankObservation(
                    keyword_id=keyword_id,
                    date=row_date,
                    position=row.position,
                    impressions=row.impressions,
                    clicks=row.clicks,
                    ctr=row.ctr,
                ))
                result.written_count += 1

            self.db.commit_transaction()
        except Exception:
            self.db.rollback_transaction()
            raise

        logger.info(
            "[SYNC] Reconciled %d rows: %d matched, %d written",
            len(rows), result.matched_count, result.written_count
        )
        return result

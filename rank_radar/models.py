"""
Data contracts for keyword rank syncing.

AnalyticsRow is transient (one GSC Search Analytics row); Keyword and
RankObservation mirror the persisted tables.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional


@dataclass
class Keyword:
    """A registered keyword. Managed outside this service; read-only here."""
    id: str
    query: str
    priority: int = 2  # 1 = high .. 3 = low
    target_url: Optional[str] = None
    product_id: Optional[str] = None


@dataclass
class RankObservation:
    """One day of GSC metrics for a keyword. Unique per (keyword_id, date)."""
    keyword_id: str
    date: date
    position: float
    impressions: int
    clicks: int
    ctr: float


@dataclass
class AnalyticsRow:
    """
    One Search Analytics row.
    keys holds the grouping values in the order of the requested dimensions.
    """
    keys: List[str] = field(default_factory=list)
    clicks: int = 0
    impressions: int = 0
    ctr: float = 0.0
    position: float = 0.0

    @classmethod
    def from_api(cls, row: Dict[str, Any]) -> "AnalyticsRow":
        return cls(
            keys=list(row.get("keys", [])),
            clicks=row.get("clicks", 0),
            impressions=row.get("impressions", 0),
            ctr=row.get("ctr", 0.0),
            position=row.get("position", 0.0),
        )

    def key(self, index: int) -> Optional[str]:
        """Key value at index, or None when the row is shorter."""
        if index < len(self.keys):
            return self.keys[index]
        return None


@dataclass
class ReconcileResult:
    matched_count: int = 0
    written_count: int = 0


@dataclass
class SyncReport:
    """Outcome of one sync run, shaped for the HTTP responses."""
    site_url: str
    start_date: date
    end_date: date
    total_rows: int = 0
    matched_keywords: int = 0
    upserted_records: int = 0
    keywords_registered: bool = True

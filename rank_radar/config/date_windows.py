"""
Canonical configuration for GSC sync date windows.
Centralizing these values keeps the backfill and incremental runs
away from days GSC has not finalized yet.
"""

# GSC Stabilization & Lag
GSC_LAG_DAYS = 2  # GSC data stabilizes ~2 days later

# Incremental runs look one extra day back
INCREMENTAL_SAFETY_DAYS = 1

# Backfill Settings
DEFAULT_BACKFILL_MONTHS = 3

# Search Analytics API hard limit per request
GSC_MAX_ROW_LIMIT = 25000

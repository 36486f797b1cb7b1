from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional


@dataclass
class GSCCredential:
    """
    Canonical credential model for the entire system.
    Only one credential is ever current; saving a new one replaces it.
    """
    access_token: str
    refresh_token: Optional[str] = None
    expiry: Optional[datetime] = None
    token_type: Optional[str] = None
    scope: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def scopes(self) -> List[str]:
        """Scope string split into the list google-auth expects"""
        if not self.scope:
            return []
        return self.scope.split()

    def naive_utc_expiry(self) -> Optional[datetime]:
        """
        Expiry as naive UTC.
        google-auth compares against a naive utcnow() internally.
        """
        expiry = self.expiry
        if expiry is not None and expiry.tzinfo is not None:
            expiry = expiry.astimezone(timezone.utc).replace(tzinfo=None)
        return expiry


def aware_utc_expiry(expiry: Optional[datetime]) -> Optional[datetime]:
    """google-auth hands out naive UTC expiries; tag them before they reach a TIMESTAMPTZ column."""
    if expiry is not None and expiry.tzinfo is None:
        expiry = expiry.replace(tzinfo=timezone.utc)
    return expiry

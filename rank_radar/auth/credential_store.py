"""
GSC credential slot.

Exactly one credential is current at any time. Writes go through a single
process-wide lock and a single upsert, so a reader never sees an empty slot
once the first save has completed.
"""

import logging
import threading
from typing import Optional

from rank_radar.auth.token_model import GSCCredential
from rank_radar.db_persistence import DatabasePersistence

logger = logging.getLogger(__name__)

_write_lock = threading.Lock()


class CredentialStore:
    """Single-slot credential storage backed by the gsc_credentials table"""

    def __init__(self, db: DatabasePersistence):
        self.db = db

    def save(self, credential: GSCCredential) -> None:
        """Replace whatever credential is stored with this one."""
        with _write_lock:
            self.db.replace_gsc_credential(credential)
        logger.info(
            "[AUTH] Credential saved (refresh_token present: %s, expiry: %s)",
            credential.refresh_token is not None, credential.expiry
        )

    def load(self) -> Optional[GSCCredential]:
        """The current credential, or None if no one has authenticated."""
        return self.db.fetch_gsc_credential()

    def is_authenticated(self) -> bool:
        """
        Existence check only. A stored credential may carry an expired
        access token; GSCClient refreshes it on use.
        """
        return self.db.has_gsc_credential()

"""
Database Persistence Layer
Handles the credential slot, keyword registry reads and rank upserts in Postgres
"""

import logging
from typing import Iterator, List, Optional

import psycopg2
from psycopg2.extras import RealDictCursor
from psycopg2.pool import ThreadedConnectionPool

from rank_radar.auth.token_model import GSCCredential
from rank_radar.models import Keyword, RankObservation

logger = logging.getLogger(__name__)

_pool: Optional[ThreadedConnectionPool] = None


def init_db_pool(dsn: str, minconn: int = 1, maxconn: int = 10) -> None:
    """Create the process-wide connection pool. Safe to call once per process."""
    global _pool
    if _pool is not None:
        return
    try:
        _pool = ThreadedConnectionPool(minconn, maxconn, dsn)
        logger.info("[DB] Connection pool ready (min=%d, max=%d)", minconn, maxconn)
    except psycopg2.Error as e:
        logger.error("[DB] Pool initialization failed: %s", e)
        raise RuntimeError(f"Database pool initialization failed: {e}") from e


def close_db_pool() -> None:
    """Close every pooled connection."""
    global _pool
    if _pool is not None:
        _pool.closeall()
        _pool = None
        logger.info("[DB] Connection pool closed")


def get_db() -> Iterator["DatabasePersistence"]:
    """FastAPI dependency: borrow a pooled connection for one request."""
    db = DatabasePersistence()
    db.connect()
    try:
        yield db
    finally:
        db.disconnect()


class DatabasePersistence:
    """Handles database operations for credentials, keywords and ranks"""

    CREDENTIAL_SLOT_ID = 1

    def __init__(self):
        self.connection = None
        self.cursor = None

    def connect(self) -> None:
        """
        Borrow a connection from the pool
        Raises explicit error if the pool is missing or exhausted
        """
        if _pool is None:
            raise RuntimeError("Database pool not initialized; call init_db_pool() first")
        try:
            self.connection = _pool.getconn()
            self.cursor = self.connection.cursor(cursor_factory=RealDictCursor)
        except psycopg2.Error as e:
            logger.error("[DB] Connection failed: %s", e)
            raise RuntimeError(f"Database connection failed: {e}") from e

    def disconnect(self) -> None:
        """Return the connection to the pool"""
        if self.cursor:
            try:
                self.cursor.close()
            except psycopg2.Error as e:
                logger.warning("[DB] Cursor close failed: %s", e)
            self.cursor = None
        if self.connection:
            if _pool is not None:
                # Never hand a connection with an open transaction back to the pool
                try:
                    self.connection.rollback()
                except psycopg2.Error as e:
                    logger.warning("[DB] Rollback on release failed, discarding connection: %s", e)
                finally:
                    _pool.putconn(self.connection, close=bool(self.connection.closed))
            else:
                self.connection.close()
            self.connection = None

    def begin_transaction(self) -> None:
        """Begin a database transaction"""
        if not self.connection:
            raise RuntimeError("Must connect to database before starting transaction")
        logger.debug("[DB] Starting transaction...")

    def commit_transaction(self) -> None:
        """Commit the current transaction"""
        if self.connection:
            self.connection.commit()
            logger.debug("[DB] Transaction committed")

    def rollback_transaction(self) -> None:
        """Rollback the current transaction"""
        if self.connection:
            self.connection.rollback()
            logger.warning("[DB] Transaction rolled back")

    def _require_connection(self) -> None:
        if not self.connection or not self.cursor:
            raise RuntimeError("Database connection not established")

    # ========================================
    # GSC CREDENTIAL SLOT
    # ========================================

    def replace_gsc_credential(self, credential: GSCCredential) -> None:
        """
        Replace the single stored credential.

        The table holds at most one row (id = 1). A single upsert statement
        swaps the contents, so there is never a moment with zero rows.

        Args:
            credential: GSCCredential instance
        """
        if not credential.access_token:
            logger.error("[DB] Refusing to persist empty access_token")
            raise RuntimeError("Refusing to persist empty access_token")

        self._require_connection()

        try:
            self.cursor.execute("""
                INSERT INTO gsc_credentials (
                    id, access_token, refresh_token, expiry,
                    token_type, scope, created_at
                )
                VALUES (%s, %s, %s, %s, %s, %s, NOW())
                ON CONFLICT (id) DO UPDATE SET
                    access_token = EXCLUDED.access_token,
                    refresh_token = EXCLUDED.refresh_token,
                    expiry = EXCLUDED.expiry,
                    token_type = EXCLUDED.token_type,
                    scope = EXCLUDED.scope,
                    created_at = NOW()
            """, (
                self.CREDENTIAL_SLOT_ID,
                credential.access_token,
                credential.refresh_token,
                credential.expiry,
                credential.token_type,
                credential.scope,
            ))
            self.connection.commit()
            logger.info("[DB] GSC credential replaced")
        except psycopg2.Error as e:
            self.connection.rollback()
            logger.error("[DB] Failed to replace GSC credential: %s", e)
            raise RuntimeError(f"Database error replacing credential: {e}") from e

    def fetch_gsc_credential(self) -> Optional[GSCCredential]:
        """
        Fetch the current credential.

        Returns:
            GSCCredential instance, or None if nobody has authenticated yet
        """
        self._require_connection()

        try:
            self.cursor.execute("""
                SELECT
                    access_token, refresh_token, expiry,
                    token_type, scope, created_at
                FROM gsc_credentials
                ORDER BY created_at DESC
                LIMIT 1
            """)
            row = self.cursor.fetchone()
            if not row:
                return None

            return GSCCredential(
                access_token=row['access_token'],
                refresh_token=row['refresh_token'],
                expiry=row['expiry'],
                token_type=row['token_type'],
                scope=row['scope'],
                created_at=row['created_at'],
            )
        except psycopg2.Error as e:
            logger.error("[DB] Failed to fetch GSC credential: %s", e)
            raise RuntimeError(f"Database error fetching credential: {e}") from e

    def has_gsc_credential(self) -> bool:
        """Cheap existence check; says nothing about token freshness."""
        self._require_connection()

        try:
            self.cursor.execute("SELECT EXISTS (SELECT 1 FROM gsc_credentials) AS present")
            row = self.cursor.fetchone()
            return bool(row and row['present'])
        except psycopg2.Error as e:
            logger.error("[DB] Failed to check GSC credential: %s", e)
            raise RuntimeError(f"Database error checking credential: {e}") from e

    # ========================================
    # KEYWORD REGISTRY
    # ========================================

    def fetch_all_keywords(self) -> List[Keyword]:
        """Fetch every registered keyword, oldest first."""
        self._require_connection()

        try:
            self.cursor.execute("""
                SELECT id, query, priority, target_url, product_id
                FROM keywords
                ORDER BY created_at, id
            """)
            return [
                Keyword(
                    id=str(row['id']),
                    query=row['query'],
                    priority=row['priority'],
                    target_url=row['target_url'],
                    product_id=str(row['product_id']) if row['product_id'] is not None else None,
                )
                for row in self.cursor.fetchall()
            ]
        except psycopg2.Error as e:
            logger.error("[DB] Failed to fetch keywords: %s", e)
            raise RuntimeError(f"Database error fetching keywords: {e}") from e

    # ========================================
    # RANK OBSERVATIONS
    # ========================================

    def upsert_rank_observation(self, observation: RankObservation) -> bool:
        """
        Insert or overwrite the observation for (keyword_id, date).
        Does not commit; callers own the transaction.

        Returns:
            True when a new row was created, False when an existing one was updated
        """
        self._require_connection()

        try:
            self.cursor.execute("""
                INSERT INTO ranks
                    (keyword_id, date, position, impressions, clicks, ctr, created_at, updated_at)
                VALUES
                    (%s, %s, %s, %s, %s, %s, NOW(), NOW())
                ON CONFLICT (keyword_id, date)
                DO UPDATE SET
                    position = EXCLUDED.position,
                    impressions = EXCLUDED.impressions,
                    clicks = EXCLUDED.clicks,
                    ctr = EXCLUDED.ctr,
                    updated_at = NOW()
                RETURNING (xmax = 0) AS inserted
            """, (
                observation.keyword_id,
                observation.date,
                observation.position,
                observation.impressions,
                observation.clicks,
                observation.ctr,
            ))
            result = self.cursor.fetchone()
            return bool(result and result['inserted'])
        except psycopg2.Error as e:
            logger.error(
                "[DB] Failed to upsert rank for keyword %s on %s: %s",
                observation.keyword_id, observation.date, e
            )
            raise RuntimeError(f"Database error upserting rank: {e}") from e


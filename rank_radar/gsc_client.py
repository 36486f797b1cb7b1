from __future__ import annotations
"""
Google Search Console API Client
Handles the authenticated session, site discovery and paginated Search Analytics queries
"""

import logging
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from rank_radar.settings import Settings
from rank_radar.auth.credential_store import CredentialStore
from rank_radar.auth.token_model import GSCCredential, aware_utc_expiry
from rank_radar.config.date_windows import GSC_MAX_ROW_LIMIT
from rank_radar.models import AnalyticsRow

logger = logging.getLogger(__name__)

DEFAULT_DIMENSIONS = ("query", "date")


class AuthError(Exception):
    """Raised when no credential is stored, or it is invalid and cannot be refreshed"""
    pass


class UpstreamRequestError(Exception):
    """Raised when a Search Console request fails for any non-auth reason"""
    pass


class GSCClient:
    """Client for the Search Console API using the stored credential"""

    def __init__(self, settings: Settings, store: CredentialStore, service: Any = None):
        self.settings = settings
        self.store = store
        self.page_size = min(settings.GSC_PAGE_SIZE, GSC_MAX_ROW_LIMIT)
        self.credentials = self._load_credentials()
        self.service = service if service is not None else self._init_service()

    def _load_credentials(self) -> Credentials:
        """
        Load the current credential from the store.
        Normalizes expiry to naive UTC to satisfy google-auth library internals.
        """
        token_obj = self.store.load()

        if not token_obj:
            raise AuthError("No GSC tokens found. Please authenticate first.")

        return Credentials(
            token=token_obj.access_token,
            refresh_token=token_obj.refresh_token,
            token_uri=self.settings.GSC_TOKEN_URI,
            client_id=self.settings.GSC_CLIENT_ID,
            client_secret=self.settings.GSC_CLIENT_SECRET,
            scopes=token_obj.scopes or None,
            expiry=token_obj.naive_utc_expiry(),
        )

    # ============================================================
    # TOKEN REFRESH
    # ============================================================

    def _init_service(self):
        self._refresh_if_expired()
        return build("searchconsole", "v1", credentials=self.credentials, cache_discovery=False)

    def _refresh_if_expired(self) -> None:
        if not self.credentials.expired:
            return

        if not self.credentials.refresh_token:
            raise AuthError("GSC access token expired and no refresh token is stored. Please re-authenticate.")

        logger.info("[AUTH] Token expired, refreshing...")
        try:
            self.credentials.refresh(Request())
        except RefreshError as e:
            logger.error("[AUTH] Refresh rejected: %s", e)
            raise AuthError(f"Failed to refresh Google OAuth token: {e}") from e
        except TransportError as e:
            logger.error("[AUTH] Refresh request failed: %s", e)
            raise UpstreamRequestError(f"Token refresh request failed: {e}") from e

        self.store.save(GSCCredential(
            access_token=self.credentials.token,
            refresh_token=self.credentials.refresh_token,
            expiry=aware_utc_expiry(self.credentials.expiry),
            token_type="Bearer",
            scope=" ".join(self.credentials.scopes or []) or None,
        ))
        logger.info("[AUTH] Token refreshed and persisted (expiry: %s)", self.credentials.expiry)

    def _execute(self, request, description: str) -> Dict[str, Any]:
        """Run a googleapiclient request, translating failures into AuthError / UpstreamRequestError."""
        try:
            return request.execute()
        except HttpError as e:
            if e.resp.status == 401:
                logger.error("[GSC] %s rejected credentials: %s", description, e)
                raise AuthError(f"{description} rejected credentials: {e}") from e
            logger.error("[GSC] %s failed: %s", description, e)
            raise UpstreamRequestError(f"{description} failed: {e}") from e
        except RefreshError as e:
            logger.error("[GSC] %s could not refresh credentials: %s", description, e)
            raise AuthError(f"{description} could not refresh credentials: {e}") from e
        except (TransportError, OSError) as e:
            logger.error("[GSC] %s transport error: %s", description, e)
            raise UpstreamRequestError(f"{description} failed: {e}") from e

    # ============================================================
    # GSC API METHODS
    # ============================================================

    def fetch_sites(self) -> List[str]:
        """Site URLs visible to the stored credential, in API order."""
        self._refresh_if_expired()

        sites_list = self._execute(self.service.sites().list(), "Site list")
        sites = [entry["siteUrl"] for entry in sites_list.get("siteEntry", []) if entry.get("siteUrl")]

        logger.info("[GSC] Fetched %d sites", len(sites))
        return sites

    def fetch_search_analytics(
        self,
        site_url: str,
        start_date: date,
        end_date: date,
        dimensions: Sequence[str] = DEFAULT_DIMENSIONS,
    ) -> List[AnalyticsRow]:
        """
        Fetch every Search Analytics row for the window, following pagination.

        Pages are requested with rowLimit = page_size and a startRow offset
        that grows by page_size. A page with no rows, or with fewer rows than
        page_size, ends the loop. Any failure raises; a partial result is
        never returned.

        Args:
            site_url: GSC property URL (exact identifier)
            start_date: First day of the window (inclusive)
            end_date: Last day of the window (inclusive)
            dimensions: Grouping dimensions; fixes the meaning of each row's keys

        Returns:
            All rows in source order
        """
        if start_date > end_date:
            raise ValueError(f"start_date {start_date} is after end_date {end_date}")

        self._refresh_if_expired()

        all_rows: List[AnalyticsRow] = []
        start_row = 0
        page = 0

        while True:
            page += 1
            request_body = {
                'startDate': start_date.strftime('%Y-%m-%d'),
                'endDate': end_date.strftime('%Y-%m-%d'),
                'dimensions': list(dimensions),
                'rowLimit': self.page_size,
                'startRow': start_row,
            }

            response = self._execute(
                self.service.searchanalytics().query(siteUrl=site_url, body=request_body),
                f"Search Analytics page {page} for {site_url}",
            )

            rows = response.get('rows') or []
            logger.debug("[GSC] Page %d (startRow=%d) returned %d rows", page, start_row, len(rows))

            if not rows:
                break

            all_rows.extend(AnalyticsRow.from_api(row) for row in rows)

            if len(rows) < self.page_size:
                break

            start_row += self.page_size

        logger.info(
            "[GSC] %s %s..%s: %d rows in %d page(s)",
            site_url, start_date, end_date, len(all_rows), page
        )
        return all_rows

    def first_site(self) -> Optional[str]:
        """Default sync target: the first listed site, if any."""
        sites = self.fetch_sites()
        return sites[0] if sites else None

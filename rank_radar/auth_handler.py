from __future__ import annotations
import logging

from google_auth_oauthlib.flow import Flow

from rank_radar.settings import Settings
from rank_radar.auth.credential_store import CredentialStore
from rank_radar.auth.token_model import GSCCredential, aware_utc_expiry

logger = logging.getLogger(__name__)

# Search Analytics only needs read access
SCOPES = ['https://www.googleapis.com/auth/webmasters.readonly']


class GoogleAuthHandler:
    """Handles OAuth 2.0 web flow for connecting the Search Console account."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.client_config = {
            "web": {
                "client_id": settings.GSC_CLIENT_ID,
                "client_secret": settings.GSC_CLIENT_SECRET,
                "auth_uri": settings.GSC_AUTH_URI,
                "token_uri": settings.GSC_TOKEN_URI,
                "redirect_uris": [settings.GSC_REDIRECT_URI]
            }
        }

    def _flow(self) -> Flow:
        return Flow.from_client_config(
            self.client_config,
            scopes=SCOPES,
            redirect_uri=self.settings.GSC_REDIRECT_URI
        )

    def get_authorization_url(self) -> str:
        """
        Generate the Google OAuth consent URL.

        Returns:
            The full Google authorization URL.
        """
        if not self.settings.GSC_CLIENT_ID or not self.settings.GSC_CLIENT_SECRET:
            raise RuntimeError("GSC_CLIENT_ID and GSC_CLIENT_SECRET must be configured")

        # access_type='offline' ensures we get a refresh_token
        # prompt='consent' forces full consent screen every time
        authorization_url, _ = self._flow().authorization_url(
            access_type='offline',
            prompt='consent'
        )
        logger.info("[AUTH] Redirect URI being sent: %s", self.settings.GSC_REDIRECT_URI)
        return authorization_url

    def handle_callback(self, code: str, store: CredentialStore) -> GSCCredential:
        """
        Exchange the authorization code for tokens and store them,
        replacing any previous credential.

        Args:
            code: The authorization code from Google
            store: Where the new credential replaces the old one

        Returns:
            The stored GSCCredential
        """
        try:
            flow = self._flow()
            flow.fetch_token(code=code)
            credentials = flow.credentials

            credential = GSCCredential(
                access_token=credentials.token,
                refresh_token=credentials.refresh_token,
                expiry=aware_utc_expiry(credentials.expiry),
                token_type="Bearer",
                scope=" ".join(credentials.scopes or SCOPES),
            )
            store.save(credential)

            logger.info("[AUTH] Successfully connected Search Console account")
            return credential

        except Exception as e:
            logger.error("[AUTH] Callback failed: %s", e)
            raise RuntimeError(f"Authentication failed: {e}") from e

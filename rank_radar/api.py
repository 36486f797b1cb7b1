from __future__ import annotations
import logging
from contextlib import asynccontextmanager
from typing import Optional
from urllib.parse import quote_plus

from fastapi import FastAPI, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel, StrictInt, ValidationError

from rank_radar.settings import Settings, get_settings
from rank_radar.logging_config import setup_logging
from rank_radar.auth.credential_store import CredentialStore
from rank_radar.auth_handler import GoogleAuthHandler
from rank_radar.db_persistence import DatabasePersistence, init_db_pool, close_db_pool, get_db
from rank_radar.gsc_client import AuthError
from rank_radar.sync import NoSiteConfiguredError, run_backfill_sync, run_incremental_sync

logger = logging.getLogger(__name__)


# -------------------------------------------------------------------------
# Lifespan
# -------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage logging and the database connection pool."""
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)
    init_db_pool(settings.DATABASE_URL, minconn=settings.DB_POOL_MIN, maxconn=settings.DB_POOL_MAX)
    yield
    close_db_pool()


app = FastAPI(
    title="Keyword Rank Radar API",
    description="Search Console keyword rank syncing.",
    version="1.0.0",
    lifespan=lifespan
)

# -------------------------------------------------------------------------
# CORS Configuration
# -------------------------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# -------------------------------------------------------------------------
# Models
# -------------------------------------------------------------------------

class FetchRequest(BaseModel):
    siteUrl: Optional[str] = None
    months: Optional[StrictInt] = None


# -------------------------------------------------------------------------
# Helpers
# -------------------------------------------------------------------------

def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def sync_error_response(e: Exception, context: str) -> JSONResponse:
    """Map sync failures onto the HTTP status codes the dashboard expects."""
    if isinstance(e, AuthError):
        logger.warning("[API] %s: not authenticated (%s)", context, e)
        return error_response(401, str(e))
    if isinstance(e, NoSiteConfiguredError):
        logger.warning("[API] %s: %s", context, e)
        return error_response(404, str(e))
    logger.exception("[API] %s failed", context)
    return error_response(500, str(e) or "Failed to fetch data")


def frontend_redirect(settings: Settings, query: str) -> RedirectResponse:
    return RedirectResponse(url=f"{settings.FRONTEND_BASE}/?{query}", status_code=302)


# -------------------------
# Health
# -------------------------

@app.get("/health")
def health_check():
    """Basic health check"""
    return {"status": "ok"}


# -------------------------------------------------------------------------
# Authentication (OAuth 2.0 Web Flow)
# -------------------------------------------------------------------------

@app.get("/api/gsc/auth")
def start_auth(settings: Settings = Depends(get_settings)):
    """Redirect the browser to Google's consent screen."""
    try:
        url = GoogleAuthHandler(settings).get_authorization_url()
        return RedirectResponse(url=url, status_code=302)
    except Exception as e:
        logger.error("[API] Error generating auth URL: %s", e)
        return error_response(500, "Failed to generate authentication URL. Check GSC credentials.")


@app.get("/api/gsc/auth/callback")
def auth_callback(
    code: Optional[str] = None,
    error: Optional[str] = None,
    settings: Settings = Depends(get_settings),
    db: DatabasePersistence = Depends(get_db),
):
    """
    Handle the OAuth 2.0 callback from Google.
    The new credential replaces any previously stored one.
    """
    if error:
        logger.warning("[API] OAuth provider returned error: %s", error)
        return frontend_redirect(settings, f"error={quote_plus(error)}")

    if not code:
        return frontend_redirect(settings, "error=No+authorization+code+received")

    try:
        GoogleAuthHandler(settings).handle_callback(code, CredentialStore(db))
        return frontend_redirect(settings, "success=authenticated")
    except Exception as e:
        logger.error("[API] Error exchanging code for tokens: %s", e)
        return frontend_redirect(settings, "error=Failed+to+complete+authentication")


# -------------------------------------------------------------------------
# Sync
# -------------------------------------------------------------------------

@app.post("/api/gsc/fetch")
async def fetch_backfill(
    request: Request,
    settings: Settings = Depends(get_settings),
    db: DatabasePersistence = Depends(get_db),
):
    """On-demand backfill. Body (optional): {"siteUrl": str, "months": int}."""
    try:
        body = await request.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}

    try:
        params = FetchRequest.model_validate(body)
    except ValidationError as e:
        return error_response(400, f"Invalid request body: {e.errors()[0]['msg']}")

    months = params.months or settings.BACKFILL_MONTHS
    if months <= 0:
        return error_response(400, "months must be a positive integer")

    try:
        report = await run_in_threadpool(
            run_backfill_sync, db, settings, site_url=params.siteUrl, months=months
        )
    except Exception as e:
        return sync_error_response(e, "Backfill sync")

    if not report.keywords_registered:
        return {"message": "No keywords registered. Add keywords first."}

    return {
        "success": True,
        "siteUrl": report.site_url,
        "dateRange": {
            "start": report.start_date.isoformat(),
            "end": report.end_date.isoformat(),
        },
        "totalRows": report.total_rows,
        "matchedKeywords": report.matched_keywords,
        "upsertedRecords": report.upserted_records,
    }


@app.get("/api/gsc/fetch")
def fetch_daily(
    settings: Settings = Depends(get_settings),
    db: DatabasePersistence = Depends(get_db),
):
    """Scheduled incremental sync of the most recently finalized day."""
    try:
        report = run_incremental_sync(db, settings)
    except Exception as e:
        return sync_error_response(e, "Daily sync")

    if not report.keywords_registered:
        return {"message": "No keywords registered"}

    return {
        "success": True,
        "date": report.start_date.isoformat(),
        "upsertedRecords": report.upserted_records,
    }

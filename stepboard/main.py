import os
from datetime import datetime, timezone

from dotenv import load_dotenv
load_dotenv(".env.local")
import requests
from fastapi import Body, Depends, FastAPI, HTTPException, Query
from fastapi.requests import Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from stepboard.config import GoogleOAuthConfig, SyncSettings
from stepboard.errors import ConfigurationError, StoreUnavailable
from stepboard.firebase_client import create_credential_store_from_env
from stepboard.logging_config import configure_logger
from stepboard.models import GoogleAuthCallbackBody
from stepboard.providers.google_oauth import GoogleOAuthClient
from stepboard.services.google_login import GoogleLoginService
from stepboard.services.leaderboard import build_leaderboard
from stepboard.services.step_aggregator import StepAggregator
from stepboard.services.sync_orchestrator import BatchSyncOrchestrator
from stepboard.services.token_status import build_token_status

logger = configure_logger("stepboard")
app = FastAPI(title="Step Leaderboard Sync Service")
settings = SyncSettings.from_env()
credential_store = create_credential_store_from_env(logger=logger)


def get_settings() -> SyncSettings:
    return settings


def get_credential_store():
    return credential_store


def get_oauth_client(sync_settings: SyncSettings = Depends(get_settings)) -> GoogleOAuthClient:
    # Raises ConfigurationError when the client secret is missing.
    return GoogleOAuthClient(GoogleOAuthConfig.from_env(), timeout=sync_settings.http_timeout_seconds)


def get_step_aggregator(sync_settings: SyncSettings = Depends(get_settings)) -> StepAggregator:
    return StepAggregator(logger=logger, timeout=sync_settings.http_timeout_seconds)


@app.exception_handler(StoreUnavailable)
async def store_unavailable_handler(request: Request, exc: StoreUnavailable):
    logger.error(f"[api] store unavailable on {request.url.path}: {exc}")
    return JSONResponse(status_code=503, content={"detail": f"Credential store unavailable: {exc}"})


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.error(f"[api] configuration error on {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": f"Server configuration error: {exc}"})


@app.get("/")
def health():
    return {
        "status": "ok",
        "store_backend": type(credential_store).__name__,
        "google_client_secret_set": bool(os.getenv("GOOGLE_CLIENT_SECRET")),
    }


@app.post("/sync-all")
def sync_all(
    store=Depends(get_credential_store),
    oauth_client: GoogleOAuthClient = Depends(get_oauth_client),
    aggregator: StepAggregator = Depends(get_step_aggregator),
    sync_settings: SyncSettings = Depends(get_settings),
):
    orchestrator = BatchSyncOrchestrator(
        store=store,
        token_refresher=oauth_client,
        aggregator=aggregator,
        logger=logger,
        settings=sync_settings,
    )
    outcome = orchestrator.run_sync()
    return {
        "message": outcome.message(),
        "results": outcome.results(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/token-status")
def token_status(store=Depends(get_credential_store)):
    report = build_token_status(store.list())
    return report.model_dump(by_alias=True)


@app.get("/leaderboard")
def leaderboard(limit: int = Query(50, ge=1, le=500), store=Depends(get_credential_store)):
    return [entry.model_dump() for entry in build_leaderboard(store.list(), limit=limit)]


@app.post("/auth/google/callback")
def google_auth_callback(
    body: GoogleAuthCallbackBody = Body(...),
    store=Depends(get_credential_store),
    oauth_client: GoogleOAuthClient = Depends(get_oauth_client),
):
    if not body.code:
        raise HTTPException(status_code=400, detail="Authorization code required")
    service = GoogleLoginService(store=store, oauth_client=oauth_client, logger=logger)
    try:
        return service.complete_login(body.code)
    except (requests.RequestException, KeyError, ValidationError) as exc:
        # Transport errors and token or userinfo payloads missing required fields.
        logger.warning(f"[login] Google token exchange failed: {exc!r}")
        raise HTTPException(status_code=502, detail=f"Failed to authenticate with Google: {exc}")

import os
from typing import Optional

from pydantic import BaseModel


GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v3/userinfo"


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() == "true"


class GoogleOAuthConfig(BaseModel):
    """Client credentials for the Google token endpoint.

    Loading never fails; `GoogleOAuthClient` refuses to start without a secret.
    """

    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    redirect_uri: str = "postmessage"
    token_url: str = GOOGLE_TOKEN_URL
    userinfo_url: str = GOOGLE_USERINFO_URL

    @classmethod
    def from_env(cls) -> "GoogleOAuthConfig":
        return cls(
            client_id=os.getenv("GOOGLE_CLIENT_ID", "").strip() or None,
            client_secret=os.getenv("GOOGLE_CLIENT_SECRET", "").strip() or None,
            redirect_uri=os.getenv("GOOGLE_REDIRECT_URI", "postmessage"),
            token_url=os.getenv("GOOGLE_TOKEN_URL", GOOGLE_TOKEN_URL),
            userinfo_url=os.getenv("GOOGLE_USERINFO_URL", GOOGLE_USERINFO_URL),
        )


class SyncSettings(BaseModel):
    http_timeout_seconds: float = 15.0
    # Leaderboard day boundary: UTC+5:30
    reference_utc_offset_minutes: int = 330
    default_token_lifetime_seconds: int = 3600
    max_workers: int = 1
    timing_enabled: bool = True
    timing_warn_ms: float = 2000.0

    @classmethod
    def from_env(cls) -> "SyncSettings":
        return cls(
            http_timeout_seconds=float(os.getenv("HTTP_TIMEOUT_SECONDS", "15")),
            reference_utc_offset_minutes=int(os.getenv("STEP_REFERENCE_UTC_OFFSET_MINUTES", "330")),
            max_workers=max(1, int(os.getenv("SYNC_MAX_WORKERS", "1"))),
            timing_enabled=_env_bool("SYNC_TIMING_ENABLED", "true"),
            timing_warn_ms=float(os.getenv("SYNC_TIMING_WARN_MS", "2000")),
        )

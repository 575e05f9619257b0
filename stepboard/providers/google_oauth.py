from typing import Dict, Any, Optional

import requests

from stepboard.config import GoogleOAuthConfig
from stepboard.errors import ConfigurationError, RefreshFailure, RefreshFailureKind
from stepboard.models import AuthorizationTokens, GoogleUserInfo, RefreshedToken


DEFAULT_TOKEN_LIFETIME_SECONDS = 3600
REVOKED_STATUS_CODES = {400, 401}


class GoogleOAuthClient:
    """Token endpoint exchanges for a single Google OAuth client.

    `refresh` is the offline path used by the batch sync; `exchange_code` and
    `fetch_userinfo` back the interactive sign-in callback. Nothing here is
    persisted; callers own the write-back.
    """

    def __init__(self, config: GoogleOAuthConfig, timeout: float = 15.0):
        if not config.client_id:
            raise ConfigurationError("GOOGLE_CLIENT_ID not configured")
        if not config.client_secret:
            raise ConfigurationError("GOOGLE_CLIENT_SECRET not configured")
        self.config = config
        self.timeout = timeout

    def _post_token(self, data: Dict[str, Any]) -> requests.Response:
        payload = {
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret,
            **data,
        }
        return requests.post(
            self.config.token_url,
            data=payload,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            timeout=self.timeout,
        )

    def refresh(self, refresh_token: str) -> RefreshedToken:
        try:
            resp = self._post_token({"grant_type": "refresh_token", "refresh_token": refresh_token})
        except requests.RequestException as exc:
            raise RefreshFailure(RefreshFailureKind.TRANSIENT, f"Token endpoint unreachable: {exc}") from exc

        if resp.status_code in REVOKED_STATUS_CODES:
            raise RefreshFailure(
                RefreshFailureKind.REVOKED,
                f"Refresh token rejected: {_error_description(resp)}",
                status_code=resp.status_code,
            )
        if resp.status_code != 200:
            raise RefreshFailure(
                RefreshFailureKind.TRANSIENT,
                f"Token endpoint returned HTTP {resp.status_code}",
                status_code=resp.status_code,
            )

        try:
            tok = resp.json()
        except ValueError as exc:
            raise RefreshFailure(RefreshFailureKind.TRANSIENT, "Token endpoint returned invalid JSON") from exc
        if not isinstance(tok, dict) or not tok.get("access_token"):
            raise RefreshFailure(RefreshFailureKind.TRANSIENT, "Token endpoint response has no access_token")

        return RefreshedToken(
            access_token=tok["access_token"],
            expires_in=_token_lifetime(tok.get("expires_in")),
            refresh_token=tok.get("refresh_token") or None,
        )

    def exchange_code(self, code: str, redirect_uri: Optional[str] = None) -> AuthorizationTokens:
        resp = self._post_token(
            {
                "code": code,
                "redirect_uri": redirect_uri or self.config.redirect_uri,
                "grant_type": "authorization_code",
            }
        )
        resp.raise_for_status()
        tok = resp.json()
        return AuthorizationTokens(
            access_token=tok["access_token"],
            expires_in=_token_lifetime(tok.get("expires_in")),
            refresh_token=tok.get("refresh_token") or None,
            scope=tok.get("scope"),
            token_type=tok.get("token_type"),
        )

    def fetch_userinfo(self, access_token: str) -> GoogleUserInfo:
        resp = requests.get(
            self.config.userinfo_url,
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return GoogleUserInfo(**resp.json())


def _token_lifetime(value: Any) -> int:
    # expires_in may arrive as a string or a float, e.g. "3599.0".
    try:
        seconds = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return DEFAULT_TOKEN_LIFETIME_SECONDS
    return seconds if seconds > 0 else DEFAULT_TOKEN_LIFETIME_SECONDS


def _error_description(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return f"HTTP {resp.status_code}"
    if isinstance(body, dict):
        return body.get("error_description") or body.get("error") or f"HTTP {resp.status_code}"
    return f"HTTP {resp.status_code}"

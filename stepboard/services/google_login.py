from datetime import datetime, timezone
from typing import Any, Dict

from stepboard.models import AuthorizationTokens, GoogleUserInfo, SyncStatus, normalize_email


class GoogleLoginService:
    """Records an interactive Google sign-in in the credential store.

    Google only returns a refresh token on first consent (or forced
    re-consent), so a login without one keeps whatever is already stored.
    """

    def __init__(self, *, store, oauth_client, logger):
        self.store = store
        self.oauth_client = oauth_client
        self.logger = logger

    def complete_login(self, code: str) -> Dict[str, Any]:
        tokens = self.oauth_client.exchange_code(code)
        self.logger.info(
            f"[login] token exchange ok, refresh_token_received={bool(tokens.refresh_token)}"
        )
        userinfo = self.oauth_client.fetch_userinfo(tokens.access_token)
        return self.record_login(userinfo, tokens)

    def record_login(self, userinfo: GoogleUserInfo, tokens: AuthorizationTokens) -> Dict[str, Any]:
        email = normalize_email(userinfo.email)
        existing = self.store.get(email)
        now = datetime.now(timezone.utc)

        fields: Dict[str, Any] = {
            "email": email,
            "displayName": userinfo.name or (existing.display_name if existing else None) or "Google User",
            "accessToken": tokens.access_token,
            "tokenExpiryEpochMillis": int(now.timestamp() * 1000) + tokens.expires_in * 1000,
            "lastLogin": now.isoformat(),
            "googleFitEnabled": True,
        }
        if userinfo.picture:
            fields["picture"] = userinfo.picture
        if existing is None:
            fields["stepsToday"] = 0

        if tokens.refresh_token:
            fields["refreshToken"] = tokens.refresh_token
            fields["syncStatus"] = SyncStatus.VALID.value
            self.logger.info(f"[login] new refresh token stored for {email}")
        elif existing is not None and existing.has_refresh_token:
            self.logger.info(f"[login] keeping existing refresh token for {email}")
        else:
            fields["syncStatus"] = SyncStatus.MISSING.value
            self.logger.warning(f"[login] no refresh token available for {email}")

        self.store.merge(email, fields)
        stored = self.store.get(email)
        return {
            "message": "Login successful",
            "user": {
                "name": fields["displayName"],
                "email": email,
                "picture": userinfo.picture,
                "steps": stored.steps_today if stored else 0,
                "isFirstLogin": existing is None,
            },
            "hasRefreshToken": bool(stored and stored.has_refresh_token),
        }

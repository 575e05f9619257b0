from typing import Iterable

from stepboard.models import TokenStatusEntry, TokenStatusReport, TokenStatusSummary, UserCredential


def build_token_status(users: Iterable[UserCredential]) -> TokenStatusReport:
    """Per-user refresh token health, for operators deciding who must re-login."""
    entries = [
        TokenStatusEntry(
            email=user.email,
            name=user.display_name,
            has_refresh_token=user.has_refresh_token,
            has_access_token=user.has_access_token,
            last_login=user.last_login,
            last_synced=user.last_synced_at,
            token_status=user.effective_token_status(),
            sync_enabled=user.sync_enabled,
        )
        for user in users
    ]
    with_refresh = sum(1 for entry in entries if entry.has_refresh_token)
    summary = TokenStatusSummary(
        total=len(entries),
        with_refresh_token=with_refresh,
        without_refresh_token=len(entries) - with_refresh,
        can_sync_offline=with_refresh,
    )
    return TokenStatusReport(users=entries, summary=summary)

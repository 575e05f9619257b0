"""Offline step sync for every stored user.

Each run refreshes every user's Google access token from the stored refresh
token, pulls today's step total and writes it back to the user's document.
One user's failure is recorded in the report and never stops the batch; only
an unreachable store (or missing OAuth configuration, raised when the OAuth
client is built) fails the run as a whole.
"""
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError

from stepboard.config import SyncSettings
from stepboard.errors import (
    AggregationFailure,
    AggregationFailureKind,
    RefreshFailure,
    RefreshFailureKind,
)
from stepboard.models import SyncIssue, SyncOutcome, SyncStatus, SyncSuccess, UserCredential, normalize_email
from stepboard.services.instrumentation import timed_call
from stepboard.services.step_aggregator import day_window


NO_TOKENS_REASON = "no tokens stored; user needs to sign in with Google"
NO_REFRESH_TOKEN_REASON = "no refresh token; user must re-consent with Google to enable offline sync"
REVOKED_REASON = "refresh token revoked or expired; user needs to re-login"
NO_USABLE_TOKEN_REASON = "no usable token: refresh failed and no access token is stored"
UNREADABLE_DOCUMENT_REASON = "unreadable user document"

SUCCEEDED = "succeeded"
FAILED = "failed"
SKIPPED = "skipped"


def classify_aggregation_failure(exc: AggregationFailure) -> str:
    if exc.kind is AggregationFailureKind.UNAUTHORIZED:
        return "access token rejected by Google Fit (401); user needs to re-login"
    if exc.kind is AggregationFailureKind.FORBIDDEN:
        return "access denied (403); user may have revoked fitness permissions"
    return f"step aggregation failed: {exc}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BatchSyncOrchestrator:
    def __init__(
        self,
        *,
        store,
        token_refresher,
        aggregator,
        logger,
        settings: Optional[SyncSettings] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.token_refresher = token_refresher
        self.aggregator = aggregator
        self.logger = logger
        self.settings = settings or SyncSettings()
        self.clock = clock

    def _timed(self, operation: str, fn, *args, subject: Optional[str] = None, expected_errors: tuple = (), **kwargs):
        return timed_call(
            self.logger,
            operation,
            fn,
            *args,
            enabled=self.settings.timing_enabled,
            subject=subject,
            warn_threshold_ms=self.settings.timing_warn_ms,
            expected_errors=expected_errors,
            **kwargs,
        )

    def run_sync(self) -> SyncOutcome:
        # A store that cannot list users aborts the run: StoreUnavailable propagates.
        # Documents are parsed per user so one malformed record only fails that user.
        users = self.store.list_documents()
        window = day_window(self.clock(), self.settings.reference_utc_offset_minutes)
        self.logger.info(
            f"[sync] processing {len(users)} users, window_start_ms={window[0]}, window_end_ms={window[1]}"
        )

        if self.settings.max_workers > 1 and len(users) > 1:
            # Leaving the context waits for every dispatched user to finish.
            with ThreadPoolExecutor(max_workers=self.settings.max_workers) as pool:
                results = list(pool.map(lambda document: self._sync_user_safely(document, window), users))
        else:
            results = [self._sync_user_safely(document, window) for document in users]

        outcome = SyncOutcome()
        for bucket, entry in results:
            getattr(outcome, bucket).append(entry)

        self.logger.info(
            f"[sync] complete: {len(outcome.succeeded)} success, "
            f"{len(outcome.failed)} failed, {len(outcome.skipped)} skipped"
        )
        return outcome

    def _sync_user_safely(self, document: Tuple[str, Dict[str, Any]], window: Tuple[int, int]) -> Tuple[str, Any]:
        doc_id, data = document
        email = normalize_email((data or {}).get("email") or doc_id)
        try:
            user = UserCredential.from_document(doc_id, data)
        except ValidationError as exc:
            fields = ", ".join(str(error["loc"][0]) for error in exc.errors() if error.get("loc"))
            self.logger.warning(f"[sync] unreadable user document {doc_id}: invalid {fields}")
            return FAILED, SyncIssue(email=email, reason=f"{UNREADABLE_DOCUMENT_REASON} (invalid {fields})")
        try:
            return self._sync_user(user, window)
        except Exception as exc:
            self.logger.exception(f"[sync] unexpected error for {user.email}: {exc}")
            return FAILED, SyncIssue(email=user.email, reason=f"unexpected error: {exc}")

    def _sync_user(self, user: UserCredential, window: Tuple[int, int]) -> Tuple[str, Any]:
        email = user.email

        if not user.has_refresh_token:
            reason = NO_REFRESH_TOKEN_REASON if user.has_access_token else NO_TOKENS_REASON
            self.logger.info(f"[sync] skipped {email}: {reason}")
            return SKIPPED, SyncIssue(email=email, reason=reason)

        token_refreshed = False
        try:
            refreshed = self._timed(
                "sync.refresh",
                self.token_refresher.refresh,
                user.refresh_token,
                subject=email,
                expected_errors=(RefreshFailure,),
            )
        except RefreshFailure as exc:
            if exc.kind is RefreshFailureKind.REVOKED:
                self.logger.warning(f"[sync] refresh token revoked for {email}: {exc}")
                self.store.merge(
                    email,
                    {"syncStatus": SyncStatus.EXPIRED.value, "lastSyncError": REVOKED_REASON},
                )
                return FAILED, SyncIssue(email=email, reason=REVOKED_REASON)
            if not user.has_access_token:
                self.logger.warning(f"[sync] refresh failed for {email} and no access token stored: {exc}")
                return FAILED, SyncIssue(email=email, reason=NO_USABLE_TOKEN_REASON)
            self.logger.warning(f"[sync] refresh failed for {email}, trying stored access token: {exc}")
            used_token = user.access_token
        else:
            self.store.merge(email, self._refreshed_fields(refreshed))
            used_token = refreshed.access_token
            token_refreshed = True
            self.logger.info(f"[sync] token refreshed for {email}")

        try:
            steps = self._timed(
                "sync.aggregate",
                self.aggregator.aggregate_steps,
                used_token,
                window[0],
                window[1],
                label=email,
                subject=email,
                expected_errors=(AggregationFailure,),
            )
        except AggregationFailure as exc:
            reason = classify_aggregation_failure(exc)
            self.logger.warning(f"[sync] failed for {email}: {reason}")
            if exc.kind is AggregationFailureKind.UNAUTHORIZED:
                self.store.merge(
                    email,
                    {"lastSyncError": reason, "lastSyncAttempt": self.clock().isoformat()},
                )
            return FAILED, SyncIssue(email=email, reason=reason)

        self.store.merge(
            email,
            {"stepsToday": steps, "lastSyncedAt": self.clock().isoformat(), "lastSyncError": None},
        )
        self.logger.info(f"[sync] {email}: {steps} steps{' (token refreshed)' if token_refreshed else ''}")
        return SUCCEEDED, SyncSuccess(email=email, steps=steps, token_refreshed=token_refreshed)

    def _refreshed_fields(self, refreshed) -> Dict[str, Any]:
        lifetime = refreshed.expires_in or self.settings.default_token_lifetime_seconds
        expiry = self.clock() + timedelta(seconds=lifetime)
        fields: Dict[str, Any] = {
            "accessToken": refreshed.access_token,
            "tokenExpiryEpochMillis": int(expiry.timestamp() * 1000),
            "syncStatus": SyncStatus.VALID.value,
        }
        # Only a rotated token is written; an absent one must not clear the stored value.
        if refreshed.refresh_token:
            fields["refreshToken"] = refreshed.refresh_token
        return fields


def summarize(outcome: SyncOutcome) -> List[str]:
    """One line per user, used by the CLI."""
    lines = [f"OK    {item.email}: {item.steps} steps" for item in outcome.succeeded]
    lines += [f"FAIL  {item.email}: {item.reason}" for item in outcome.failed]
    lines += [f"SKIP  {item.email}: {item.reason}" for item in outcome.skipped]
    return lines

from __future__ import annotations
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, ConfigDict, Field, field_validator


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class SyncStatus(str, Enum):
    VALID = "valid"
    MISSING = "missing"
    EXPIRED = "expired"


# --- Stored user document ---

class UserCredential(BaseModel):
    """One user document in the credential store.

    Attributes are snake_case; the persisted document uses the camelCase aliases.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    email: str
    display_name: Optional[str] = Field(default=None, alias="displayName")
    picture: Optional[str] = None
    access_token: Optional[str] = Field(default=None, alias="accessToken")
    refresh_token: Optional[str] = Field(default=None, alias="refreshToken")
    token_expiry_epoch_millis: Optional[int] = Field(default=None, alias="tokenExpiryEpochMillis")
    steps_today: int = Field(default=0, alias="stepsToday")
    last_synced_at: Optional[str] = Field(default=None, alias="lastSyncedAt")
    sync_status: Optional[SyncStatus] = Field(default=None, alias="syncStatus")
    last_sync_error: Optional[str] = Field(default=None, alias="lastSyncError")
    last_sync_attempt: Optional[str] = Field(default=None, alias="lastSyncAttempt")
    last_login: Optional[str] = Field(default=None, alias="lastLogin")
    sync_enabled: bool = Field(default=False, alias="googleFitEnabled")

    @field_validator("email", mode="before")
    @classmethod
    def _normalize_email(cls, value):
        return normalize_email(value)

    @field_validator("last_synced_at", "last_sync_attempt", "last_login", mode="before")
    @classmethod
    def _timestamp_to_iso(cls, value):
        # Firestore hands back native timestamps (datetime subclasses) for server-written fields.
        if isinstance(value, datetime):
            return value.isoformat()
        return value

    @field_validator("steps_today", mode="before")
    @classmethod
    def _steps_default(cls, value):
        return 0 if value is None else value

    @field_validator("sync_enabled", mode="before")
    @classmethod
    def _enabled_default(cls, value):
        return bool(value)

    @classmethod
    def from_document(cls, doc_id: str, data: Optional[Dict[str, Any]]) -> "UserCredential":
        payload = dict(data or {})
        if not payload.get("email"):
            payload["email"] = doc_id
        return cls.model_validate(payload)

    @property
    def has_refresh_token(self) -> bool:
        return bool(self.refresh_token)

    @property
    def has_access_token(self) -> bool:
        return bool(self.access_token)

    def effective_token_status(self) -> SyncStatus:
        if self.sync_status is not None:
            return self.sync_status
        return SyncStatus.VALID if self.has_refresh_token else SyncStatus.MISSING


# --- OAuth payloads ---

class RefreshedToken(BaseModel):
    """Result of a successful refresh-token exchange."""
    access_token: str
    expires_in: int = 3600
    refresh_token: Optional[str] = None


class AuthorizationTokens(BaseModel):
    """Result of an authorization-code exchange."""
    access_token: str
    expires_in: int = 3600
    refresh_token: Optional[str] = None
    scope: Optional[str] = None
    token_type: Optional[str] = None


class GoogleUserInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    email: str
    name: Optional[str] = None
    picture: Optional[str] = None


class GoogleAuthCallbackBody(BaseModel):
    code: Optional[str] = None


# --- Sync report ---

class SyncSuccess(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str
    steps: int
    token_refreshed: bool = Field(default=False, alias="tokenRefreshed")


class SyncIssue(BaseModel):
    """A failed or skipped user with a human-readable reason."""
    email: str
    reason: str


class SyncOutcome(BaseModel):
    succeeded: List[SyncSuccess] = Field(default_factory=list)
    failed: List[SyncIssue] = Field(default_factory=list)
    skipped: List[SyncIssue] = Field(default_factory=list)

    def message(self) -> str:
        return (
            f"Synced {len(self.succeeded)} users, {len(self.failed)} failed, "
            f"{len(self.skipped)} skipped"
        )

    def results(self) -> Dict[str, List[Dict[str, Any]]]:
        return {
            "success": [item.model_dump(by_alias=True) for item in self.succeeded],
            "failed": [item.model_dump() for item in self.failed],
            "skipped": [item.model_dump() for item in self.skipped],
        }


# --- Operational views ---

class TokenStatusEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str
    name: Optional[str] = None
    has_refresh_token: bool = Field(alias="hasRefreshToken")
    has_access_token: bool = Field(alias="hasAccessToken")
    last_login: Optional[str] = Field(default=None, alias="lastLogin")
    last_synced: Optional[str] = Field(default=None, alias="lastSynced")
    token_status: SyncStatus = Field(alias="tokenStatus")
    sync_enabled: bool = Field(default=False, alias="syncEnabled")


class TokenStatusSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total: int
    with_refresh_token: int = Field(alias="withRefreshToken")
    without_refresh_token: int = Field(alias="withoutRefreshToken")
    can_sync_offline: int = Field(alias="canSyncOffline")


class TokenStatusReport(BaseModel):
    users: List[TokenStatusEntry] = Field(default_factory=list)
    summary: TokenStatusSummary


class LeaderboardEntry(BaseModel):
    name: str
    steps: int

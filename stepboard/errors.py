from enum import Enum
from typing import Optional


class StepSyncError(Exception):
    """Base class for errors raised by the sync engine."""


class StoreUnavailable(StepSyncError):
    """The credential store could not be reached or is not configured."""


class ConfigurationError(StepSyncError):
    """Required OAuth client configuration is missing."""


class RefreshFailureKind(str, Enum):
    REVOKED = "revoked"
    TRANSIENT = "transient"


class RefreshFailure(StepSyncError):
    def __init__(self, kind: RefreshFailureKind, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code


class AggregationFailureKind(str, Enum):
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    UNKNOWN = "unknown"


class AggregationFailure(StepSyncError):
    def __init__(self, kind: AggregationFailureKind, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code

    @classmethod
    def from_status(cls, status_code: Optional[int], message: str) -> "AggregationFailure":
        if status_code == 401:
            kind = AggregationFailureKind.UNAUTHORIZED
        elif status_code == 403:
            kind = AggregationFailureKind.FORBIDDEN
        else:
            kind = AggregationFailureKind.UNKNOWN
        return cls(kind, message, status_code=status_code)

"""Shared fixtures and fake Google responses for the sync engine tests."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from unittest.mock import MagicMock

import pytest
import requests

from stepboard.config import GoogleOAuthConfig, SyncSettings
from stepboard.firebase_client import InMemoryCredentialStore
from stepboard.services.step_aggregator import ESTIMATED_STEPS_SOURCE, MERGE_STEP_DELTAS_SOURCE


# 2026-02-23 09:00 UTC == 14:30 at UTC+5:30
FIXED_NOW = datetime(2026, 2, 23, 9, 0, tzinfo=timezone.utc)


def fake_response(status_code: int = 200, payload: Any = None) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status_code
    resp.ok = 200 <= status_code < 300
    resp.json.return_value = payload if payload is not None else {}
    if resp.ok:
        resp.raise_for_status.return_value = None
    else:
        resp.raise_for_status.side_effect = requests.HTTPError(f"HTTP {status_code}", response=resp)
    return resp


def http_error(status_code: int) -> requests.HTTPError:
    return requests.HTTPError(f"HTTP {status_code}", response=fake_response(status_code))


def steps_payload(*counts: int) -> Dict[str, Any]:
    """Aggregate response with one bucket holding one point per count."""
    return {
        "bucket": [
            {
                "startTimeMillis": "0",
                "endTimeMillis": "1",
                "dataset": [
                    {
                        "dataSourceId": "derived:com.google.step_count.delta:com.google.android.gms:aggregated",
                        "point": [{"value": [{"intVal": count, "mapVal": []}]} for count in counts],
                    }
                ],
            }
        ]
    }


class FakeFitClient:
    """Stands in for GoogleFitClient; answers per data source id.

    `responses` maps a source id (None for the merged query) to either an
    aggregate payload or an exception to raise.
    """

    def __init__(self, responses: Dict[Optional[str], Any]):
        self.responses = responses
        self.calls = []
        self.tokens = []

    def __call__(self, access_token: str, timeout: float = 15.0):
        self.tokens.append(access_token)
        return self

    def steps_aggregate(self, start_ms: int, end_ms: int, data_source_id: Optional[str] = None):
        self.calls.append((start_ms, end_ms, data_source_id))
        result = self.responses.get(data_source_id, steps_payload())
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def logger() -> logging.Logger:
    return logging.getLogger("stepboard.tests")


@pytest.fixture
def store() -> InMemoryCredentialStore:
    return InMemoryCredentialStore()


@pytest.fixture
def oauth_config() -> GoogleOAuthConfig:
    return GoogleOAuthConfig(client_id="client-id", client_secret="client-secret")


@pytest.fixture
def sync_settings() -> SyncSettings:
    return SyncSettings(timing_enabled=True, max_workers=1)


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def estimated_source() -> str:
    return ESTIMATED_STEPS_SOURCE


@pytest.fixture
def merge_deltas_source() -> str:
    return MERGE_STEP_DELTAS_SOURCE

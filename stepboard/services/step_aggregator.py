from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import requests
from dateutil import tz

from stepboard.errors import AggregationFailure
from stepboard.providers.google_fit import GoogleFitClient


ESTIMATED_STEPS_SOURCE = "derived:com.google.step_count.delta:com.google.android.gms:estimated_steps"
MERGE_STEP_DELTAS_SOURCE = "derived:com.google.step_count.delta:com.google.android.gms:merge_step_deltas"

# None means "let Google merge every source"; it is the least likely to under-count.
DEFAULT_STEP_SOURCES: Tuple[Optional[str], ...] = (
    None,
    ESTIMATED_STEPS_SOURCE,
    MERGE_STEP_DELTAS_SOURCE,
)


def to_epoch_millis(dt: datetime) -> int:
    return int(dt.timestamp() * 1000)


def day_window(now: Optional[datetime] = None, utc_offset_minutes: int = 330) -> Tuple[int, int]:
    """Return (start_ms, end_ms) for midnight-to-now in a fixed UTC offset.

    The leaderboard's day boundary is the reference zone's midnight, whatever
    timezone the machine running the batch happens to be in.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    reference = tz.tzoffset(None, utc_offset_minutes * 60)
    local_now = now.astimezone(reference)
    midnight = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
    return to_epoch_millis(midnight), to_epoch_millis(now)


def sum_step_points(aggregate: Dict[str, Any]) -> int:
    total = 0
    for bucket in aggregate.get("bucket") or []:
        for dataset in bucket.get("dataset") or []:
            for point in dataset.get("point") or []:
                for value in point.get("value") or []:
                    total += int(value.get("intVal") or 0)
    return total


def _source_label(source: Optional[str]) -> str:
    return source or "merged"


def _status_code(exc: Exception) -> Optional[int]:
    response = getattr(exc, "response", None)
    return getattr(response, "status_code", None)


class StepAggregator:
    """Reduces several Google Fit step sources to one daily count.

    Sources are queried in order until one reports a non-zero total; the
    answer is the largest total seen. A failing source is dropped as long as
    another one answers.
    """

    def __init__(
        self,
        logger,
        client_factory: Callable[..., Any] = GoogleFitClient,
        sources: Sequence[Optional[str]] = DEFAULT_STEP_SOURCES,
        timeout: float = 15.0,
    ):
        if not sources:
            raise ValueError("at least one step source is required")
        self.logger = logger
        self.client_factory = client_factory
        self.sources = tuple(sources)
        self.timeout = timeout

    def aggregate_steps(self, access_token: str, window_start_ms: int, window_end_ms: int, label: str = "") -> int:
        client = self.client_factory(access_token, timeout=self.timeout)
        candidates: List[int] = []
        failures: List[Tuple[Optional[str], Exception]] = []

        for source in self.sources:
            try:
                aggregate = client.steps_aggregate(window_start_ms, window_end_ms, data_source_id=source)
                # A malformed payload excludes the source like a failed request.
                total = sum_step_points(aggregate)
            except (requests.RequestException, ValueError, TypeError, AttributeError) as exc:
                self.logger.warning(
                    f"[aggregate] {label} source={_source_label(source)} failed "
                    f"status={_status_code(exc)} error={exc.__class__.__name__}"
                )
                failures.append((source, exc))
                continue
            self.logger.info(f"[aggregate] {label} source={_source_label(source)} steps={total}")
            candidates.append(total)
            if total > 0:
                break

        if not candidates:
            raise self._failure(failures)
        return max(candidates)

    @staticmethod
    def _failure(failures: List[Tuple[Optional[str], Exception]]) -> AggregationFailure:
        statuses = [_status_code(exc) for _, exc in failures]
        if 401 in statuses:
            status = 401
        elif 403 in statuses:
            status = 403
        else:
            status = next((code for code in statuses if code is not None), None)
        detail = "; ".join(f"{_source_label(source)}: {exc}" for source, exc in failures)
        return AggregationFailure.from_status(status, f"All step sources failed ({detail})")

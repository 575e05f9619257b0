from typing import Dict, Any, Optional
import requests


STEP_COUNT_DELTA = "com.google.step_count.delta"


class GoogleFitClient:
    BASE = "https://www.googleapis.com/fitness/v1"

    def __init__(self, access_token: str, timeout: float = 15.0):
        self.access_token = access_token
        self.timeout = timeout

    def _headers(self):
        return {"Authorization": f"Bearer {self.access_token}", "Content-Type": "application/json"}

    def fetch_aggregated(self, body: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.BASE}/users/me/dataset:aggregate"
        resp = requests.post(url, headers=self._headers(), json=body, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def steps_aggregate(self, start_ms: int, end_ms: int, data_source_id: Optional[str] = None) -> Dict[str, Any]:
        """Single-bucket step total for [start_ms, end_ms].

        Without `data_source_id` Google merges every source it knows about.
        """
        aggregate_by: Dict[str, Any] = {"dataTypeName": STEP_COUNT_DELTA}
        if data_source_id:
            aggregate_by["dataSourceId"] = data_source_id
        body = {
            "aggregateBy": [aggregate_by],
            "bucketByTime": {"durationMillis": max(1, end_ms - start_ms)},
            "startTimeMillis": start_ms,
            "endTimeMillis": end_ms,
        }
        return self.fetch_aggregated(body)

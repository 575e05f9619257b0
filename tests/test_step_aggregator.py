from datetime import datetime, timezone
from unittest.mock import patch

import pytest
import requests

from stepboard.errors import AggregationFailure, AggregationFailureKind
from stepboard.providers.google_fit import GoogleFitClient
from stepboard.services.step_aggregator import StepAggregator, day_window, sum_step_points

from conftest import FakeFitClient, fake_response, http_error, steps_payload


WINDOW = (1_000, 2_000)


class TestDayWindow:
    def test_midnight_in_reference_zone(self):
        # 09:00 UTC is 14:30 at UTC+5:30; that day's midnight is 18:30 UTC the day before.
        now = datetime(2026, 2, 23, 9, 0, tzinfo=timezone.utc)
        start_ms, end_ms = day_window(now, utc_offset_minutes=330)
        assert start_ms == int(datetime(2026, 2, 22, 18, 30, tzinfo=timezone.utc).timestamp() * 1000)
        assert end_ms == int(now.timestamp() * 1000)

    def test_reference_day_can_be_ahead_of_utc_day(self):
        # 20:00 UTC on the 22nd is already 01:30 on the 23rd at UTC+5:30.
        now = datetime(2026, 2, 22, 20, 0, tzinfo=timezone.utc)
        start_ms, _ = day_window(now, utc_offset_minutes=330)
        assert start_ms == int(datetime(2026, 2, 22, 18, 30, tzinfo=timezone.utc).timestamp() * 1000)

    def test_naive_datetimes_are_treated_as_utc(self):
        aware = datetime(2026, 2, 23, 9, 0, tzinfo=timezone.utc)
        assert day_window(aware.replace(tzinfo=None)) == day_window(aware)


class TestSumStepPoints:
    def test_sums_every_point_across_buckets(self):
        payload = steps_payload(100, 250)
        payload["bucket"].append(steps_payload(5)["bucket"][0])
        assert sum_step_points(payload) == 355

    def test_empty_payloads(self):
        assert sum_step_points({}) == 0
        assert sum_step_points({"bucket": [{"dataset": [{"point": []}]}]}) == 0
        assert sum_step_points({"bucket": [{"dataset": [{"point": [{"value": [{"fpVal": 1.5}]}]}]}]}) == 0


class TestStepAggregator:
    def test_merged_source_is_queried_first_and_wins_when_non_zero(self, logger):
        fake = FakeFitClient({None: steps_payload(4200)})
        steps = StepAggregator(logger, client_factory=fake).aggregate_steps("token", *WINDOW)

        assert steps == 4200
        assert [call[2] for call in fake.calls] == [None]
        assert fake.tokens == ["token"]

    def test_falls_through_zero_sources_and_takes_max(self, logger, estimated_source, merge_deltas_source):
        fake = FakeFitClient(
            {
                None: steps_payload(0),
                estimated_source: steps_payload(1500),
                merge_deltas_source: steps_payload(800),
            }
        )
        steps = StepAggregator(logger, client_factory=fake).aggregate_steps("token", *WINDOW)

        assert steps == 1500
        assert [call[2] for call in fake.calls] == [None, estimated_source]

    def test_one_failing_source_does_not_abort(self, logger, estimated_source):
        fake = FakeFitClient({None: http_error(500), estimated_source: steps_payload(900)})
        steps = StepAggregator(logger, client_factory=fake).aggregate_steps("token", *WINDOW)
        assert steps == 900

    def test_timeout_is_excluded_like_any_failure(self, logger, estimated_source, merge_deltas_source):
        fake = FakeFitClient(
            {
                None: requests.Timeout("read timed out"),
                estimated_source: steps_payload(0),
                merge_deltas_source: steps_payload(321),
            }
        )
        assert StepAggregator(logger, client_factory=fake).aggregate_steps("token", *WINDOW) == 321

    def test_fractional_int_val_excludes_the_source(self, logger, estimated_source):
        bad = steps_payload(1)
        bad["bucket"][0]["dataset"][0]["point"][0]["value"][0]["intVal"] = "12.5"
        fake = FakeFitClient({None: bad, estimated_source: steps_payload(700)})

        assert StepAggregator(logger, client_factory=fake).aggregate_steps("token", *WINDOW) == 700

    def test_non_object_payload_excludes_the_source(self, logger, estimated_source, merge_deltas_source):
        fake = FakeFitClient(
            {None: ["not", "an", "object"], estimated_source: {"bucket": [None]}, merge_deltas_source: steps_payload(44)}
        )
        assert StepAggregator(logger, client_factory=fake).aggregate_steps("token", *WINDOW) == 44

    def test_only_malformed_payloads_raise_unknown_failure(self, logger, estimated_source, merge_deltas_source):
        fake = FakeFitClient({None: "oops", estimated_source: "oops", merge_deltas_source: "oops"})
        with pytest.raises(AggregationFailure) as excinfo:
            StepAggregator(logger, client_factory=fake).aggregate_steps("token", *WINDOW)
        assert excinfo.value.kind is AggregationFailureKind.UNKNOWN
        assert excinfo.value.status_code is None

    def test_all_zero_is_a_valid_zero(self, logger):
        fake = FakeFitClient({})
        assert StepAggregator(logger, client_factory=fake).aggregate_steps("token", *WINDOW) == 0
        assert len(fake.calls) == 3

    def test_failures_plus_zero_is_zero(self, logger, estimated_source, merge_deltas_source):
        fake = FakeFitClient(
            {None: http_error(500), estimated_source: http_error(500), merge_deltas_source: steps_payload(0)}
        )
        assert StepAggregator(logger, client_factory=fake).aggregate_steps("token", *WINDOW) == 0

    @pytest.mark.parametrize(
        "statuses,kind,status_code",
        [
            ((401, 401, 401), AggregationFailureKind.UNAUTHORIZED, 401),
            ((403, 403, 403), AggregationFailureKind.FORBIDDEN, 403),
            ((500, 403, 401), AggregationFailureKind.UNAUTHORIZED, 401),
            ((500, 502, 500), AggregationFailureKind.UNKNOWN, 500),
        ],
    )
    def test_all_sources_failing_raises_tagged_failure(
        self, logger, estimated_source, merge_deltas_source, statuses, kind, status_code
    ):
        fake = FakeFitClient(
            {
                None: http_error(statuses[0]),
                estimated_source: http_error(statuses[1]),
                merge_deltas_source: http_error(statuses[2]),
            }
        )
        with pytest.raises(AggregationFailure) as excinfo:
            StepAggregator(logger, client_factory=fake).aggregate_steps("token", *WINDOW)
        assert excinfo.value.kind is kind
        assert excinfo.value.status_code == status_code

    def test_transport_failures_everywhere_are_unknown(self, logger, estimated_source, merge_deltas_source):
        error = requests.ConnectionError("dns failure")
        fake = FakeFitClient({None: error, estimated_source: error, merge_deltas_source: error})
        with pytest.raises(AggregationFailure) as excinfo:
            StepAggregator(logger, client_factory=fake).aggregate_steps("token", *WINDOW)
        assert excinfo.value.kind is AggregationFailureKind.UNKNOWN
        assert excinfo.value.status_code is None

    def test_custom_source_order(self, logger, merge_deltas_source):
        fake = FakeFitClient({merge_deltas_source: steps_payload(10)})
        aggregator = StepAggregator(logger, client_factory=fake, sources=[merge_deltas_source])
        assert aggregator.aggregate_steps("token", *WINDOW) == 10

    def test_empty_source_list_rejected(self, logger):
        with pytest.raises(ValueError):
            StepAggregator(logger, sources=[])


class TestGoogleFitClient:
    def test_merged_query_body(self):
        client = GoogleFitClient("token", timeout=3)
        with patch("stepboard.providers.google_fit.requests.post", return_value=fake_response(200, steps_payload(1))) as post:
            client.steps_aggregate(1_000, 61_000)

        args, kwargs = post.call_args
        assert args[0] == "https://www.googleapis.com/fitness/v1/users/me/dataset:aggregate"
        assert kwargs["headers"]["Authorization"] == "Bearer token"
        assert kwargs["timeout"] == 3
        assert kwargs["json"] == {
            "aggregateBy": [{"dataTypeName": "com.google.step_count.delta"}],
            "bucketByTime": {"durationMillis": 60_000},
            "startTimeMillis": 1_000,
            "endTimeMillis": 61_000,
        }

    def test_source_query_includes_data_source_id(self, estimated_source):
        client = GoogleFitClient("token")
        with patch("stepboard.providers.google_fit.requests.post", return_value=fake_response(200, {})) as post:
            client.steps_aggregate(0, 10, data_source_id=estimated_source)
        assert post.call_args.kwargs["json"]["aggregateBy"][0]["dataSourceId"] == estimated_source

    def test_http_errors_propagate(self):
        client = GoogleFitClient("token")
        with patch("stepboard.providers.google_fit.requests.post", return_value=fake_response(401)):
            with pytest.raises(requests.HTTPError):
                client.steps_aggregate(0, 10)

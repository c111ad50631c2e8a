"""
Unit tests for itinerary_agents/planning_agent.py

Tests cover:
- Parameter validation (InvalidRequest before any model call)
- The four reference flows: clean JSON, prose, incomplete JSON, provider down
- Retries with exponential backoff, non-transient errors, cancellation
- Repair from "Day N" text, wrapped and fenced payloads, extra keys
- Metadata (origin, reason, day_sources, attempts, generated_at) and metrics
"""
import json
import threading
import pytest
from dataclasses import replace
from datetime import date
from unittest.mock import MagicMock, call

from conftest import NOW, TODAY, make_day
from TripParameters import DateRange
from itinerary_agents.errors import InvalidRequest
from itinerary_agents.fallback import build_fallback_itinerary
from itinerary_agents.planning_agent import PlannerConfig, validate_trip_parameters


DAY_TEXT = (
    "Day 1: Old Lisbon\n"
    "09:00 Visit the Castelo de Sao Jorge for the views. 13:00 Lunch at Time Out Market.\n"
    "Day 2: Belem\n"
    "10am Explore the Jeronimos Monastery. 7pm Dinner at Cervejaria Ramiro.\n"
)


# ---------------------------------------------------------------------------
# validate_trip_parameters
# ---------------------------------------------------------------------------

class TestValidateTripParameters:
    def test_valid_trip_passes(self, trip):
        validate_trip_parameters(trip)

    @pytest.mark.parametrize("field, value", [
        ("duration_days", 0),
        ("duration_days", -2),
        ("duration_days", 2.5),
        ("total_budget", 0),
        ("total_budget", -100),
        ("total_budget", float("nan")),
        ("traveler_count", 0),
        ("destination", "   "),
    ])
    def test_rejects_bad_field(self, trip, field, value):
        with pytest.raises(InvalidRequest):
            validate_trip_parameters(replace(trip, **{field: value}))

    def test_rejects_inverted_date_range(self, trip):
        bad = replace(trip, date_range=DateRange(date(2026, 6, 3), date(2026, 6, 1)))
        with pytest.raises(InvalidRequest, match="before it starts"):
            validate_trip_parameters(bad)

    def test_invalid_request_is_a_value_error(self, trip):
        with pytest.raises(ValueError):
            validate_trip_parameters(replace(trip, duration_days=0))


# ---------------------------------------------------------------------------
# PlannerConfig
# ---------------------------------------------------------------------------

class TestPlannerConfig:
    def test_defaults(self):
        cfg = PlannerConfig()
        assert (cfg.max_retries, cfg.retry_delay, cfg.timeout) == (3, 1.0, 60.0)
        assert (cfg.max_tokens, cfg.temperature) == (4000, 0.3)

    def test_backoff_doubles(self):
        cfg = PlannerConfig(retry_delay=0.5)
        assert [cfg.backoff(a) for a in (1, 2, 3)] == [0.5, 1.0, 2.0]

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("ITINERARY_MAX_RETRIES", "5")
        monkeypatch.setenv("ITINERARY_RETRY_DELAY", "0.25")
        monkeypatch.setenv("ITINERARY_TIMEOUT", "30")
        cfg = PlannerConfig.from_env()
        assert cfg.max_retries == 5
        assert cfg.retry_delay == 0.25
        assert cfg.timeout == 30.0
        assert cfg.max_tokens == 4000

    def test_from_env_keeps_at_least_one_attempt(self, monkeypatch):
        monkeypatch.setenv("ITINERARY_MAX_RETRIES", "0")
        assert PlannerConfig.from_env().max_retries == 1


# ---------------------------------------------------------------------------
# generate_itinerary: reference flows
# ---------------------------------------------------------------------------

class TestReferenceFlows:
    def test_clean_json_is_returned_unchanged(self, trip, model_plan, make_planner):
        planner = make_planner(MagicMock(return_value=json.dumps(model_plan)))
        result = planner.generate_itinerary(trip)

        assert result.origin == "model"
        assert result.reason is None
        assert result.days == model_plan
        assert result.metadata["partial"] is False
        assert result.metadata["attempts"] == 1

    def test_prose_without_json_falls_back(self, trip, make_planner):
        planner = make_planner(MagicMock(return_value="I'm sorry, I can't plan that trip right now."))
        result = planner.generate_itinerary(trip)

        assert result.origin == "fallback"
        assert result.reason == "MalformedPayload"
        assert result.day_keys() == ["day1", "day2", "day3"]
        assert result.days == build_fallback_itinerary(trip, "MalformedPayload", TODAY).days

    def test_missing_day_is_synthesized(self, trip, model_plan, make_planner):
        del model_plan["day3"]
        planner = make_planner(MagicMock(return_value=json.dumps(model_plan)))
        result = planner.generate_itinerary(trip)

        assert result.origin == "model"
        assert result.reason == "SchemaViolation"
        assert result.metadata["partial"] is True
        assert result.metadata["day_sources"] == {
            "day1": "model", "day2": "model", "day3": "synthesized",
        }
        assert result.days["day1"] == model_plan["day1"]
        assert result.days["day3"]["date"] == "2026-06-03"
        assert result.days["day3"]["activities"]

    def test_five_day_trip_with_three_days_returned(self, trip, model_plan, make_planner):
        five_days = replace(trip, duration_days=5, date_range=None)
        result = make_planner(MagicMock(return_value=json.dumps(model_plan))).generate_itinerary(five_days)

        assert result.day_keys() == ["day1", "day2", "day3", "day4", "day5"]
        assert result.metadata["day_sources"]["day3"] == "model"
        assert result.metadata["day_sources"]["day5"] == "synthesized"

    @pytest.mark.parametrize("raw", [
        "{}",
        "[1, 2, 3]",
        '{"day1": 5, "day2": null}',
        '{"day1": {"activities": [], "meals": {}}}',
        "}{ garbage ]",
        "Day 2 Day 2 Day 2",
    ])
    def test_always_exact_day_keys(self, trip, make_planner, raw):
        result = make_planner(MagicMock(return_value=raw)).generate_itinerary(trip)
        assert result.day_keys() == ["day1", "day2", "day3"]

    def test_provider_down_after_three_attempts(self, trip, make_planner, metrics):
        complete = MagicMock(side_effect=TimeoutError("provider timed out"))
        planner = make_planner(complete)
        result = planner.generate_itinerary(trip)

        assert complete.call_count == 3
        assert result.origin == "fallback"
        assert result.reason == "ModelUnavailable"
        assert result.metadata["attempts"] == 3
        assert result.day_keys() == ["day1", "day2", "day3"]
        assert metrics.get("retry_attempts") == 2
        assert metrics.get("model_unavailable") == 1


# ---------------------------------------------------------------------------
# Invoking: retries, errors, cancellation
# ---------------------------------------------------------------------------

class TestInvoking:
    def test_invalid_request_never_calls_model(self, trip, make_planner, metrics):
        complete = MagicMock()
        planner = make_planner(complete)
        with pytest.raises(InvalidRequest):
            planner.generate_itinerary(replace(trip, duration_days=0))
        complete.assert_not_called()
        assert metrics.get("invalid_requests") == 1

    def test_backoff_waits_double(self, trip, make_planner):
        planner = make_planner(MagicMock(side_effect=ConnectionError("reset")), retry_delay=1.0)
        planner.generate_itinerary(trip)
        assert planner.sleep.call_args_list == [call(1.0), call(2.0)]

    def test_recovers_on_second_attempt(self, trip, model_plan, make_planner):
        complete = MagicMock(side_effect=[TimeoutError("slow"), json.dumps(model_plan)])
        result = make_planner(complete).generate_itinerary(trip)
        assert result.origin == "model"
        assert result.metadata["attempts"] == 2

    def test_non_transient_error_is_not_retried(self, trip, make_planner):
        complete = MagicMock(side_effect=PermissionError("invalid api key"))
        result = make_planner(complete).generate_itinerary(trip)
        assert complete.call_count == 1
        assert result.reason == "ModelUnavailable"
        assert "invalid api key" in result.metadata["detail"]

    def test_call_uses_configured_settings(self, trip, model_plan, make_planner):
        complete = MagicMock(return_value=json.dumps(model_plan))
        make_planner(complete, timeout=12.0, max_tokens=1234).generate_itinerary(trip)
        kwargs = complete.call_args.kwargs
        assert kwargs["timeout"] == 12.0
        assert kwargs["max_tokens"] == 1234
        assert kwargs["temperature"] == 0.3
        assert '"day3"' in complete.call_args.args[0]

    def test_cancelled_before_start(self, trip, make_planner):
        complete = MagicMock()
        event = threading.Event()
        event.set()
        result = make_planner(complete).generate_itinerary(trip, cancel_event=event)
        complete.assert_not_called()
        assert result.origin == "fallback"
        assert result.reason == "Cancelled"
        assert result.metadata["attempts"] == 0

    def test_cancelled_during_backoff(self, trip, make_planner):
        event = threading.Event()

        def _fail_and_cancel(*args, **kwargs):
            event.set()
            raise TimeoutError("slow")

        complete = MagicMock(side_effect=_fail_and_cancel)
        result = make_planner(complete, retry_delay=30.0).generate_itinerary(trip, cancel_event=event)
        assert complete.call_count == 1
        assert result.reason == "Cancelled"


# ---------------------------------------------------------------------------
# Parsing and repair paths
# ---------------------------------------------------------------------------

class TestParsingAndRepair:
    def test_fenced_json_with_trailing_commas(self, trip, model_plan, make_planner):
        body = json.dumps(model_plan).replace('"tips": "Wear comfortable shoes"}',
                                              '"tips": "Wear comfortable shoes",}')
        raw = f"Here is your plan:\n```json\n{body}\n```\nEnjoy your trip!"
        result = make_planner(MagicMock(return_value=raw)).generate_itinerary(trip)
        assert result.origin == "model"
        assert result.reason is None
        assert result.days == model_plan

    def test_day_markers_in_prose_are_recovered(self, trip, make_planner):
        result = make_planner(MagicMock(return_value=DAY_TEXT)).generate_itinerary(trip)

        assert result.origin == "model"
        assert result.reason == "MalformedPayload"
        assert result.metadata["day_sources"] == {
            "day1": "text", "day2": "text", "day3": "synthesized",
        }
        assert [a["time"] for a in result.days["day1"]["activities"]] == ["09:00", "13:00"]
        assert [a["time"] for a in result.days["day2"]["activities"]] == ["10:00", "19:00"]

    def test_extra_day_is_dropped(self, trip, model_plan, make_planner):
        model_plan["day4"] = make_day(4)
        result = make_planner(MagicMock(return_value=json.dumps(model_plan))).generate_itinerary(trip)
        assert result.day_keys() == ["day1", "day2", "day3"]
        assert result.reason == "SchemaViolation"
        assert result.metadata["partial"] is False

    def test_non_day_keys_are_dropped(self, trip, model_plan, make_planner):
        model_plan["summary"] = "A lovely trip"
        result = make_planner(MagicMock(return_value=json.dumps(model_plan))).generate_itinerary(trip)
        assert result.day_keys() == ["day1", "day2", "day3"]
        assert result.reason is None

    def test_wrapped_plan_is_unwrapped(self, trip, model_plan, make_planner):
        raw = json.dumps({"itinerary": model_plan})
        result = make_planner(MagicMock(return_value=raw)).generate_itinerary(trip)
        assert result.origin == "model"
        assert result.metadata["day_sources"]["day2"] == "model"
        assert result.days == model_plan

    @pytest.mark.parametrize("raw", ["", None, "   "])
    def test_empty_completion_falls_back(self, trip, make_planner, raw):
        result = make_planner(MagicMock(return_value=raw)).generate_itinerary(trip)
        assert result.origin == "fallback"
        assert result.reason == "MalformedPayload"

    def test_model_costs_are_made_non_negative(self, trip, model_plan, make_planner):
        model_plan["day1"]["activities"][0]["cost"] = -20
        model_plan["day2"]["meals"]["lunch"]["cost"] = "$25"
        result = make_planner(MagicMock(return_value=json.dumps(model_plan))).generate_itinerary(trip)
        assert result.days["day1"]["activities"][0]["cost"] == 0
        assert result.days["day2"]["meals"]["lunch"]["cost"] == 25.0

    def test_overflowing_cost_is_zeroed(self, trip, model_plan, make_planner):
        raw = json.dumps(model_plan).replace('"cost": 15,', '"cost": 1e999,', 1)
        result = make_planner(MagicMock(return_value=raw)).generate_itinerary(trip)
        assert result.origin == "model"
        assert result.reason is None
        assert result.days["day1"]["activities"][0]["cost"] == 0
        json.dumps(result.as_payload(), allow_nan=False)

    @pytest.mark.parametrize("literal", ["NaN", "Infinity", "-Infinity"])
    def test_non_finite_literal_never_reaches_payload(self, trip, model_plan, make_planner, literal):
        raw = json.dumps(model_plan).replace('"cost": 15,', f'"cost": {literal},', 1)
        result = make_planner(MagicMock(return_value=raw)).generate_itinerary(trip)
        assert result.day_keys() == ["day1", "day2", "day3"]
        assert result.reason == "MalformedPayload"
        json.dumps(result.as_payload(), allow_nan=False)


# ---------------------------------------------------------------------------
# Metadata and metrics
# ---------------------------------------------------------------------------

class TestMetadataAndMetrics:
    def test_generated_at_is_stamped(self, trip, model_plan, make_planner):
        result = make_planner(MagicMock(return_value=json.dumps(model_plan))).generate_itinerary(trip)
        assert result.metadata["generated_at"] == NOW.isoformat()

    def test_fallback_is_deterministic(self, trip, make_planner):
        planner = make_planner(MagicMock(return_value="no json here"))
        assert planner.generate_itinerary(trip).days == planner.generate_itinerary(trip).days

    def test_undated_trip_starts_today(self, undated_trip, make_planner):
        result = make_planner(MagicMock(return_value="nothing")).generate_itinerary(undated_trip)
        assert result.days["day1"]["date"] == "2026-05-01"
        assert result.days["day2"]["date"] == "2026-05-02"

    def test_success_counters(self, trip, model_plan, make_planner, metrics):
        make_planner(MagicMock(return_value=json.dumps(model_plan))).generate_itinerary(trip)
        assert metrics.get("requests_total") == 1
        assert metrics.get("model_calls") == 1
        assert metrics.get("model_results") == 1
        assert metrics.get("fallbacks") == 0

    def test_malformed_counters(self, trip, make_planner, metrics):
        make_planner(MagicMock(return_value="prose only")).generate_itinerary(trip)
        assert metrics.get("malformed_payload") == 1
        assert metrics.get("heuristic_repairs") == 1
        assert metrics.get("fallbacks") == 1
        snapshot = metrics.snapshot()
        assert snapshot["fallback_rate"] == "100.00%"
        assert snapshot["model_success_rate"] == "0.00%"

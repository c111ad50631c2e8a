"""
Itinerary planner: one model call, reconciled into a day-keyed plan.

A request moves through these stages:

  INVOKING           call the model (timeout, retries with exponential backoff)
  PARSING            normalise the text and decode it strictly
  VALIDATING         day1..dayN present, each with activities and meals
  HEURISTIC_REPAIR   salvage valid days, read "Day N" spans, synthesize the rest
  FALLBACK           deterministic plan from the trip parameters only

  INVOKING --ok--> PARSING --ok--> VALIDATING --valid--> DONE (origin "model")
     |                |                |
     | retries spent  | malformed      | invalid, first time
     v                v                v
  FALLBACK      HEURISTIC_REPAIR --> VALIDATING --invalid/nothing recovered--> FALLBACK --> DONE

Whatever the model does, the caller gets an ItineraryResult with exactly
day1..dayN. The only error that escapes is InvalidRequest, raised before
the model is called.
"""

from __future__ import annotations

import logging
import math
import os
import threading
import time
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional

from TripParameters import TripParameters

from . import llm
from . import metrics as m
from .errors import InvalidRequest, MalformedPayload, ModelUnavailable
from .fallback import build_fallback_itinerary
from .heuristics import RepairOutcome, repair_itinerary
from .parsing import normalize_response, parse_structured
from .profiles import ITINERARY_PLANNING
from .prompts import build_itinerary_prompt, day_keys
from .result import ORIGIN_MODEL, ItineraryResult
from .validation import normalise_day, validate_candidate

logger = logging.getLogger(__name__)

REASON_CANCELLED = "Cancelled"


@dataclass(frozen=True)
class PlannerConfig:
    max_retries: int = 3
    retry_delay: float = 1.0  # seconds before the 2nd attempt; doubles after that
    timeout: float = 60.0
    max_tokens: int = 4000
    temperature: float = 0.3

    @classmethod
    def from_env(cls) -> "PlannerConfig":
        return cls(
            max_retries=max(int(os.getenv("ITINERARY_MAX_RETRIES", cls.max_retries)), 1),
            retry_delay=float(os.getenv("ITINERARY_RETRY_DELAY", cls.retry_delay)),
            timeout=float(os.getenv("ITINERARY_TIMEOUT", cls.timeout)),
            max_tokens=int(os.getenv("ITINERARY_MAX_TOKENS", cls.max_tokens)),
            temperature=float(os.getenv("ITINERARY_TEMPERATURE", cls.temperature)),
        )

    def backoff(self, attempt: int) -> float:
        """Delay after the given failed attempt (1-based)."""
        return self.retry_delay * (2 ** (attempt - 1))


class Stage(str, Enum):
    INVOKING = "invoking"
    PARSING = "parsing"
    VALIDATING = "validating"
    HEURISTIC_REPAIR = "heuristic_repair"
    FALLBACK = "fallback_generating"
    DONE = "done"


def _positive_number(value: Any) -> bool:
    return (isinstance(value, (int, float)) and not isinstance(value, bool)
            and math.isfinite(value) and value > 0)


def _positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def validate_trip_parameters(params: TripParameters) -> None:
    """Raise InvalidRequest for parameters no plan can be built from."""
    if not isinstance(params.destination, str) or not params.destination.strip():
        raise InvalidRequest("destination is required")
    if not _positive_number(params.total_budget):
        raise InvalidRequest(f"total_budget must be a positive number, got {params.total_budget!r}")
    if not _positive_int(params.duration_days):
        raise InvalidRequest(f"duration_days must be a positive integer, got {params.duration_days!r}")
    if not _positive_int(params.traveler_count):
        raise InvalidRequest(f"traveler_count must be a positive integer, got {params.traveler_count!r}")
    dates = params.date_range
    if dates is not None and dates.end < dates.start:
        raise InvalidRequest(f"date range ends ({dates.end}) before it starts ({dates.start})")


class ItineraryPlanner:
    """Reconciles one model call per request into a complete itinerary.

    All collaborators are injectable: `complete` is the text-completion
    call, `metrics` receives counters, `today`/`now` stand in for the clock
    and `sleep` for backoff waits. The planner holds no per-request state,
    so one instance can serve concurrent requests.
    """

    def __init__(
        self,
        config: Optional[PlannerConfig] = None,
        complete: Optional[Callable[..., str]] = None,
        metrics: Optional[m.MetricsCollector] = None,
        today: Callable[[], date] = date.today,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config or PlannerConfig.from_env()
        self.complete = complete or llm.complete
        self.metrics = metrics or m.NullMetrics()
        self.today = today
        self.now = now
        self.sleep = sleep

    def generate_itinerary(
        self,
        params: TripParameters,
        cancel_event: Optional[threading.Event] = None,
        task: str = "",
    ) -> ItineraryResult:
        self.metrics.increment(m.REQUESTS_TOTAL)
        try:
            validate_trip_parameters(params)
        except InvalidRequest:
            self.metrics.increment(m.INVALID_REQUESTS)
            raise
        return _ReconciliationRun(self, params, cancel_event, task).execute()


class _ReconciliationRun:
    """State for a single request; discarded once the result is built."""

    def __init__(self, planner: ItineraryPlanner, params: TripParameters,
                 cancel_event: Optional[threading.Event], task: str):
        self.planner = planner
        self.config = planner.config
        self.metrics = planner.metrics
        self.params = params
        self.cancel_event = cancel_event
        self.today = planner.today()
        self.prompt = build_itinerary_prompt(params, self.today, task)

        self.attempts = 0
        self.raw_text = ""
        self.candidate: Any = None
        self.repair: Optional[RepairOutcome] = None
        self.reason: Optional[str] = None
        self.detail = ""
        self.result: Optional[ItineraryResult] = None

    def execute(self) -> ItineraryResult:
        handlers = {
            Stage.INVOKING: self._invoke,
            Stage.PARSING: self._parse,
            Stage.VALIDATING: self._validate,
            Stage.HEURISTIC_REPAIR: self._heuristic_repair,
            Stage.FALLBACK: self._fallback,
        }
        stage = Stage.INVOKING
        while stage is not Stage.DONE:
            logger.debug("Itinerary for %s: entering %s", self.params.destination, stage.value)
            stage = handlers[stage]()

        assert self.result is not None
        return self.result.with_metadata(
            attempts=self.attempts,
            generated_at=self.planner.now().isoformat(),
        )

    # -- stages ------------------------------------------------------------

    def _cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def _wait(self, seconds: float) -> None:
        if self.cancel_event is not None:
            self.cancel_event.wait(seconds)
        else:
            self.planner.sleep(seconds)

    def _invoke(self) -> Stage:
        profile = ITINERARY_PLANNING
        last_error: Optional[BaseException] = None
        for attempt in range(1, self.config.max_retries + 1):
            if self._cancelled():
                self.reason, self.detail = REASON_CANCELLED, "request cancelled by caller"
                return Stage.FALLBACK

            self.attempts += 1
            self.metrics.increment(m.MODEL_CALLS)
            try:
                self.raw_text = self.planner.complete(
                    self.prompt,
                    system=profile.system_prompt,
                    max_tokens=self.config.max_tokens,
                    temperature=self.config.temperature,
                    timeout=self.config.timeout,
                ) or ""
                return Stage.PARSING
            except Exception as exc:
                last_error = exc
                if not llm.is_transient(exc):
                    logger.warning("Itinerary model call failed (not retried): %s", exc)
                    break
                logger.warning("Attempt %d/%d failed for itinerary planning: %s",
                               attempt, self.config.max_retries, exc)
                if attempt < self.config.max_retries:
                    self.metrics.increment(m.RETRY_ATTEMPTS)
                    self._wait(self.config.backoff(attempt))

        self.metrics.increment(m.MODEL_UNAVAILABLE)
        error = ModelUnavailable(f"{type(last_error).__name__}: {last_error}")
        self.reason, self.detail = error.reason, error.detail
        return Stage.FALLBACK

    def _parse(self) -> Stage:
        try:
            self.candidate = parse_structured(normalize_response(self.raw_text))
        except MalformedPayload as exc:
            self.metrics.increment(m.MALFORMED_PAYLOAD)
            logger.warning("Itinerary response for %s is not valid JSON: %s",
                           self.params.destination, exc.detail)
            self.reason, self.detail = exc.reason, exc.detail
            return Stage.HEURISTIC_REPAIR
        return Stage.VALIDATING

    def _validate(self) -> Stage:
        if self.repair is not None:
            return self._accept_repair()

        outcome = validate_candidate(self.candidate, self.params)
        if outcome.valid:
            days = {
                key: normalise_day(self.candidate[key], self.params, i, self.today)
                for i, key in enumerate(day_keys(self.params.duration_days), start=1)
            }
            self.metrics.increment(m.MODEL_RESULTS)
            logger.info("Itinerary for %s: %d days accepted from model output",
                        self.params.destination, len(days))
            self.result = ItineraryResult(days=days, metadata={
                "origin": ORIGIN_MODEL,
                "reason": None,
                "detail": "",
                "partial": False,
                "day_sources": {key: "model" for key in days},
            })
            return Stage.DONE

        self.metrics.increment(m.SCHEMA_VIOLATIONS)
        error = outcome.as_error()
        logger.warning("Itinerary for %s failed validation: %s", self.params.destination, error)
        self.reason, self.detail = error.reason, str(error)
        return Stage.HEURISTIC_REPAIR

    def _accept_repair(self) -> Stage:
        repair = self.repair
        outcome = validate_candidate(repair.days, self.params)
        if not outcome.valid:
            self.metrics.increment(m.SCHEMA_VIOLATIONS)
            error = outcome.as_error()
            self.detail = f"{self.detail}; repaired plan still invalid: {error}"
            return Stage.FALLBACK
        if repair.recovered == 0:
            # Nothing came from the model; report it as a plain fallback.
            return Stage.FALLBACK

        self.metrics.increment(m.MODEL_RESULTS)
        self.result = ItineraryResult(days=repair.days, metadata={
            "origin": ORIGIN_MODEL,
            "reason": self.reason,
            "detail": self.detail,
            "partial": repair.partial,
            "day_sources": {key: source.value for key, source in repair.sources.items()},
        })
        return Stage.DONE

    def _heuristic_repair(self) -> Stage:
        self.metrics.increment(m.HEURISTIC_REPAIRS)
        self.repair = repair_itinerary(self.raw_text, self.candidate, self.params, self.today)
        return Stage.VALIDATING

    def _fallback(self) -> Stage:
        self.metrics.increment(m.FALLBACKS)
        reason = self.reason or ModelUnavailable().reason
        logger.warning("Generating fallback itinerary for %s (%s): %s",
                       self.params.destination, reason, self.detail)
        self.result = build_fallback_itinerary(self.params, reason, self.today, self.detail)
        return Stage.DONE


def generate_itinerary(params: TripParameters, **planner_kwargs: Any) -> ItineraryResult:
    """Plan one trip with a planner configured from the environment."""
    return ItineraryPlanner(**planner_kwargs).generate_itinerary(params)

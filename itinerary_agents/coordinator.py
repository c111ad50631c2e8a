"""
Multi-agent trip planning.

Four specialists work on the same trip: budget analysis, destination
research, the day-by-day itinerary and travel coordination. The itinerary
specialist goes through ItineraryPlanner (so it always yields a complete
plan); the others make one retried model call and return free text, or a
decoded object when they answered in JSON.

Total LLM calls per plan_comprehensive: 4 (one per specialist, plus retries).
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import date
from typing import Any, Callable, Dict, Generator, Optional

from TripParameters import TripParameters

from . import llm
from . import metrics as m
from .errors import MalformedPayload, ModelUnavailable
from .parsing import normalize_response, parse_structured
from .planning_agent import ItineraryPlanner, validate_trip_parameters
from .profiles import AGENTS, ITINERARY_PLANNING, WORKFLOWS, AgentProfile, get_profile
from .prompts import build_agent_prompt

logger = logging.getLogger(__name__)

# role -> key in the comprehensive planning result
RESULT_KEYS = {
    "budget_analyst": "budget_analysis",
    "destination_research": "destination_insights",
    "itinerary_planning": "itinerary_plan",
    "travel_coordinator": "travel_coordination",
}


def default_tasks(params: TripParameters) -> Dict[str, str]:
    """Task text each specialist gets during comprehensive planning."""
    dest, days, people = params.destination, params.duration_days, params.traveler_count
    interests = params.interests_text()
    return {
        "budget_analyst": (
            f"Analyze and optimize the budget for a {days}-day trip to {dest} for {people} "
            f"travelers with a total budget of ${params.total_budget:,.0f}. Provide a detailed "
            f"breakdown and cost-saving recommendations."
        ),
        "destination_research": (
            f"Provide research and insights for {dest}, including the best times to visit, "
            f"cultural insights, must-see attractions and local experiences for travelers "
            f"interested in {interests}."
        ),
        "itinerary_planning": (
            f"Create a detailed {days}-day itinerary for {dest} for {people} travelers with "
            f"interests in {interests}. Include specific activities, times, locations and costs "
            f"for each day. Generate ALL {days} days."
        ),
        "travel_coordinator": (
            f"Provide travel coordination recommendations for a {days}-day trip to {dest} for "
            f"{people} travelers, including booking strategies, documentation requirements "
            f"and logistics."
        ),
    }


def _decode_if_json(text: str) -> Any:
    """The decoded object when the answer is a JSON object, else the stripped text."""
    stripped = text.strip()
    if not stripped.startswith(("{", "```")):
        return stripped
    try:
        value = parse_structured(normalize_response(stripped))
    except MalformedPayload:
        return stripped
    return value if isinstance(value, dict) else stripped


class TravelAgentCoordinator:
    """Runs specialist agents alone or all together for one trip."""

    def __init__(
        self,
        planner: Optional[ItineraryPlanner] = None,
        complete: Optional[Callable[..., str]] = None,
        metrics: Optional[m.MetricsCollector] = None,
        today: Callable[[], date] = date.today,
    ):
        self.complete = complete or llm.complete
        self.metrics = metrics or m.NullMetrics()
        self.planner = planner or ItineraryPlanner(
            complete=self.complete, metrics=self.metrics, today=today,
        )
        self.today = today

    @staticmethod
    def capabilities() -> Dict[str, Any]:
        return {
            "agents": {
                role: {
                    "name": p.name,
                    "expertise": p.expertise,
                    "capabilities": list(p.capabilities),
                }
                for role, p in AGENTS.items()
            },
            "workflows": WORKFLOWS,
        }

    # -- single agent ------------------------------------------------------

    def execute_agent_task(
        self,
        role: str,
        task: str,
        params: TripParameters,
        cancel_event: Optional[threading.Event] = None,
    ) -> Any:
        """Run one specialist. Raises UnknownAgent, InvalidRequest or ModelUnavailable."""
        profile = get_profile(role)
        if profile is ITINERARY_PLANNING:
            result = self.planner.generate_itinerary(params, cancel_event=cancel_event, task=task)
            return result.as_payload()

        validate_trip_parameters(params)
        task = task or default_tasks(params)[profile.role]
        return self._run_specialist(profile, task, params, cancel_event)

    def _run_specialist(self, profile: AgentProfile, task: str, params: TripParameters,
                        cancel_event: Optional[threading.Event]) -> Any:
        config = self.planner.config
        prompt = build_agent_prompt(profile, task, params, self.today())
        last_error: Optional[BaseException] = None

        for attempt in range(1, config.max_retries + 1):
            if cancel_event is not None and cancel_event.is_set():
                raise ModelUnavailable(f"{profile.role}: request cancelled by caller")
            self.metrics.increment(m.MODEL_CALLS)
            try:
                text = self.complete(
                    prompt,
                    system=profile.system_prompt,
                    max_tokens=profile.max_tokens,
                    temperature=profile.temperature,
                    timeout=profile.timeout_seconds,
                )
                logger.info("%s finished for %s", profile.name, params.destination)
                return _decode_if_json(text or "")
            except Exception as exc:
                last_error = exc
                if not llm.is_transient(exc):
                    break
                logger.warning("Attempt %d/%d failed for %s: %s",
                               attempt, config.max_retries, profile.role, exc)
                if attempt < config.max_retries:
                    self.metrics.increment(m.RETRY_ATTEMPTS)
                    delay = config.backoff(attempt)
                    if cancel_event is not None:
                        cancel_event.wait(delay)
                    else:
                        self.planner.sleep(delay)

        self.metrics.increment(m.MODEL_UNAVAILABLE)
        raise ModelUnavailable(f"{profile.role}: {type(last_error).__name__}: {last_error}")

    # -- all agents --------------------------------------------------------

    def plan_comprehensive(self, params: TripParameters) -> Dict[str, Any]:
        """Run all four specialists concurrently.

        One agent failing never stops the others: its result is None and
        the failure is recorded under `errors` with the same key.
        """
        validate_trip_parameters(params)
        logger.info("Starting comprehensive planning for %d-day trip to %s",
                    params.duration_days, params.destination)

        results: Dict[str, Any] = {key: None for key in RESULT_KEYS.values()}
        errors: Dict[str, str] = {}
        for role, outcome in self._fan_out(params):
            key = RESULT_KEYS[role]
            if isinstance(outcome, Exception):
                errors[key] = str(outcome)
            else:
                results[key] = outcome

        logger.info("Comprehensive planning completed: %d/%d agents successful",
                    len(RESULT_KEYS) - len(errors), len(RESULT_KEYS))
        return {**results, "errors": errors}

    def _fan_out(self, params: TripParameters):
        """Yield (role, result-or-exception) as each specialist finishes.

        Closing the generator early sets the shared cancel event; agents
        still retrying stop at their next attempt or backoff wait.
        """
        tasks = default_tasks(params)
        cancel_event = threading.Event()
        with ThreadPoolExecutor(max_workers=len(tasks)) as pool:
            futures = {
                pool.submit(self.execute_agent_task, role, task, params, cancel_event): role
                for role, task in tasks.items()
            }
            try:
                for future in as_completed(futures):
                    role = futures[future]
                    try:
                        outcome = future.result()
                    except Exception as exc:
                        logger.warning("%s agent failed: %s", role, exc)
                        outcome = exc
                    yield role, outcome
            finally:
                cancel_event.set()

    def plan_comprehensive_stream(
        self, params: TripParameters,
    ) -> Generator[Dict[str, Any], None, None]:
        """Generator of SSE progress events, ending with a "complete" event.

        Parameters are validated before the generator is returned, so an
        InvalidRequest surfaces to the caller instead of mid-stream.
        """
        validate_trip_parameters(params)
        return self._stream(params)

    def _stream(self, params: TripParameters) -> Generator[Dict[str, Any], None, None]:
        for role in RESULT_KEYS:
            yield {
                "type": "progress", "agent": AGENTS[role].name, "role": role,
                "status": "running",
                "message": f"{AGENTS[role].name} is working on {params.destination}...",
            }

        results: Dict[str, Any] = {key: None for key in RESULT_KEYS.values()}
        errors: Dict[str, str] = {}
        outcomes = self._fan_out(params)
        try:
            for role, outcome in outcomes:
                key = RESULT_KEYS[role]
                name = AGENTS[role].name
                if isinstance(outcome, Exception):
                    errors[key] = str(outcome)
                    yield {"type": "progress", "agent": name, "role": role,
                           "status": "error", "message": str(outcome)}
                else:
                    results[key] = outcome
                    yield {"type": "progress", "agent": name, "role": role,
                           "status": "done", "message": f"{name} finished"}
        finally:
            outcomes.close()

        yield {
            "type": "complete",
            "agent": "Coordinator",
            "status": "complete",
            "message": "Trip planning complete!",
            "plan": {**results, "errors": errors},
        }

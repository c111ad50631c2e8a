"""Error taxonomy for itinerary planning.

Only InvalidRequest and UnknownAgent are meant to reach callers; the other
kinds are recovered inside the planner and end up as the `reason` recorded
in the result metadata.
"""

from __future__ import annotations

from typing import Optional


class PlanningError(Exception):
    """Base class; `reason` is the short code written into result metadata."""

    def __init__(self, detail: str = ""):
        super().__init__(detail or self.reason)
        self.detail = detail

    @property
    def reason(self) -> str:
        return type(self).__name__


class InvalidRequest(PlanningError, ValueError):
    pass


class ModelUnavailable(PlanningError):
    pass


class MalformedPayload(PlanningError, ValueError):
    pass


class SchemaViolation(PlanningError):
    def __init__(self, rule: str, day_key: Optional[str] = None, detail: str = ""):
        self.rule = rule
        self.day_key = day_key
        super().__init__(detail or (f"{rule} ({day_key})" if day_key else rule))


class UnknownAgent(PlanningError, KeyError):
    def __str__(self) -> str:
        return self.detail or self.reason

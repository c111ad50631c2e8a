from .coordinator import TravelAgentCoordinator
from .errors import (
    InvalidRequest,
    MalformedPayload,
    ModelUnavailable,
    PlanningError,
    SchemaViolation,
    UnknownAgent,
)
from .metrics import InMemoryMetrics, NullMetrics
from .planning_agent import ItineraryPlanner, PlannerConfig, generate_itinerary
from .result import ItineraryResult

__all__ = [
    "InMemoryMetrics",
    "InvalidRequest",
    "ItineraryPlanner",
    "ItineraryResult",
    "MalformedPayload",
    "ModelUnavailable",
    "NullMetrics",
    "PlannerConfig",
    "PlanningError",
    "SchemaViolation",
    "TravelAgentCoordinator",
    "UnknownAgent",
    "generate_itinerary",
]

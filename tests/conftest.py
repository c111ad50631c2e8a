import sys
import os
import pytest
from datetime import date, datetime, timezone
from unittest.mock import MagicMock

# Project root: needed for TripParameters, main and the itinerary_agents package.
_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _root not in sys.path:
    sys.path.insert(0, _root)

from TripParameters import DateRange, TripParameters
from itinerary_agents.metrics import InMemoryMetrics
from itinerary_agents.planning_agent import ItineraryPlanner, PlannerConfig

TODAY = date(2026, 5, 1)
NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


def make_day(day_index: int) -> dict:
    """A day exactly as a well-behaved model would write it."""
    return {
        "date": f"2026-06-0{day_index}",
        "theme": f"Lisbon highlights {day_index}",
        "activities": [
            {
                "time": "09:00",
                "activity": "Castle walls",
                "location": "Castelo de Sao Jorge",
                "duration": "2 hours",
                "cost": 15,
                "description": "Walk the ramparts above Alfama",
                "tips": "Go early",
                "category": "culture",
            },
            {
                "time": "15:30",
                "activity": "Tram 28 ride",
                "location": "Martim Moniz",
                "duration": "1 hour",
                "cost": 3.1,
                "description": "Ride through the old quarters",
                "tips": "Board at the first stop",
                "category": "sightseeing",
            },
        ],
        "meals": {
            "breakfast": {"restaurant": "Pasteis de Belem", "location": "Belem", "cost": 8,
                          "cuisine": "Portuguese", "recommendation": "Pastel de nata"},
            "lunch": {"restaurant": "Time Out Market", "location": "Cais do Sodre", "cost": 18,
                      "cuisine": "Various", "recommendation": "Bifana"},
            "dinner": {"restaurant": "Cervejaria Ramiro", "location": "Intendente", "cost": 40,
                       "cuisine": "Seafood", "recommendation": "Garlic prawns"},
        },
        "transportation": {"method": "metro", "cost": 6.4, "notes": "Viva Viagem card"},
        "totalCost": 90.5,
        "highlights": ["Castle views", "Tram 28"],
        "tips": "Wear comfortable shoes",
    }


@pytest.fixture
def trip():
    return TripParameters(
        destination="Lisbon",
        total_budget=1000,
        duration_days=3,
        traveler_count=2,
        interests=("food", "history"),
        date_range=DateRange(date(2026, 6, 1), date(2026, 6, 3)),
    )


@pytest.fixture
def undated_trip():
    """Trip without dates; plans start on TODAY."""
    return TripParameters(
        destination="Kyoto",
        total_budget=900,
        duration_days=2,
        traveler_count=1,
    )


@pytest.fixture
def model_plan():
    return {f"day{i}": make_day(i) for i in range(1, 4)}


@pytest.fixture
def metrics():
    return InMemoryMetrics()


@pytest.fixture
def make_planner(metrics):
    """Factory: planner around a fake completion function with instant backoff."""
    def _make(complete, **config):
        return ItineraryPlanner(
            config=PlannerConfig(**config),
            complete=complete,
            metrics=metrics,
            today=lambda: TODAY,
            now=lambda: NOW,
            sleep=MagicMock(),
        )
    return _make

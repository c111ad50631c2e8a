"""
Deterministic itinerary synthesis from trip parameters alone.

The daily budget is split evenly across three categories (sightseeing and
culture, dining, local transport). Names are generic placeholders that
mention the destination and day number so the UI can tell them apart from
model output. No randomness and no clock: dates come from the trip's date
range or from the `today` the caller passes in.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from TripParameters import TripParameters

from .result import ORIGIN_FALLBACK, ItineraryResult

# (time, label, duration, category, location)
_ACTIVITY_SLOTS = (
    ("09:00", "Morning sightseeing", "3 hours", "sightseeing", "City center"),
    ("14:00", "Afternoon cultural visit", "2 hours", "culture", "Cultural district"),
    ("18:00", "Evening stroll", "2 hours", "entertainment", "Popular evening area"),
)

# meal -> (venue label, location, share of the dining budget)
_MEAL_SLOTS = {
    "breakfast": ("Suggested breakfast cafe", "Near your accommodation", 0.2),
    "lunch": ("Suggested lunch spot", "City center", 0.35),
    "dinner": ("Suggested dinner restaurant", "Dining district", 0.45),
}


def _money(value: float) -> float:
    return round(max(value, 0.0), 2)


def budget_split(params: TripParameters) -> dict[str, float]:
    """Per-day amounts for the three fallback categories."""
    daily = params.daily_budget()
    third = daily / 3
    return {"daily": _money(daily), "activities": third, "dining": third, "transport": third}


def fallback_meals(params: TripParameters) -> dict[str, dict]:
    dining = budget_split(params)["dining"]
    return {
        meal: {
            "restaurant": f"{label} in {params.destination}",
            "location": location,
            "cost": _money(dining * share),
            "cuisine": "Local",
            "recommendation": "Ask for the regional specialty",
        }
        for meal, (label, location, share) in _MEAL_SLOTS.items()
    }


def fallback_transportation(params: TripParameters) -> dict:
    return {
        "method": "public transport",
        "cost": _money(budget_split(params)["transport"]),
        "notes": "A day pass usually works out cheapest",
    }


def day_total(day: dict) -> float:
    """Sum of activity, meal and transport costs of a day we built ourselves."""
    parts = [a for a in day.get("activities", []) if isinstance(a, dict)]
    parts += [m for m in day.get("meals", {}).values() if isinstance(m, dict)]
    if isinstance(day.get("transportation"), dict):
        parts.append(day["transportation"])
    costs = (p.get("cost", 0) for p in parts)
    return _money(sum(c for c in costs if isinstance(c, (int, float)) and not isinstance(c, bool)))


def _theme(params: TripParameters, day_index: int) -> str:
    if params.interests:
        focus = params.interests[(day_index - 1) % len(params.interests)]
        return f"Day {day_index} - {focus} in {params.destination}"
    return f"Day {day_index} - Exploring {params.destination}"


def build_fallback_day(params: TripParameters, day_index: int, today: date) -> dict:
    """One schema-valid placeholder day."""
    per_activity = budget_split(params)["activities"] / len(_ACTIVITY_SLOTS)
    activities = [
        {
            "time": time,
            "activity": f"{label} in {params.destination} (day {day_index})",
            "location": f"{location}, {params.destination}",
            "duration": duration,
            "cost": _money(per_activity),
            "description": f"{label} around {params.destination} on day {day_index}",
            "tips": "Check opening hours before you go",
            "category": category,
        }
        for time, label, duration, category, location in _ACTIVITY_SLOTS
    ]
    day = {
        "date": params.date_for_day(day_index, today).isoformat(),
        "theme": _theme(params, day_index),
        "activities": activities,
        "meals": fallback_meals(params),
        "transportation": fallback_transportation(params),
        "highlights": [
            f"Day {day_index} main sights of {params.destination}",
            "Local food",
        ],
        "tips": "Check the local weather forecast and dress appropriately",
    }
    day["totalCost"] = day_total(day)
    return day


def build_fallback_itinerary(
    params: TripParameters,
    reason: str,
    today: date,
    detail: Optional[str] = None,
) -> ItineraryResult:
    """Complete placeholder plan for every day of the trip. Always succeeds."""
    days = {
        f"day{i}": build_fallback_day(params, i, today)
        for i in range(1, params.duration_days + 1)
    }
    return ItineraryResult(
        days=days,
        metadata={
            "origin": ORIGIN_FALLBACK,
            "reason": reason,
            "detail": detail or "",
            "partial": True,
            "day_sources": {key: "synthesized" for key in days},
        },
    )

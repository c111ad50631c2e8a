"""Prompt text for the itinerary planner and the other specialists."""

from __future__ import annotations

from datetime import date
from typing import Optional

from TripParameters import TripParameters

from .profiles import AgentProfile

CATEGORIES = ("sightseeing", "culture", "food", "entertainment", "nature", "other")

_DAY_SCHEMA = """\
{
  "date": "YYYY-MM-DD",
  "theme": "Short theme for the day",
  "activities": [
    {
      "time": "HH:MM",
      "activity": "Specific activity name",
      "location": "Exact place and area",
      "duration": "2 hours",
      "cost": 25,
      "description": "What the traveller does there",
      "tips": "Practical tip",
      "category": "sightseeing|culture|food|entertainment|nature|other"
    }
  ],
  "meals": {
    "breakfast": {"restaurant": "Name", "location": "Area", "cost": 12, "cuisine": "Type", "recommendation": "Dish"},
    "lunch": {"restaurant": "Name", "location": "Area", "cost": 20, "cuisine": "Type", "recommendation": "Dish"},
    "dinner": {"restaurant": "Name", "location": "Area", "cost": 35, "cuisine": "Type", "recommendation": "Dish"}
  },
  "transportation": {"method": "walking|metro|bus|taxi|rental car", "cost": 10, "notes": "How to get around"},
  "totalCost": 102,
  "highlights": ["Highlight 1", "Highlight 2"],
  "tips": "Tips for the day"
}"""


def day_keys(duration_days: int) -> list[str]:
    return [f"day{i}" for i in range(1, duration_days + 1)]


def build_itinerary_prompt(
    params: TripParameters,
    today: Optional[date] = None,
    task: str = "",
) -> str:
    """Instruction string for the itinerary model call.

    Spells out the JSON schema, lists every required day key, gives the
    per-day budget as guidance and forbids any text outside the JSON object.
    """
    today = today or date.today()
    keys = day_keys(params.duration_days)
    first, last = params.span(today)
    daily = params.daily_budget()
    task = task or (
        f"Create a detailed {params.duration_days}-day itinerary for {params.destination} "
        f"for {params.traveler_count} traveler(s)."
    )

    return f"""{task}

TRIP CONTEXT:
- Destination: {params.destination}
- Total budget: ${params.total_budget:,.0f}
- Daily budget: about ${daily:,.0f} per day (guidance, covers activities, meals and local transport)
- Duration: {params.duration_days} days
- Travelers: {params.traveler_count}
- Interests: {params.interests_text()}
- Dates: {first.isoformat()} to {last.isoformat()}

OUTPUT FORMAT:
Return ONE JSON object whose keys are exactly: {", ".join(f'"{k}"' for k in keys)}.
No other keys. Each value has this structure:
{_DAY_SCHEMA}

RULES:
1. Generate EXACTLY {params.duration_days} days, "{keys[0]}" through "{keys[-1]}".
2. Each day has 3-5 activities with specific HH:MM start times, in order.
3. Costs are non-negative numbers in USD and should add up to roughly ${daily:,.0f} per day.
4. "category" is one of: {", ".join(CATEGORIES)}.
5. Respond with ONLY the JSON object: no markdown fences, no explanations, no text before or after it."""


def build_agent_prompt(profile: AgentProfile, task: str, params: TripParameters,
                       today: Optional[date] = None) -> str:
    """Prompt for the non-itinerary specialists."""
    today = today or date.today()
    first, last = params.span(today)
    context = [
        f"Destination: {params.destination}",
        f"Budget: ${params.total_budget:,.0f}",
        f"Duration: {params.duration_days} days",
        f"Travelers: {params.traveler_count}",
        f"Interests: {params.interests_text()}",
        f"Travel dates: {first.isoformat()} to {last.isoformat()}",
    ]
    return (
        "CONTEXT:\n" + "\n".join(context) + "\n\n"
        f"TASK: {task}\n\n"
        f"Answer as the {profile.name}, based on your expertise and the context above."
    )

"""
Schema checks and field normalisation for day-keyed itineraries.

validate_candidate() answers "can this be returned as-is?" and names the
first rule that fails. normalise_day() fills missing optional fields and
makes every cost a non-negative number; a day that is already well formed
comes back equal to the input.
"""

from __future__ import annotations

import copy
import math
import re
from dataclasses import dataclass
from typing import Any, Optional

from TripParameters import TripParameters

from .errors import SchemaViolation
from .fallback import day_total, fallback_meals, fallback_transportation
from .prompts import CATEGORIES, day_keys

MEALS = ("breakfast", "lunch", "dinner")

RULE_NOT_A_MAPPING = "not_a_mapping"
RULE_MISSING_DAY = "missing_day"
RULE_EXTRA_DAY = "extra_day"
RULE_DAY_NOT_A_MAPPING = "day_not_a_mapping"
RULE_ACTIVITIES = "activities_not_a_nonempty_list"
RULE_ACTIVITY_ENTRY = "activity_not_a_mapping"
RULE_MEALS = "meals_missing"

_DAY_KEY_RE = re.compile(r"^day(\d+)$", re.IGNORECASE)
_TIME_RE = re.compile(r"^\s*(\d{1,2})(?:[:.h](\d{2}))?\s*([ap]\.?m\.?)?\s*$", re.IGNORECASE)
_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")

# Clock slots for activities whose time is missing or unreadable, by position.
DEFAULT_TIMES = ("09:00", "14:00", "18:00", "20:00", "22:00")


@dataclass(frozen=True)
class ValidationOutcome:
    valid: bool
    rule: Optional[str] = None
    day_key: Optional[str] = None

    def as_error(self) -> SchemaViolation:
        return SchemaViolation(self.rule or "unknown", self.day_key)


def check_day(day: Any) -> Optional[str]:
    """Return the violated rule for a single day entry, or None."""
    if not isinstance(day, dict):
        return RULE_DAY_NOT_A_MAPPING
    activities = day.get("activities")
    if not isinstance(activities, list) or not activities:
        return RULE_ACTIVITIES
    if not all(isinstance(a, dict) for a in activities):
        return RULE_ACTIVITY_ENTRY
    if not isinstance(day.get("meals"), dict):
        return RULE_MEALS
    return None


def find_violations(candidate: Any, params: TripParameters) -> list[ValidationOutcome]:
    if not isinstance(candidate, dict):
        return [ValidationOutcome(False, RULE_NOT_A_MAPPING)]

    violations = []
    expected = day_keys(params.duration_days)
    for key in expected:
        if key not in candidate:
            violations.append(ValidationOutcome(False, RULE_MISSING_DAY, key))
            continue
        rule = check_day(candidate[key])
        if rule:
            violations.append(ValidationOutcome(False, rule, key))

    for key in candidate:
        if _DAY_KEY_RE.match(str(key)) and key not in expected:
            violations.append(ValidationOutcome(False, RULE_EXTRA_DAY, key))
    return violations


def validate_candidate(candidate: Any, params: TripParameters) -> ValidationOutcome:
    """First violated rule, or a valid outcome.

    Keys that are not day keys (notes, summaries) are ignored here; they are
    dropped when the result is assembled.
    """
    violations = find_violations(candidate, params)
    return violations[0] if violations else ValidationOutcome(True)


# ---------------------------------------------------------------------------
# Field normalisation
# ---------------------------------------------------------------------------

def normalize_time(value: Any) -> Optional[str]:
    """'9am' / '9:30 PM' / '21:00' -> 'HH:MM'; None when not a clock time."""
    if not isinstance(value, str):
        return None
    match = _TIME_RE.match(value)
    if not match:
        return None
    hour = int(match.group(1))
    minute = int(match.group(2) or 0)
    period = (match.group(3) or "").replace(".", "").lower()
    if period:
        if not 1 <= hour <= 12:
            return None
        if period == "pm" and hour != 12:
            hour += 12
        elif period == "am" and hour == 12:
            hour = 0
    elif match.group(2) is None:
        # A bare number is not a time.
        return None
    if hour > 23 or minute > 59:
        return None
    return f"{hour:02d}:{minute:02d}"


def coerce_cost(value: Any) -> float:
    """Non-negative, finite cost from whatever the model wrote ("$25", -3, None...)."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, str):
        match = _NUMBER_RE.search(value.replace(",", ""))
        if not match:
            return 0
        value = float(match.group())
    if isinstance(value, float) and not math.isfinite(value):
        return 0
    if isinstance(value, (int, float)):
        return value if value >= 0 else 0
    return 0


def _normalise_activity(activity: dict, position: int) -> dict:
    item = dict(activity)
    time = normalize_time(item.get("time"))
    if time is None:
        time = DEFAULT_TIMES[min(position, len(DEFAULT_TIMES) - 1)]
    item["time"] = time
    for key in ("activity", "location", "duration", "description", "tips"):
        if not isinstance(item.get(key), str):
            item[key] = "" if item.get(key) is None else str(item[key])
    item["cost"] = coerce_cost(item.get("cost"))
    category = str(item.get("category") or "").strip().lower()
    item["category"] = category if category in CATEGORIES else "other"
    return item


def normalise_day(day: dict, params: TripParameters, day_index: int, today) -> dict:
    """Copy of a structurally valid day with defaults filled in."""
    result = copy.deepcopy(day)
    result.setdefault("date", params.date_for_day(day_index, today).isoformat())
    result.setdefault("theme", f"Day {day_index} in {params.destination}")
    result["activities"] = [
        _normalise_activity(a, position) for position, a in enumerate(result["activities"])
    ]

    defaults = fallback_meals(params)
    meals = result["meals"]
    for meal in MEALS:
        entry = meals.get(meal)
        if not isinstance(entry, dict):
            meals[meal] = defaults[meal]
            continue
        entry["cost"] = coerce_cost(entry.get("cost"))
        for key in ("restaurant", "location", "cuisine", "recommendation"):
            entry.setdefault(key, "")

    transport = result.get("transportation")
    if isinstance(transport, dict):
        transport["cost"] = coerce_cost(transport.get("cost"))
        transport.setdefault("method", "public transport")
        transport.setdefault("notes", "")
    else:
        result["transportation"] = fallback_transportation(params)

    if "totalCost" in result:
        result["totalCost"] = coerce_cost(result["totalCost"])
    else:
        result["totalCost"] = day_total(result)
    if not isinstance(result.get("highlights"), list):
        result["highlights"] = []
    if not isinstance(result.get("tips"), str):
        result["tips"] = ""
    return result

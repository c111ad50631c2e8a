"""
Best-effort recovery of a day-keyed itinerary from unreliable model text.

Every expected day is resolved by the first repair strategy that can
produce it, tried in this order:

  model        the decoded payload (or a JSON object embedded in the raw
               text) already holds a structurally valid entry for the day.
  text         the raw text has a "Day N" marker; times found in the span
               up to the next marker become activities.
  synthesized  the fallback generator's single-day plan.

The last strategy cannot fail, so the outcome always has exactly
day1..dayN. `recovered` counts the days that came from the model at all.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Callable, Optional

from TripParameters import TripParameters

from .fallback import (
    budget_split,
    build_fallback_day,
    day_total,
    fallback_meals,
    fallback_transportation,
)
from .parsing import extract_embedded_object
from .prompts import day_keys
from .validation import DEFAULT_TIMES, check_day, normalise_day, normalize_time

logger = logging.getLogger(__name__)

MAX_ACTIVITIES_PER_DAY = 5
_SENTENCE_TIMES = DEFAULT_TIMES[:3]

_DAY_MARKER_RE = re.compile(r"\bday\s*[-_#:]?\s*(\d{1,3})(?!\d)", re.IGNORECASE)
_DAY_KEY_RE = re.compile(r"^day\d+$")
_TIME_TOKEN_RE = re.compile(
    r"(?<![\d:.])(\d{1,2}(?:[:.]\d{2})?\s*[ap]\.?m\.?(?![A-Za-z])|\d{1,2}:\d{2})(?![\d:])",
    re.IGNORECASE,
)
_MEAL_RE = re.compile(
    r"\b((?i:breakfast|lunch|dinner))\b\s*(?:at|:|-|in)?\s*([A-Z][^.,;:\n\"(){}\[\]]{1,60})",
)
_PLACE_RE = re.compile(r"\b(?:at|in|to|visit|explore)\s+(?:the\s+)?([A-Z][\w'-]*(?:\s+(?:de|da|do|of|[A-Z][\w'-]*))*)")
_SENTENCE_SPLIT_RE = re.compile(r"[.;!\n]+")
_JSON_KEY_RE = re.compile(r"\"[A-Za-z_]+\"\s*:")
_JSON_NOISE_RE = re.compile(r"[{}\[\]\"]|\\n")
_LEADING_PUNCT_RE = re.compile(r"^[\s:,.\-–—)*#>]+")

_CATEGORY_KEYWORDS = {
    "food": ("breakfast", "brunch", "lunch", "dinner", "restaurant", "cafe", "café", "market",
             "food", "tasting", "bakery", "wine"),
    "culture": ("museum", "gallery", "cathedral", "church", "temple", "palace", "monastery",
                "castle", "history", "historic", "monument"),
    "nature": ("park", "garden", "beach", "hike", "hiking", "river", "mountain", "viewpoint",
               "lake", "forest", "coast"),
    "entertainment": ("show", "concert", "bar", "club", "nightlife", "theatre", "theater",
                      "music", "fado", "festival"),
}


class DaySource(str, Enum):
    MODEL = "model"
    TEXT = "text"
    SYNTHESIZED = "synthesized"


@dataclass
class RepairOutcome:
    days: dict[str, dict]
    sources: dict[str, DaySource] = field(default_factory=dict)

    @property
    def recovered(self) -> int:
        return sum(1 for s in self.sources.values() if s is not DaySource.SYNTHESIZED)

    @property
    def partial(self) -> bool:
        return any(s is not DaySource.MODEL for s in self.sources.values())


@dataclass
class _RepairContext:
    params: TripParameters
    today: date
    raw_text: str
    structured: Optional[dict]
    spans: dict[int, str]


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------

def _clean(text: str) -> str:
    text = _JSON_KEY_RE.sub(" ", text)
    text = _JSON_NOISE_RE.sub(" ", text)
    text = " ".join(text.split())
    return _LEADING_PUNCT_RE.sub("", text).strip()


def find_day_spans(text: str, duration_days: int) -> dict[int, str]:
    """Map day number -> text between its first "Day N" marker and the next marker."""
    if not text:
        return {}
    markers = [(m.start(), m.end(), int(m.group(1))) for m in _DAY_MARKER_RE.finditer(text)]
    spans: dict[int, str] = {}
    for idx, (_, end, number) in enumerate(markers):
        if number < 1 or number > duration_days or number in spans:
            continue
        stop = len(text)
        for next_start, _, next_number in markers[idx + 1:]:
            if next_number != number:
                stop = next_start
                break
        spans[number] = text[end:stop]
    return spans


def _categorise(text: str) -> str:
    lowered = text.lower()
    for category, keywords in _CATEGORY_KEYWORDS.items():
        if any(k in lowered for k in keywords):
            return category
    return "sightseeing"


def _activity_name(description: str, index: int) -> str:
    first = _SENTENCE_SPLIT_RE.split(description, maxsplit=1)[0]
    first = re.split(r",\s| - | – ", first, maxsplit=1)[0].strip()
    if not first:
        return f"Activity {index}"
    return first if len(first) <= 60 else first[:57].rstrip() + "..."


def _place(description: str, params: TripParameters) -> str:
    match = _PLACE_RE.search(description)
    if match:
        return f"{match.group(1)}, {params.destination}"
    return params.destination


def _make_activity(time: str, description: str, index: int, cost: float,
                   params: TripParameters) -> dict:
    description = description[:200]
    return {
        "time": time,
        "activity": _activity_name(description, index),
        "location": _place(description, params),
        "duration": "2 hours",
        "cost": cost,
        "description": description,
        "tips": "",
        "category": _categorise(description),
    }


def extract_activities(span: str, params: TripParameters) -> list[dict]:
    """One activity per time token in the span; sentences stand in if there are none."""
    tokens = []
    for match in _TIME_TOKEN_RE.finditer(span):
        time = normalize_time(match.group(1))
        if time:
            tokens.append((match, time))
    tokens = tokens[:MAX_ACTIVITIES_PER_DAY]

    pieces: list[tuple[str, str]] = []
    for i, (match, time) in enumerate(tokens):
        stop = tokens[i + 1][0].start() if i + 1 < len(tokens) else len(span)
        pieces.append((time, _clean(span[match.end():stop])))

    if not pieces:
        sentences = [_clean(s) for s in _SENTENCE_SPLIT_RE.split(span)]
        sentences = [s for s in sentences if len(s) >= 3 and re.search(r"[A-Za-z]", s)]
        pieces = list(zip(_SENTENCE_TIMES, sentences))

    if not pieces:
        return []
    cost = round(budget_split(params)["activities"] / len(pieces), 2)
    return [_make_activity(time, desc, i, cost, params)
            for i, (time, desc) in enumerate(pieces, start=1)]


def extract_meals(span: str, params: TripParameters) -> dict[str, dict]:
    """Fallback meals, with venue names taken from "lunch at X" style mentions."""
    meals = fallback_meals(params)
    for match in _MEAL_RE.finditer(span):
        meal = match.group(1).lower()
        venue = match.group(2).strip()
        if meal in meals and venue and meals[meal]["restaurant"].startswith("Suggested"):
            meals[meal]["restaurant"] = venue
    return meals


def _theme_from_span(span: str, params: TripParameters, day_index: int) -> str:
    head = span.split("\n", 1)[0]
    token = _TIME_TOKEN_RE.search(head)
    if token:
        head = head[:token.start()]
    head = _clean(head)
    if 3 <= len(head) <= 80 and re.search(r"[A-Za-z]{3}", head) and ":" not in head:
        return head
    return f"Day {day_index} - Exploring {params.destination}"


def parse_day_from_text(span: str, params: TripParameters, day_index: int,
                        today: date) -> Optional[dict]:
    """Build a day from one "Day N" span; None when nothing usable is in it."""
    activities = extract_activities(span, params)
    if not activities:
        return None
    day = {
        "date": params.date_for_day(day_index, today).isoformat(),
        "theme": _theme_from_span(span, params, day_index),
        "activities": activities,
        "meals": extract_meals(span, params),
        "transportation": fallback_transportation(params),
        "highlights": [a["activity"] for a in activities[:3]],
        "tips": "Times and venues were recovered from a free-text plan; confirm before booking",
    }
    day["totalCost"] = day_total(day)
    return day


# ---------------------------------------------------------------------------
# Repair strategies
# ---------------------------------------------------------------------------

def _from_model(ctx: _RepairContext, day_index: int) -> Optional[dict]:
    """Pre: a decoded mapping exists. Post: a normalised copy of a valid entry."""
    if ctx.structured is None:
        return None
    entry = ctx.structured.get(f"day{day_index}")
    if check_day(entry) is not None:
        return None
    return normalise_day(entry, ctx.params, day_index, ctx.today)


def _from_text(ctx: _RepairContext, day_index: int) -> Optional[dict]:
    """Pre: the raw text has a marker for this day. Post: a day with >= 1 activity."""
    span = ctx.spans.get(day_index)
    if span is None:
        return None
    return parse_day_from_text(span, ctx.params, day_index, ctx.today)


def _synthesized(ctx: _RepairContext, day_index: int) -> Optional[dict]:
    """No precondition; always returns a fallback day."""
    return build_fallback_day(ctx.params, day_index, ctx.today)


REPAIR_STRATEGIES: tuple[tuple[DaySource, Callable[[_RepairContext, int], Optional[dict]]], ...] = (
    (DaySource.MODEL, _from_model),
    (DaySource.TEXT, _from_text),
    (DaySource.SYNTHESIZED, _synthesized),
)


def _unwrap(candidate: Any) -> Optional[dict]:
    """Day-keyed mapping, looking one level down for {"itinerary": {"day1": ...}} wrappers."""
    if not isinstance(candidate, dict):
        return None
    if any(_DAY_KEY_RE.match(str(k)) for k in candidate):
        return candidate
    for value in candidate.values():
        if isinstance(value, dict) and any(_DAY_KEY_RE.match(str(k)) for k in value):
            return value
    return None


def _resolve(ctx: _RepairContext, strategies) -> RepairOutcome:
    outcome = RepairOutcome(days={})
    for index, key in enumerate(day_keys(ctx.params.duration_days), start=1):
        for source, strategy in strategies:
            day = strategy(ctx, index)
            if day is not None:
                outcome.days[key] = day
                outcome.sources[key] = source
                break
    return outcome


def repair_itinerary(
    raw_text: str,
    structured: Any,
    params: TripParameters,
    today: date,
) -> RepairOutcome:
    """Resolve every day of the trip with the first strategy that succeeds."""
    raw_text = raw_text or ""
    ctx = _RepairContext(
        params=params,
        today=today,
        raw_text=raw_text,
        structured=_unwrap(structured) or _unwrap(extract_embedded_object(raw_text)),
        spans=find_day_spans(raw_text, params.duration_days),
    )
    outcome = _resolve(ctx, REPAIR_STRATEGIES)
    logger.info(
        "Heuristic repair for %s: %d/%d days recovered from model output",
        params.destination, outcome.recovered, params.duration_days,
    )
    return outcome


def extract_itinerary(text: str, params: TripParameters, today: date) -> RepairOutcome:
    """Text-only extraction: "Day N" spans, synthesized days for the rest."""
    ctx = _RepairContext(params=params, today=today, raw_text=text or "", structured=None,
                         spans=find_day_spans(text or "", params.duration_days))
    return _resolve(ctx, REPAIR_STRATEGIES[1:])

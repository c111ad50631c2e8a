from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Optional

from dataclasses_json import config, dataclass_json

_iso_date = config(encoder=date.isoformat, decoder=date.fromisoformat)


@dataclass_json
@dataclass(frozen=True)
class DateRange:
    start: date = field(metadata=_iso_date)
    end: date = field(metadata=_iso_date)

    def day(self, day_index: int) -> date:
        """Calendar date of the 1-based day_index, counted from start."""
        return self.start + timedelta(days=day_index - 1)


@dataclass_json
@dataclass(frozen=True)
class TripParameters:
    destination: str
    total_budget: float
    duration_days: int
    traveler_count: int
    interests: tuple[str, ...] = ()
    date_range: Optional[DateRange] = None

    def __post_init__(self):
        # Ordered and de-duplicated so prompts and fallback plans are stable.
        seen: list[str] = []
        for interest in self.interests or ():
            cleaned = str(interest).strip()
            if cleaned and cleaned.lower() not in (s.lower() for s in seen):
                seen.append(cleaned)
        object.__setattr__(self, "interests", tuple(seen))

    def daily_budget(self) -> float:
        """Total budget spread evenly over the trip days."""
        return self.total_budget / self.duration_days if self.duration_days else 0.0

    def interests_text(self) -> str:
        return ", ".join(self.interests) or "general sightseeing, local culture, and cuisine"

    def date_for_day(self, day_index: int, today: date) -> date:
        """Date of day_index; trips without a date range start on `today`."""
        if self.date_range is not None:
            return self.date_range.day(day_index)
        return today + timedelta(days=day_index - 1)

    def span(self, today: date) -> tuple[date, date]:
        """First and last day of the trip."""
        return self.date_for_day(1, today), self.date_for_day(self.duration_days, today)

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Optional

ORIGIN_MODEL = "model"
ORIGIN_FALLBACK = "fallback"


@dataclass(frozen=True)
class ItineraryResult:
    """Day-keyed plan ("day1".."dayN") plus metadata about how it was made.

    Never mutated after construction; corrections produce a new instance.
    """

    days: dict[str, dict]
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        ordered = dict(sorted(self.days.items(), key=lambda kv: _day_number(kv[0])))
        object.__setattr__(self, "days", ordered)

    def day_keys(self) -> list[str]:
        return list(self.days)

    @property
    def origin(self) -> Optional[str]:
        return self.metadata.get("origin")

    @property
    def reason(self) -> Optional[str]:
        return self.metadata.get("reason")

    @property
    def is_fallback(self) -> bool:
        return self.origin == ORIGIN_FALLBACK

    def with_metadata(self, **extra: Any) -> "ItineraryResult":
        return ItineraryResult(days=copy.deepcopy(self.days), metadata={**self.metadata, **extra})

    def as_payload(self) -> dict[str, Any]:
        """Flat {"day1": ..., "dayN": ..., "_metadata": ...} form used by the UI."""
        payload: dict[str, Any] = copy.deepcopy(self.days)
        payload["_metadata"] = dict(self.metadata)
        return payload


def _day_number(key: str) -> int:
    digits = key[3:] if key.startswith("day") else ""
    return int(digits) if digits.isdigit() else 0

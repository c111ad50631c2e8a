"""
Cleaning and decoding of raw model output.

normalize_response() never raises: it is a best-effort cleanup whose
output is either a JSON-looking span or the trimmed input. parse_structured()
is the strict step and raises MalformedPayload on anything json.loads rejects.
"""

from __future__ import annotations

import json
import math
import re
from typing import Any, Optional

from .errors import MalformedPayload

_FENCE_RE = re.compile(r"```[A-Za-z0-9_-]*")
_WHITESPACE_RE = re.compile(r"\s+")
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")


def _reject_constant(name: str):
    raise ValueError(f"non-finite number {name}")


def _finite_float(literal: str) -> Optional[float]:
    # 1e999 is valid JSON but overflows to inf; keep it out of the result.
    value = float(literal)
    return value if math.isfinite(value) else None


_decoder = json.JSONDecoder(parse_float=_finite_float, parse_constant=_reject_constant)


def normalize_response(raw: Optional[str]) -> str:
    """Strip fences and surrounding prose from a model response.

    Keeps the span from the first "{" to the last "}", collapses whitespace
    runs and drops trailing commas before a closing brace or bracket.
    Idempotent: normalising normalised text returns it unchanged.
    """
    if not isinstance(raw, str):
        return ""
    text = _FENCE_RE.sub("", raw)

    first = text.find("{")
    last = text.rfind("}")
    if first == -1 or last <= first:
        return raw.strip()

    text = _WHITESPACE_RE.sub(" ", text[first:last + 1])
    # Repeat until stable: ", ,}" only loses its last comma per pass.
    while True:
        text, count = _TRAILING_COMMA_RE.subn(r"\1", text)
        if not count:
            break
    return text.strip()


def parse_structured(text: str) -> Any:
    """Decode normalised text, raising MalformedPayload on invalid JSON.

    NaN and Infinity are rejected; overflowing numbers decode as None.
    """
    try:
        return _decoder.decode(text)
    except (TypeError, ValueError) as exc:
        raise MalformedPayload(f"response is not valid JSON: {exc}") from exc


def extract_embedded_object(raw: Optional[str]) -> Optional[dict]:
    """Find the largest JSON object embedded anywhere in raw text.

    Used when the outer-brace span is not valid JSON, e.g. when the model
    wrote prose containing braces around a well-formed object.
    """
    if not isinstance(raw, str):
        return None
    text = _FENCE_RE.sub("", raw)
    best: Optional[dict] = None
    best_len = 0
    pos = text.find("{")
    while pos != -1:
        try:
            value, end = _decoder.raw_decode(text, pos)
        except ValueError:
            pos = text.find("{", pos + 1)
            continue
        if isinstance(value, dict) and end - pos > best_len:
            best, best_len = value, end - pos
        # Objects nested in one we already decoded are never larger.
        pos = text.find("{", end)
    return best

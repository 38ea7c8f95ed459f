"""Structural and quality checks on a parsed itinerary reply."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from errors import DurationMismatch, EmptyItinerary, InvalidStructure

logger = logging.getLogger(__name__)

DEFAULT_DURATION = 3

_GENERIC_TITLES = {"morning activity", "afternoon exploration", "lunch", "dinner", "breakfast"}
_LOCATION_MARKERS = (" at ", "visit ", "explore ")


@dataclass
class QualityWarning:
    day: Optional[int]
    title: str

    def to_dict(self) -> Dict[str, Any]:
        return {"day": self.day, "title": self.title}


@dataclass
class ValidationReport:
    days: List[Dict[str, Any]]
    warnings: List[QualityWarning] = field(default_factory=list)


def resolve_duration(raw: Any, default: int = DEFAULT_DURATION) -> int:
    """Coerce a stored duration to a positive int, else fall back to *default*."""
    if isinstance(raw, bool):
        raw = None
    try:
        duration = int(raw) if raw is not None else None
    except (TypeError, ValueError):
        duration = None
    if duration is None or duration < 1:
        logger.warning("Invalid duration %r, defaulting to %d", raw, default)
        return default
    return duration


def is_generic_title(title: str) -> bool:
    normalized = title.lower().strip()
    if normalized not in _GENERIC_TITLES:
        return False
    return not any(marker in normalized for marker in _LOCATION_MARKERS)


def _quality_warnings(days: List[Any]) -> List[QualityWarning]:
    warnings: List[QualityWarning] = []
    for day in days:
        if not isinstance(day, dict):
            continue
        items = day.get("items")
        if not isinstance(items, list):
            continue
        for item in items:
            if not isinstance(item, dict):
                continue
            title = item.get("title")
            if not title:
                warnings.append(QualityWarning(day.get("dayNumber"), "(no title)"))
            elif is_generic_title(str(title)):
                warnings.append(QualityWarning(day.get("dayNumber"), str(title)))
    return warnings


def validate_itinerary(data: Any, expected_duration: int) -> ValidationReport:
    """Check the reply's shape and day count; collect non-fatal title warnings.

    Raises InvalidStructure, EmptyItinerary or DurationMismatch.  A reply
    with the wrong number of days is rejected, never truncated or padded.
    """
    if not isinstance(data, dict):
        raise InvalidStructure("Invalid itinerary structure: expected a JSON object")
    if data.get("error"):
        raise InvalidStructure(f"AI Error: {data['error']}")

    days = data.get("days")
    if not isinstance(days, list):
        raise InvalidStructure("Invalid itinerary structure: missing days array")
    if not days:
        raise EmptyItinerary("AI returned an empty days array")
    if len(days) != expected_duration:
        logger.error("Duration mismatch: requested %d days, AI generated %d",
                     expected_duration, len(days))
        raise DurationMismatch(expected_duration, len(days))

    for position, day in enumerate(days, start=1):
        items = day.get("items") if isinstance(day, dict) else None
        if not isinstance(items, list) or not any(isinstance(item, dict) for item in items):
            raise InvalidStructure(f"Invalid itinerary structure: day {position} has no items")

    warnings = _quality_warnings(days)
    if warnings:
        logger.warning("Generic items found: %s", [w.to_dict() for w in warnings])

    return ValidationReport(days=days, warnings=warnings)

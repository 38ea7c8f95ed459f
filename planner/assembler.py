"""
Turn validated day/item data into a flat, persistable itinerary.

Items are numbered across the whole itinerary (``item-<tripId>-1`` ..
``item-<tripId>-N``, day-major) and missing optional fields get defaults.
A missing price stays ``None`` so "unknown" is not confused with "free".
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

ITEM_TYPES = ("flight", "hotel", "activity", "meal", "transportation", "free-time")

DEFAULT_TIME = "09:00"
DEFAULT_TYPE = "activity"
DEFAULT_TITLE = "Activity"
DEFAULT_DURATION_MINUTES = 120

_TIME_RE = re.compile(r"\d{2}:\d{2}")


@dataclass
class AssembledItinerary:
    trip_id: str
    version: int
    status: str
    items: List[Dict[str, Any]]
    total_cost: float
    ai_suggestions: Dict[str, Any] = field(default_factory=dict)


def _price(raw: Any) -> Optional[float]:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    if value < 0:
        return None
    return int(value) if value.is_integer() else value


def _day_numbers(days: List[Dict[str, Any]]) -> List[int]:
    """The days' own dayNumbers when they are exactly 1..N, else 1-based positions."""
    given = [day.get("dayNumber") for day in days]
    expected = list(range(1, len(days) + 1))
    if all(isinstance(n, int) and not isinstance(n, bool) for n in given) and sorted(given) == expected:
        return given
    return expected


def _booking_required(raw: Any) -> bool:
    if isinstance(raw, str):
        return raw.strip().lower() == "true"
    return raw is True


def build_item(raw: Dict[str, Any], item_id: str, day_number: int) -> Dict[str, Any]:
    """Normalise one model-supplied item; out-of-range fields fall back to defaults."""
    booking_required = _booking_required(raw.get("bookingRequired"))
    time = raw.get("time")
    item_type = raw.get("type")
    return {
        "id": item_id,
        "dayNumber": day_number,
        "time": time if isinstance(time, str) and _TIME_RE.fullmatch(time) else DEFAULT_TIME,
        "type": item_type if item_type in ITEM_TYPES else DEFAULT_TYPE,
        "title": raw.get("title") or DEFAULT_TITLE,
        "description": raw.get("description") or "",
        "location": raw.get("location") or "",
        "duration": raw.get("duration") or DEFAULT_DURATION_MINUTES,
        "price": _price(raw.get("price")),
        "bookingRequired": booking_required,
        "bookingStatus": "pending" if booking_required else None,
    }


def flatten_items(days: List[Dict[str, Any]], trip_id: str) -> List[Dict[str, Any]]:
    items: List[Dict[str, Any]] = []
    sequence = 1
    for day, day_number in zip(days, _day_numbers(days)):
        for raw in day.get("items") or []:
            if not isinstance(raw, dict):
                continue
            items.append(build_item(raw, f"item-{trip_id}-{sequence}", day_number))
            sequence += 1
    return items


def total_cost(items: List[Dict[str, Any]], travelers_count: int) -> float:
    """Sum of item prices (unknown counts as 0) times the number of travelers."""
    return sum(item.get("price") or 0 for item in items) * travelers_count


def assemble_itinerary(
    days: List[Dict[str, Any]],
    trip_id: str,
    travelers_count: int,
    version: int = 1,
    ai_suggestions: Optional[Dict[str, Any]] = None,
) -> AssembledItinerary:
    items = flatten_items(days, trip_id)
    return AssembledItinerary(
        trip_id=trip_id,
        version=version,
        status="draft",
        items=items,
        total_cost=total_cost(items, travelers_count),
        ai_suggestions=ai_suggestions or {},
    )

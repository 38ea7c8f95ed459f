"""
Free-text trip request → TripFields.

Two strategies share the ``parse(text) -> TripFields`` contract:

  * LLMTripParser      asks the model for structured fields (may raise)
  * PatternTripParser  regex heuristics over the raw text (never raises)

FallbackTripParser runs the first and falls back to the second, so trip
creation always gets *some* structured data, however rough.
"""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, Optional

from errors import MalformedResponse
from planner.json_extract import parse_json
from planner.llm_client import LLMClient
from planner.prompts import build_trip_parse_prompt
from TripFields import ACCOMMODATION_TIERS, TRAVEL_STYLES, TripFields

logger = logging.getLogger(__name__)

_DURATION_RE = re.compile(r"(\d+)\s*-?\s*days?\b", re.IGNORECASE)
_TRAVELERS_RE = re.compile(r"(\d+)\s*(?:persons?|people|travell?ers?)\b", re.IGNORECASE)
_DESTINATION_RE = re.compile(
    r"\b(?:[Tt]o|[Ii]n|[Aa]t)\s+([A-Z][\w'-]*(?:\s+[A-Z][\w'-]*)*)"
)


def _positive_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def _string_list(value: Any) -> list[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple, set)):
        return [str(v) for v in value if v]
    return []


class TripRequestParser:
    def parse(self, text: str) -> TripFields:
        raise NotImplementedError


class LLMTripParser(TripRequestParser):
    """Primary strategy: the LLM extracts the fields as JSON."""

    def __init__(self, client: LLMClient):
        self.client = client

    def parse(self, text: str) -> TripFields:
        raw = self.client.complete(build_trip_parse_prompt(), text, max_tokens=1000, temperature=0.3)
        data = parse_json(raw)
        if not isinstance(data, dict):
            raise MalformedResponse("Trip parse reply is not a JSON object", snippet=str(raw)[:500])

        destinations = data.get("destinations") or []
        if isinstance(destinations, (str, dict)):
            destinations = [destinations]

        accommodation = data.get("accommodation_preference")
        return TripFields(
            destinations=[d for d in destinations if d],
            start_date=data.get("start_date") or None,
            end_date=data.get("end_date") or None,
            duration_days=_positive_int(data.get("duration_days")),
            travelers_count=_positive_int(data.get("travelers_count")),
            budget_range=data.get("budget_range") if isinstance(data.get("budget_range"), dict) else None,
            interests=_string_list(data.get("interests")),
            accommodation_preference=accommodation if accommodation in ACCOMMODATION_TIERS else None,
            special_requirements=data.get("special_requirements") or None,
        )


class PatternTripParser(TripRequestParser):
    """Secondary strategy: best-effort regexes, never raises."""

    def parse(self, text: str) -> TripFields:
        text = text or ""

        duration = _DURATION_RE.search(text)
        travelers = _TRAVELERS_RE.search(text)

        destinations: list[str] = []
        for name in _DESTINATION_RE.findall(text):
            if name not in destinations:
                destinations.append(name)

        return TripFields(
            destinations=destinations,
            duration_days=_positive_int(duration.group(1)) if duration else None,
            travelers_count=_positive_int(travelers.group(1)) if travelers else None,
        )


class FallbackTripParser(TripRequestParser):
    """Try *primary*; on failure, or for fields it left empty, use *secondary*."""

    def __init__(self, primary: TripRequestParser, secondary: TripRequestParser):
        self.primary = primary
        self.secondary = secondary

    def parse(self, text: str) -> TripFields:
        backup = self.secondary.parse(text)
        try:
            fields = self.primary.parse(text)
        except Exception as exc:
            logger.warning("Trip request parsing failed, using pattern fallback: %s", exc)
            logger.info("Fallback parsed data: %s", backup.to_dict())
            return backup

        if not fields.destinations:
            fields.destinations = backup.destinations
        if not fields.duration_days:
            fields.duration_days = backup.duration_days
        if not fields.travelers_count:
            fields.travelers_count = backup.travelers_count
        return fields


def merge_trip_fields(fields: TripFields, preferences: Optional[Dict[str, Any]],
                      request: str) -> Dict[str, Any]:
    """Combine parsed fields with the user's explicit preferences into trip columns."""
    preferences = preferences or {}
    names = fields.destination_names()
    title = f"{names[0]} Trip" if names else "New Trip"

    interests: list[str] = []
    for interest in fields.interests + _string_list(preferences.get("interests")):
        if interest not in interests:
            interests.append(interest)

    accommodation = fields.accommodation_preference or preferences.get("accommodationType")
    if accommodation not in ACCOMMODATION_TIERS:
        accommodation = "mid-range"
    travel_style = preferences.get("travelStyle")
    if travel_style not in TRAVEL_STYLES:
        travel_style = "moderate"

    return {
        "title": title,
        "description": title,
        "original_request": request,
        "status": "planning",
        "start_date": fields.start_date,
        "end_date": fields.end_date,
        "duration_days": fields.duration_days,
        "travelers_count": (fields.travelers_count
                            or _positive_int(preferences.get("travelersCount"))
                            or 1),
        "destinations": fields.destinations,
        "special_requirements": fields.special_requirements,
        "preferences": {
            "interests": interests,
            "accommodationType": accommodation,
            "travelStyle": travel_style,
            "budget": fields.budget_range or preferences.get("budget"),
        },
    }

"""
Prompt construction for the two LLM calls the planner makes:

  1. Trip-request parsing   → free text in, structured trip fields out
  2. Itinerary generation   → trip fields in, day-by-day JSON itinerary out

Pure string building, no I/O.  Models tend to return a 3-day plan whatever
they are asked for, so the itinerary prompts repeat the exact day count in
several places.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Optional, Tuple

GENERIC_TITLES = (
    "Morning Activity", "Afternoon Exploration", "Lunch", "Dinner", "Breakfast",
)

# Kept as a plain string (not an f-string) so the braces stay literal.
ITINERARY_SCHEMA = """\
{
  "days": [
    {
      "dayNumber": 1,
      "date": "YYYY-MM-DD",
      "theme": "Area/Neighborhood name (e.g., 'Downtown District', 'Historic Quarter')",
      "items": [
        {
          "time": "08:00",
          "type": "meal",
          "title": "Breakfast at [RESTAURANT NAME]",
          "description": "Detailed description",
          "location": "Full address in the destination city",
          "duration": 60,
          "price": 15,
          "bookingRequired": false
        },
        {
          "time": "09:30",
          "type": "activity",
          "title": "Visit [SPECIFIC ATTRACTION NAME]",
          "description": "Detailed description",
          "location": "Full address in the destination city",
          "duration": 120,
          "price": 25,
          "bookingRequired": true
        }
      ]
    }
  ]
}"""


@dataclass
class ItineraryPromptRequest:
    destination: str
    duration_days: int
    travelers_count: int = 1
    interests: list[str] = field(default_factory=list)
    accommodation_tier: str = "mid-range"
    travel_style: str = "moderate"
    original_request: str = ""
    destinations: list = field(default_factory=list)
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    feedback: Optional[str] = None


def _not_other_counts(duration: int) -> str:
    """'NOT 3 days, NOT 2 days' style warning that never forbids the requested count."""
    others = [n for n in (3, 2, 5) if n != duration][:2]
    return ", ".join(f"NOT {n} days" for n in others)


def build_itinerary_system_prompt(duration: int) -> str:
    forbidden = ", ".join(f"'{t}'" for t in GENERIC_TITLES)
    return f"""You are an expert travel itinerary planner. You MUST respond with ONLY valid JSON. \
No explanations, no text before or after the JSON.

CRITICAL RULES:
1. Respond with ONLY valid JSON - no text before or after.
2. You MUST use the EXACT destination provided - do NOT default to any other city.
3. You MUST generate EXACTLY {duration} day(s) - {_not_other_counts(duration)} - EXACTLY {duration} day(s). \
Any other number of days will be REJECTED.
4. NEVER use generic titles like {forbidden}.
5. ALWAYS use SPECIFIC place names, landmarks, museums, parks and restaurants FROM THE DESTINATION PROVIDED.
6. For meals: include the restaurant name (e.g., 'Lunch at [Restaurant Name]').
7. For activities: include the attraction name (e.g., 'Visit [Museum Name]', 'Explore [Park Name]').
8. GROUP ACTIVITIES BY LOCATION: activities in the same area/neighborhood belong on the same day.
9. MINIMUM 6-8 items per day - include breakfast, lunch, dinner and several attractions.
10. Organize by proximity: when visiting an area, include nearby restaurants and attractions in that same area.

REQUIRED JSON FORMAT:
{ITINERARY_SCHEMA}

The "days" array MUST contain EXACTLY {duration} element(s). Each day must have 6-8 items minimum \
(breakfast, activities, lunch, more activities, dinner, evening activity), grouped by location.

FORBIDDEN:
- {forbidden} as titles (use specific restaurant/place names)
- Any text before or after the JSON
- Attractions from a different city than the destination
- An empty days array
- Fewer than {duration} days
- More than {duration} days

Respond with ONLY the JSON object, nothing else."""


def build_itinerary_user_prompt(request: ItineraryPromptRequest) -> str:
    duration = request.duration_days
    destinations_json = json.dumps(request.destinations or [request.destination])
    prompt = f"""Create a DETAILED, SPECIFIC itinerary for this trip with REAL locations and attractions.

THE DESTINATION IS: {request.destination}
YOU MUST CREATE AN ITINERARY FOR: {request.destination}
Do NOT use any default city - use ONLY the destination above.

TRIP DETAILS:
Destination: {request.destination}
All destinations: {destinations_json}
Duration: {duration} days
Start Date: {request.start_date or 'Not specified'}
End Date: {request.end_date or 'Not specified'}
Travelers: {request.travelers_count} people
Interests: {json.dumps(list(request.interests or []))}
Accommodation: {request.accommodation_tier or 'mid-range'}
Travel Style: {request.travel_style or 'moderate'}
Original Request: {request.original_request or ''}

INSTRUCTIONS:
1. Research REAL attractions, museums, parks, restaurants and landmarks in {request.destination}.
2. Generate EXACTLY {duration} day(s) - {_not_other_counts(duration)} - EXACTLY {duration} day(s).
3. Each day needs 6-8 items minimum: breakfast, morning activity, lunch, afternoon activity, \
another activity, dinner, evening activity.
4. GROUP BY LOCATION: give each day one area/neighborhood and put its "theme" to that area's name; \
dine at restaurants near that day's attractions.
5. Use the full real name of each place (e.g., 'Visit Senso-ji Temple' for Tokyo, never 'Visit Museum').
6. Meals: 'Breakfast at [Restaurant Name]', 'Lunch at [Restaurant Name]', 'Dinner at [Restaurant Name]'.
7. Every location must be in {request.destination}."""

    if request.feedback:
        prompt += f"""

TRAVELER FEEDBACK ON THE PREVIOUS VERSION (apply it):
{request.feedback}"""

    prompt += f"""

FINAL INSTRUCTION: the "days" array MUST contain EXACTLY {duration} day(s), numbered 1 to {duration}. \
Do NOT return {{"days":[]}}."""
    return prompt


def build_itinerary_prompts(request: ItineraryPromptRequest) -> Tuple[str, str]:
    """Return the (system, user) prompt pair for itinerary generation."""
    return (
        build_itinerary_system_prompt(request.duration_days),
        build_itinerary_user_prompt(request),
    )


TRIP_PARSE_SYSTEM = """\
You are a travel planning assistant. Parse the user's trip request and extract structured information.

Extract the following details from the request:
- destinations (array of cities/countries)
- start_date (ISO format if mentioned)
- end_date (ISO format if mentioned)
- duration_days (number)
- travelers_count (number)
- budget_range (object with min/max)
- interests (array of keywords like 'food', 'culture', 'adventure', etc.)
- accommodation_preference (budget/mid-range/luxury)
- special_requirements (any specific needs mentioned)

Respond ONLY with a valid JSON object containing these fields. If a field is not mentioned, use null.

Example response:
{
  "destinations": ["Tokyo"],
  "duration_days": 5,
  "travelers_count": 2,
  "interests": ["food", "culture"],
  "accommodation_preference": "mid-range"
}"""


def build_trip_parse_prompt() -> str:
    return TRIP_PARSE_SYSTEM

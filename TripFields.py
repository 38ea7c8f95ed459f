from dataclasses import dataclass, field
from typing import Optional

from dataclasses_json import dataclass_json

ACCOMMODATION_TIERS = ("budget", "mid-range", "luxury")
TRAVEL_STYLES = ("relaxed", "moderate", "packed")


@dataclass_json
@dataclass
class TripFields:
    """Structured fields pulled out of a free-text trip request.

    Any field may be missing; the pattern parser in particular only fills
    destinations, duration_days and travelers_count.
    """
    destinations: list = field(default_factory=list)
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    duration_days: Optional[int] = None
    travelers_count: Optional[int] = None
    budget_range: Optional[dict] = None
    interests: list[str] = field(default_factory=list)
    accommodation_preference: Optional[str] = None
    special_requirements: Optional[str] = None

    def destination_names(self) -> list[str]:
        """Destination names, whether stored as plain strings or {name, country}."""
        names = []
        for dest in self.destinations:
            if isinstance(dest, dict):
                name = dest.get("name")
                if name:
                    names.append(str(name))
            elif dest:
                names.append(str(dest))
        return names

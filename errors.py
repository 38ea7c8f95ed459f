"""Error taxonomy shared by the planner pipeline and the HTTP layer.

Each error carries the HTTP status it maps to, a short machine-readable
code and a message that is safe to show to the client.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class PlannerError(Exception):
    status_code = 500
    error = "internal_error"

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_payload(self, include_details: bool = False) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.error, "message": self.message}
        if include_details and self.details:
            payload["details"] = self.details
        return payload


class ValidationError(PlannerError):
    status_code = 400
    error = "validation_error"


class ConflictError(PlannerError):
    status_code = 400
    error = "conflict"


class AuthError(PlannerError):
    status_code = 401
    error = "unauthorized"


class InvalidToken(AuthError):
    status_code = 403
    error = "invalid_token"


class NotFoundError(PlannerError):
    status_code = 404
    error = "not_found"


# ---------------------------------------------------------------------------
# LLM call failures
# ---------------------------------------------------------------------------

class UpstreamError(PlannerError):
    error = "upstream_error"

    def __init__(self, message: str = "The itinerary service is temporarily unavailable",
                 details: Optional[str] = None):
        super().__init__(message, details)


class UpstreamUnavailable(UpstreamError):
    error = "upstream_unavailable"


class UpstreamAuthError(UpstreamError):
    error = "upstream_auth_error"


class UpstreamEmptyResponse(UpstreamError):
    error = "upstream_empty_response"


# ---------------------------------------------------------------------------
# LLM output failures
# ---------------------------------------------------------------------------

class ItineraryError(PlannerError):
    error = "itinerary_error"


class MalformedResponse(ItineraryError):
    error = "malformed_response"

    def __init__(self, message: str, snippet: str = ""):
        super().__init__(message, details=snippet or None)
        self.snippet = snippet


class InvalidStructure(ItineraryError):
    error = "invalid_structure"


class EmptyItinerary(ItineraryError):
    error = "empty_itinerary"


class DurationMismatch(ItineraryError):
    error = "duration_mismatch"

    def __init__(self, expected: int, actual: int):
        super().__init__(
            f"AI generated {actual} days but {expected} days were requested. "
            f"Please regenerate with exactly {expected} days."
        )
        self.expected = expected
        self.actual = actual

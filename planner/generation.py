"""
Itinerary generation pipeline and its background worker channel.

    trip row → prompts → LLM call → extract JSON → validate → assemble → persist

``ItineraryGenerator.generate`` runs the pipeline for one trip, either
inline (the /generate endpoint) or from ``GenerationQueue`` right after a
trip is created.  A failed attempt persists nothing; the trip simply has no
itinerary until a later attempt succeeds.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, Optional

from database import Itinerary, Trip, get_user_trip, next_itinerary_version, save_itinerary
from errors import DurationMismatch, PlannerError
from planner.assembler import assemble_itinerary
from planner.json_extract import parse_json
from planner.llm_client import LLMClient
from planner.prompts import ItineraryPromptRequest, build_itinerary_prompts
from planner.validator import resolve_duration, validate_itinerary

logger = logging.getLogger(__name__)

GENERATION_MAX_TOKENS = 6000
GENERATION_TEMPERATURE = 0.3


def primary_destination(trip: Trip) -> str:
    """First destination name, else the original request text."""
    destinations = trip.destinations or []
    if destinations:
        first = destinations[0]
        if isinstance(first, dict):
            name = first.get("name")
            if name:
                return str(name)
        elif first:
            return str(first)
    return trip.original_request or "the destination specified"


class ItineraryGenerator:
    def __init__(self, client: LLMClient):
        self.client = client
        # trip id -> [lock, number of holders and waiters]
        self._locks: Dict[str, list] = {}
        self._locks_guard = threading.Lock()

    @contextmanager
    def _trip_lock(self, trip_id: str) -> Iterator[None]:
        """Serialise generation per trip so two runs never race for a version number."""
        with self._locks_guard:
            entry = self._locks.setdefault(trip_id, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[trip_id]

    def build_prompt_request(self, trip: Trip, feedback: Optional[str] = None) -> ItineraryPromptRequest:
        preferences = trip.preferences or {}
        return ItineraryPromptRequest(
            destination=primary_destination(trip),
            duration_days=resolve_duration(trip.duration_days),
            travelers_count=trip.travelers_count or 1,
            interests=list(preferences.get("interests") or []),
            accommodation_tier=preferences.get("accommodationType") or "mid-range",
            travel_style=preferences.get("travelStyle") or "moderate",
            original_request=trip.original_request or "",
            destinations=list(trip.destinations or []),
            start_date=trip.start_date,
            end_date=trip.end_date,
            feedback=feedback,
        )

    def generate(self, db, trip: Trip, feedback: Optional[str] = None) -> Itinerary:
        """Run the full pipeline for *trip* and persist a new itinerary version."""
        request = self.build_prompt_request(trip, feedback)
        logger.info("Itinerary generation - trip=%s destination=%s duration=%d (stored %r)",
                    trip.id, request.destination, request.duration_days, trip.duration_days)

        with self._trip_lock(trip.id):
            try:
                system_prompt, user_prompt = build_itinerary_prompts(request)
                raw = self.client.complete(
                    system_prompt, user_prompt,
                    max_tokens=GENERATION_MAX_TOKENS,
                    temperature=GENERATION_TEMPERATURE,
                )
                report = validate_itinerary(parse_json(raw), request.duration_days)
            except DurationMismatch as exc:
                logger.error("Duration mismatch for trip %s (destination=%s): requested %d, got %d",
                             trip.id, request.destination, exc.expected, exc.actual)
                raise
            except PlannerError as exc:
                logger.error("Itinerary generation failed for trip %s (destination=%s, days=%d): %s",
                             trip.id, request.destination, request.duration_days, exc.message)
                raise

            suggestions: Dict[str, Any] = {}
            if report.warnings:
                suggestions["qualityWarnings"] = [w.to_dict() for w in report.warnings]
            if feedback:
                suggestions["feedback"] = feedback

            assembled = assemble_itinerary(
                report.days,
                trip_id=trip.id,
                travelers_count=request.travelers_count,
                version=next_itinerary_version(db, trip.id),
                ai_suggestions=suggestions,
            )
            itinerary = save_itinerary(db, assembled)

        logger.info("Itinerary %s (version %d) saved for trip %s: %d items, total cost %s",
                    itinerary.id, itinerary.version, trip.id, len(itinerary.items), itinerary.total_cost)
        return itinerary


class GenerationQueue:
    """Background worker channel for generation jobs.

    ``submit`` returns a Future resolving to the saved Itinerary (or None if
    the trip vanished); pipeline failures end up as the Future's exception.
    """

    def __init__(self, generator: ItineraryGenerator, session_factory: Callable[[], Any],
                 workers: int = 2):
        self.generator = generator
        self.session_factory = session_factory
        self._executor = ThreadPoolExecutor(max_workers=max(workers, 1),
                                            thread_name_prefix="itinerary-worker")

    def submit(self, trip_id: str, user_id: str) -> "Future[Optional[Itinerary]]":
        logger.info("Queued itinerary generation for trip %s", trip_id)
        return self._executor.submit(self._run, trip_id, user_id)

    def _run(self, trip_id: str, user_id: str) -> Optional[Itinerary]:
        db = self.session_factory()
        try:
            trip = get_user_trip(db, trip_id, user_id)
            if trip is None:
                logger.warning("Trip %s no longer exists, skipping itinerary generation", trip_id)
                return None
            itinerary = self.generator.generate(db, trip)
            logger.info("Itinerary generated successfully for trip %s", trip_id)
            return itinerary
        except Exception:
            logger.exception("Error generating itinerary for trip %s", trip_id)
            raise
        finally:
            db.close()

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

"""
Unit tests for planner/generation.py (pipeline + worker queue)
"""
import pytest

from conftest import FakeLLMClient, itinerary_reply, lisbon_days, make_day, make_item
from database import Itinerary, SessionLocal, Trip, latest_itinerary
from errors import DurationMismatch, EmptyItinerary, MalformedResponse, UpstreamUnavailable
from planner.generation import GenerationQueue, ItineraryGenerator, primary_destination


def _itinerary_count(db, trip_id):
    return db.query(Itinerary).filter(Itinerary.trip_id == trip_id).count()


class TestPrimaryDestination:
    def test_plain_string(self):
        assert primary_destination(Trip(destinations=["Lisbon", "Porto"])) == "Lisbon"

    def test_name_object(self):
        assert primary_destination(Trip(destinations=[{"name": "Kyoto", "country": "Japan"}])) == "Kyoto"

    def test_falls_back_to_request_text(self):
        trip = Trip(destinations=[], original_request="somewhere warm")
        assert primary_destination(trip) == "somewhere warm"


class TestGenerate:
    def test_lisbon_end_to_end(self, db_session, lisbon_trip):
        llm = FakeLLMClient(itinerary_reply(*lisbon_days()))
        itinerary = ItineraryGenerator(llm).generate(db_session, lisbon_trip)

        assert itinerary.version == 1
        assert itinerary.status == "draft"
        assert [i["id"] for i in itinerary.items] == [
            f"item-{lisbon_trip.id}-{n}" for n in range(1, 5)
        ]
        # (20 + 30 + 15 + 0) * 3 travelers
        assert itinerary.total_cost == 195
        assert {i["dayNumber"] for i in itinerary.items} == {1, 2}
        assert latest_itinerary(db_session, lisbon_trip.id).id == itinerary.id

    def test_prompt_carries_trip_details(self, db_session, lisbon_trip):
        llm = FakeLLMClient(itinerary_reply(*lisbon_days()))
        ItineraryGenerator(llm).generate(db_session, lisbon_trip)

        call = llm.calls[0]
        assert "THE DESTINATION IS: Lisbon" in call["user"]
        assert "EXACTLY 2 day(s)" in call["system"]
        assert call["max_tokens"] == 6000
        assert call["temperature"] == 0.3

    def test_duration_mismatch_persists_nothing(self, db_session, lisbon_trip):
        three_days = lisbon_days() + [make_day(3, make_item("Day trip to Sintra", 40))]
        llm = FakeLLMClient(itinerary_reply(*three_days))
        with pytest.raises(DurationMismatch):
            ItineraryGenerator(llm).generate(db_session, lisbon_trip)
        assert _itinerary_count(db_session, lisbon_trip.id) == 0

    def test_malformed_reply_persists_nothing(self, db_session, lisbon_trip):
        llm = FakeLLMClient("Sorry, I could not build that itinerary.")
        with pytest.raises(MalformedResponse):
            ItineraryGenerator(llm).generate(db_session, lisbon_trip)
        assert _itinerary_count(db_session, lisbon_trip.id) == 0

    def test_empty_days_persists_nothing(self, db_session, lisbon_trip):
        llm = FakeLLMClient('{"days": []}')
        with pytest.raises(EmptyItinerary):
            ItineraryGenerator(llm).generate(db_session, lisbon_trip)
        assert _itinerary_count(db_session, lisbon_trip.id) == 0

    def test_upstream_failure_propagates(self, db_session, lisbon_trip):
        llm = FakeLLMClient(UpstreamUnavailable())
        with pytest.raises(UpstreamUnavailable):
            ItineraryGenerator(llm).generate(db_session, lisbon_trip)
        assert _itinerary_count(db_session, lisbon_trip.id) == 0

    def test_missing_duration_defaults_to_three_days(self, db_session, lisbon_trip):
        lisbon_trip.duration_days = None
        db_session.commit()
        days = [make_day(n, make_item(f"Visit spot {n}", 10)) for n in range(1, 4)]
        llm = FakeLLMClient(itinerary_reply(*days))
        itinerary = ItineraryGenerator(llm).generate(db_session, lisbon_trip)
        assert len(itinerary.items) == 3
        assert "EXACTLY 3 day(s)" in llm.calls[0]["system"]

    def test_regeneration_adds_a_new_version(self, db_session, lisbon_trip):
        llm = FakeLLMClient(itinerary_reply(*lisbon_days()), itinerary_reply(*lisbon_days()))
        generator = ItineraryGenerator(llm)
        first = generator.generate(db_session, lisbon_trip)
        second = generator.generate(db_session, lisbon_trip, feedback="More seafood please")

        assert (first.version, second.version) == (1, 2)
        assert second.ai_suggestions["feedback"] == "More seafood please"
        assert "More seafood please" in llm.calls[1]["user"]
        assert latest_itinerary(db_session, lisbon_trip.id).version == 2

    def test_trip_lock_is_released_after_each_run(self, db_session, lisbon_trip):
        llm = FakeLLMClient(itinerary_reply(*lisbon_days()), "not json")
        generator = ItineraryGenerator(llm)
        generator.generate(db_session, lisbon_trip)
        assert generator._locks == {}

        with pytest.raises(MalformedResponse):
            generator.generate(db_session, lisbon_trip)
        assert generator._locks == {}

    def test_quality_warnings_are_recorded(self, db_session, lisbon_trip):
        days = [make_day(1, make_item("Lunch", 10)), make_day(2, make_item("Explore Alfama", 5))]
        llm = FakeLLMClient(itinerary_reply(*days))
        itinerary = ItineraryGenerator(llm).generate(db_session, lisbon_trip)
        assert itinerary.ai_suggestions["qualityWarnings"] == [{"day": 1, "title": "Lunch"}]


class TestGenerationQueue:
    def test_background_run_saves_itinerary(self, db_session, lisbon_trip):
        llm = FakeLLMClient(itinerary_reply(*lisbon_days()))
        queue = GenerationQueue(ItineraryGenerator(llm), SessionLocal, workers=1)
        try:
            itinerary = queue.submit(lisbon_trip.id, lisbon_trip.user_id).result(timeout=10)
        finally:
            queue.shutdown()

        assert itinerary.version == 1
        assert _itinerary_count(db_session, lisbon_trip.id) == 1

    def test_missing_trip_resolves_to_none(self, db_session, user):
        queue = GenerationQueue(ItineraryGenerator(FakeLLMClient()), SessionLocal, workers=1)
        try:
            assert queue.submit("no-such-trip", user.id).result(timeout=10) is None
        finally:
            queue.shutdown()

    def test_other_users_trip_is_skipped(self, db_session, lisbon_trip):
        queue = GenerationQueue(ItineraryGenerator(FakeLLMClient()), SessionLocal, workers=1)
        try:
            assert queue.submit(lisbon_trip.id, "someone-else").result(timeout=10) is None
        finally:
            queue.shutdown()

    def test_failure_surfaces_on_the_future(self, db_session, lisbon_trip):
        llm = FakeLLMClient("not json")
        queue = GenerationQueue(ItineraryGenerator(llm), SessionLocal, workers=1)
        try:
            future = queue.submit(lisbon_trip.id, lisbon_trip.user_id)
            with pytest.raises(MalformedResponse):
                future.result(timeout=10)
        finally:
            queue.shutdown()
        assert _itinerary_count(db_session, lisbon_trip.id) == 0

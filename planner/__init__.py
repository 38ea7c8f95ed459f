"""Itinerary generation pipeline: prompt → LLM → extract → validate → assemble."""

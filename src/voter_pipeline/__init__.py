"""Voter-roll ingestion and resumable geocoding pipeline."""

__version__ = "0.1.0"

"""Reservation ingestion & availability grid engine."""

__version__ = "0.1.0"

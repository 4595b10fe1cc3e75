"""Shared test helpers."""

from datetime import datetime, timezone


def at(day: int, hour: int = 10) -> datetime:
    """UTC datetime in November 2026, the calendar used across the suite."""
    return datetime(2026, 11, day, hour, tzinfo=timezone.utc)

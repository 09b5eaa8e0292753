"""Small helpers shared across the matchmaking service."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone


def generate_lobby_id() -> uuid.UUID:
    """Return a new random lobby identifier."""
    return uuid.uuid4()


def generate_game_id() -> uuid.UUID:
    """Return a new random game identifier."""
    return uuid.uuid4()


def current_timestamp() -> datetime:
    """Return the current time in UTC."""
    return datetime.now(timezone.utc)


def rating_difference(rating1: float, rating2: float) -> float:
    """Absolute difference between two ratings."""
    return abs(rating1 - rating2)


def ratings_within_tolerance(rating1: float, rating2: float, tolerance: float) -> bool:
    """Whether two ratings differ by at most ``tolerance``."""
    return rating_difference(rating1, rating2) <= tolerance
"""Persistence of player ratings: interface, in-memory and recording stores."""

from __future__ import annotations

import copy
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, Mapping, Optional

from .types import PlayerId, PlayerRating
from .utils import current_timestamp

DEFAULT_MAX_ENTRIES = 10_000


@dataclass
class RatingEntry:
    """A player's stored rating together with bookkeeping data."""

    player_id: PlayerId
    rating: PlayerRating
    games_played: int = 0
    created_at: datetime = field(default_factory=current_timestamp)
    last_updated: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.last_updated is None:
            self.last_updated = self.created_at

    def update_rating(self, new_rating: PlayerRating) -> None:
        """Set a new rating, count one more game and refresh the timestamp."""
        self.rating = new_rating
        self.games_played += 1
        now = current_timestamp()
        # Keep update times strictly increasing even on coarse clocks.
        if self.last_updated is not None and now <= self.last_updated:
            now = self.last_updated + timedelta(microseconds=1)
        self.last_updated = now


class RatingStorage(ABC):
    """Operations for storing and retrieving player ratings."""

    @abstractmethod
    def get_rating(self, player_id: PlayerId) -> Optional[RatingEntry]:
        """The entry of ``player_id``, or None when unknown."""

    @abstractmethod
    def store_rating(self, entry: RatingEntry) -> None:
        """Insert or replace one entry."""

    @abstractmethod
    def get_ratings(self, player_ids: Iterable[PlayerId]) -> dict[PlayerId, RatingEntry]:
        """Entries of those players that are known."""

    @abstractmethod
    def store_ratings(self, entries: Iterable[RatingEntry]) -> None:
        """Insert or replace several entries at once."""

    @abstractmethod
    def get_all_ratings(self) -> dict[PlayerId, RatingEntry]:
        """Every stored entry."""

    @abstractmethod
    def remove_rating(self, player_id: PlayerId) -> bool:
        """Delete a player's entry; True if one was present."""

    @abstractmethod
    def get_players_by_rating_range(
        self, min_rating: float, max_rating: float, limit: Optional[int] = None
    ) -> list[RatingEntry]:
        """Entries rated within the inclusive range, highest rating first."""

    @abstractmethod
    def get_player_count(self) -> int:
        """Number of stored entries."""


class _RatingTable:
    """Thread-safe mapping of player ids to copies of their entries."""

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self._entries: dict[PlayerId, RatingEntry] = {}

    def get(self, player_id: PlayerId) -> Optional[RatingEntry]:
        with self.lock:
            entry = self._entries.get(player_id)
            return copy.copy(entry) if entry is not None else None

    def put(self, entry: RatingEntry) -> None:
        with self.lock:
            self._entries[entry.player_id] = copy.copy(entry)

    def put_many(self, entries: Iterable[RatingEntry]) -> None:
        with self.lock:
            for entry in entries:
                self._entries[entry.player_id] = copy.copy(entry)

    def replace(self, entries: Mapping[PlayerId, RatingEntry]) -> None:
        with self.lock:
            self._entries = {pid: copy.copy(entry) for pid, entry in entries.items()}

    def get_many(self, player_ids: Iterable[PlayerId]) -> dict[PlayerId, RatingEntry]:
        with self.lock:
            return {
                pid: copy.copy(self._entries[pid])
                for pid in player_ids
                if pid in self._entries
            }

    def snapshot(self) -> dict[PlayerId, RatingEntry]:
        with self.lock:
            return {pid: copy.copy(entry) for pid, entry in self._entries.items()}

    def pop(self, player_id: PlayerId) -> bool:
        with self.lock:
            return self._entries.pop(player_id, None) is not None

    def in_range(
        self, min_rating: float, max_rating: float, limit: Optional[int]
    ) -> list[RatingEntry]:
        with self.lock:
            matching = [
                copy.copy(entry)
                for entry in self._entries.values()
                if min_rating <= entry.rating.rating <= max_rating
            ]
        matching.sort(key=lambda entry: entry.rating.rating, reverse=True)
        return matching if limit is None else matching[:limit]

    def evict_oldest(self, max_entries: int) -> None:
        with self.lock:
            excess = len(self._entries) - max_entries
            if excess <= 0:
                return
            oldest = sorted(self._entries.values(), key=lambda entry: entry.last_updated)
            for entry in oldest[:excess]:
                del self._entries[entry.player_id]

    def __len__(self) -> int:
        with self.lock:
            return len(self._entries)


class InMemoryRatingStorage(RatingStorage):
    """In-memory store that evicts the least recently updated entries."""

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES) -> None:
        self.max_entries = max_entries
        self._table = _RatingTable()

    def get_rating(self, player_id: PlayerId) -> Optional[RatingEntry]:
        return self._table.get(player_id)

    def store_rating(self, entry: RatingEntry) -> None:
        with self._table.lock:
            self._table.put(entry)
            self._table.evict_oldest(self.max_entries)

    def get_ratings(self, player_ids: Iterable[PlayerId]) -> dict[PlayerId, RatingEntry]:
        return self._table.get_many(player_ids)

    def store_ratings(self, entries: Iterable[RatingEntry]) -> None:
        with self._table.lock:
            self._table.put_many(entries)
            self._table.evict_oldest(self.max_entries)

    def get_all_ratings(self) -> dict[PlayerId, RatingEntry]:
        return self._table.snapshot()

    def remove_rating(self, player_id: PlayerId) -> bool:
        return self._table.pop(player_id)

    def get_players_by_rating_range(
        self, min_rating: float, max_rating: float, limit: Optional[int] = None
    ) -> list[RatingEntry]:
        return self._table.in_range(min_rating, max_rating, limit)

    def get_player_count(self) -> int:
        return len(self._table)


class MockRatingStorage(RatingStorage):
    """Unbounded store that records every write, for use in tests."""

    def __init__(self) -> None:
        self._table = _RatingTable()
        self._store_calls: list[RatingEntry] = []

    def get_store_calls(self) -> list[RatingEntry]:
        """Every entry written so far, in order."""
        with self._table.lock:
            return [copy.copy(entry) for entry in self._store_calls]

    def clear_store_calls(self) -> None:
        """Forget recorded writes."""
        with self._table.lock:
            self._store_calls.clear()

    def preset_ratings(self, ratings: Mapping[PlayerId, RatingEntry]) -> None:
        """Replace all stored entries with ``ratings``."""
        self._table.replace(ratings)

    def get_rating(self, player_id: PlayerId) -> Optional[RatingEntry]:
        return self._table.get(player_id)

    def store_rating(self, entry: RatingEntry) -> None:
        with self._table.lock:
            self._store_calls.append(copy.copy(entry))
            self._table.put(entry)

    def get_ratings(self, player_ids: Iterable[PlayerId]) -> dict[PlayerId, RatingEntry]:
        return self._table.get_many(player_ids)

    def store_ratings(self, entries: Iterable[RatingEntry]) -> None:
        entries = list(entries)
        with self._table.lock:
            self._store_calls.extend(copy.copy(entry) for entry in entries)
            self._table.put_many(entries)

    def get_all_ratings(self) -> dict[PlayerId, RatingEntry]:
        return self._table.snapshot()

    def remove_rating(self, player_id: PlayerId) -> bool:
        return self._table.pop(player_id)

    def get_players_by_rating_range(
        self, min_rating: float, max_rating: float, limit: Optional[int] = None
    ) -> list[RatingEntry]:
        return self._table.in_range(min_rating, max_rating, limit)

    def get_player_count(self) -> int:
        return len(self._table)
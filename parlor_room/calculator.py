"""Rating calculator interface and simple implementations."""

from __future__ import annotations

import copy
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any, Mapping, Sequence

from .errors import InvalidQueueRequestError
from .types import PlayerId, PlayerRating, RatingChange

PlayerRatingData = tuple[PlayerId, PlayerRating]
PlayerRankingData = tuple[PlayerId, int]
CalculationCallData = tuple[list[PlayerRatingData], list[PlayerRankingData]]


@dataclass
class RatingCalculationResult:
    """Rating changes of a game and the quality of the match (0.0 to 1.0)."""

    rating_changes: list[RatingChange] = field(default_factory=list)
    match_quality: float = 0.0


class RatingCalculator(ABC):
    """Computes rating changes after games."""

    @abstractmethod
    def calculate_rating_changes(
        self,
        players: Sequence[PlayerRatingData],
        rankings: Sequence[PlayerRankingData],
    ) -> RatingCalculationResult:
        """Rating changes for ``players`` given ``rankings`` (1 = first place)."""

    @abstractmethod
    def get_initial_rating(self) -> PlayerRating:
        """Rating given to new players."""

    @abstractmethod
    def config(self) -> dict[str, Any]:
        """Current configuration as a JSON-compatible dict."""

    @abstractmethod
    def update_config(self, config: Any) -> None:
        """Replace configuration from a JSON-compatible value."""


def _rank_of(player_id: PlayerId, rankings: Sequence[PlayerRankingData]) -> int:
    return next((rank for pid, rank in rankings if pid == player_id), 1)


def _unchanged(
    players: Sequence[PlayerRatingData], rankings: Sequence[PlayerRankingData]
) -> list[RatingChange]:
    return [
        RatingChange(
            player_id=player_id,
            old_rating=rating,
            new_rating=rating,
            rank=_rank_of(player_id, rankings),
        )
        for player_id, rating in players
    ]


def _number(config: Any, key: str) -> float | None:
    if not isinstance(config, Mapping):
        return None
    value = config.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _updated_initial(initial: PlayerRating, config: Any) -> PlayerRating:
    rating = _number(config, "initial_rating")
    if rating is not None:
        initial = replace(initial, rating=rating)
    uncertainty = _number(config, "initial_uncertainty")
    if uncertainty is not None:
        initial = replace(initial, uncertainty=uncertainty)
    return initial


class NoOpRatingCalculator(RatingCalculator):
    """Leaves every rating unchanged."""

    def __init__(self, initial_rating: PlayerRating | None = None) -> None:
        self.initial_rating = initial_rating if initial_rating is not None else PlayerRating()

    def calculate_rating_changes(self, players, rankings):
        if not players:
            raise InvalidQueueRequestError("No players provided for rating calculation")
        return RatingCalculationResult(
            rating_changes=_unchanged(players, rankings), match_quality=1.0
        )

    def get_initial_rating(self) -> PlayerRating:
        return self.initial_rating

    def config(self) -> dict[str, Any]:
        return {
            "type": "no_op",
            "initial_rating": self.initial_rating.rating,
            "initial_uncertainty": self.initial_rating.uncertainty,
        }

    def update_config(self, config: Any) -> None:
        self.initial_rating = _updated_initial(self.initial_rating, config)


class MockRatingCalculator(RatingCalculator):
    """Records calls and returns either a fixed or an unchanged result."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._calls: list[CalculationCallData] = []
        self._fixed_result: RatingCalculationResult | None = None
        self.initial_rating = PlayerRating()

    def set_fixed_result(self, result: RatingCalculationResult) -> None:
        """Return ``result`` from every later calculation."""
        with self._lock:
            self._fixed_result = copy.deepcopy(result)

    def get_calculation_calls(self) -> list[CalculationCallData]:
        """All calculations requested so far."""
        with self._lock:
            return copy.deepcopy(self._calls)

    def clear_calls(self) -> None:
        """Forget recorded calculations."""
        with self._lock:
            self._calls.clear()

    def calculate_rating_changes(self, players, rankings):
        with self._lock:
            self._calls.append((list(players), list(rankings)))
            if self._fixed_result is not None:
                return copy.deepcopy(self._fixed_result)
        return RatingCalculationResult(
            rating_changes=_unchanged(players, rankings), match_quality=0.8
        )

    def get_initial_rating(self) -> PlayerRating:
        return self.initial_rating

    def config(self) -> dict[str, Any]:
        return {
            "type": "mock",
            "initial_rating": self.initial_rating.rating,
            "initial_uncertainty": self.initial_rating.uncertainty,
        }

    def update_config(self, config: Any) -> None:
        self.initial_rating = _updated_initial(self.initial_rating, config)
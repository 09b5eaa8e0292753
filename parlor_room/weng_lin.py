"""Weng-Lin (OpenSkill) rating system for free-for-all games."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from .calculator import (
    PlayerRankingData,
    PlayerRatingData,
    RatingCalculationResult,
    RatingCalculator,
)
from .errors import ConfigurationError, InvalidQueueRequestError
from .types import PlayerRating, RatingChange


@dataclass
class WengLinConfig:
    """Core parameters of the Weng-Lin algorithm."""

    beta: float = 25.0 / 6.0
    uncertainty_tolerance: float = 0.000_001

    def to_dict(self) -> dict[str, float]:
        return {"beta": self.beta, "uncertainty_tolerance": self.uncertainty_tolerance}


def _required_number(data: Mapping[str, Any], key: str) -> float:
    if key not in data:
        raise ValueError(f"missing field `{key}`")
    value = data[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"field `{key}` must be a number, got {value!r}")
    return float(value)


@dataclass
class ExtendedWengLinConfig:
    """Weng-Lin parameters together with the rating given to new players."""

    weng_lin_config: WengLinConfig = field(
        default_factory=lambda: WengLinConfig(beta=200.0, uncertainty_tolerance=0.0001)
    )
    initial_rating: float = 1500.0
    initial_uncertainty: float = 200.0

    @classmethod
    def conservative(cls) -> ExtendedWengLinConfig:
        """Configuration with slower rating changes."""
        return cls(
            weng_lin_config=WengLinConfig(beta=150.0, uncertainty_tolerance=0.00001),
            initial_rating=1500.0,
            initial_uncertainty=150.0,
        )

    @classmethod
    def aggressive(cls) -> ExtendedWengLinConfig:
        """Configuration with faster rating changes."""
        return cls(
            weng_lin_config=WengLinConfig(beta=250.0, uncertainty_tolerance=0.001),
            initial_rating=1500.0,
            initial_uncertainty=250.0,
        )

    def validate(self) -> None:
        """Raise ConfigurationError if any parameter is out of range."""
        if not self.weng_lin_config.beta > 0.0:
            raise ConfigurationError("Beta must be positive")
        if self.weng_lin_config.uncertainty_tolerance < 0.0:
            raise ConfigurationError("Uncertainty tolerance must be non-negative")
        if not self.initial_uncertainty > 0.0:
            raise ConfigurationError("Initial uncertainty must be positive")

    def to_dict(self) -> dict[str, Any]:
        return {
            "weng_lin_config": self.weng_lin_config.to_dict(),
            "initial_rating": self.initial_rating,
            "initial_uncertainty": self.initial_uncertainty,
        }

    @classmethod
    def from_dict(cls, data: Any) -> ExtendedWengLinConfig:
        """Build a configuration; raises ValueError when fields are missing or wrong."""
        if not isinstance(data, Mapping):
            raise ValueError("configuration must be an object")
        core = data.get("weng_lin_config")
        if not isinstance(core, Mapping):
            raise ValueError("field `weng_lin_config` must be an object")
        return cls(
            weng_lin_config=WengLinConfig(
                beta=_required_number(core, "beta"),
                uncertainty_tolerance=_required_number(core, "uncertainty_tolerance"),
            ),
            initial_rating=_required_number(data, "initial_rating"),
            initial_uncertainty=_required_number(data, "initial_uncertainty"),
        )


def _win_probability(rating_one: float, rating_two: float, c: float) -> float:
    """Probability that rating one beats rating two, computed without overflow."""
    x = (rating_two - rating_one) / c
    if x >= 0:
        e = math.exp(-x)
        return e / (1.0 + e)
    return 1.0 / (1.0 + math.exp(x))


def expected_score(
    player_one: PlayerRating, player_two: PlayerRating, config: WengLinConfig
) -> tuple[float, float]:
    """Expected scores of two players against each other; they sum to 1."""
    c = math.sqrt(
        player_one.uncertainty**2 + player_two.uncertainty**2 + 2.0 * config.beta**2
    )
    p = _win_probability(player_one.rating, player_two.rating, c)
    return p, 1.0 - p


def weng_lin_multi_team(
    teams_and_ranks: Sequence[tuple[Sequence[PlayerRating], int]],
    config: WengLinConfig,
) -> list[list[PlayerRating]]:
    """New ratings for teams finishing at the given ranks (1 = first place)."""
    if not teams_and_ranks:
        return []
    if any(not team for team, _ in teams_and_ranks):
        return [list(team) for team, _ in teams_and_ranks]

    team_stats = [
        (sum(p.rating for p in team), sum(p.uncertainty**2 for p in team))
        for team, _ in teams_and_ranks
    ]

    new_teams: list[list[PlayerRating]] = []
    for i, (team, rank_one) in enumerate(teams_and_ranks):
        mu_i, sigma_sq_i = team_stats[i]
        omega = 0.0
        delta = 0.0
        for q, (_, rank_two) in enumerate(teams_and_ranks):
            if q == i:
                continue
            mu_q, sigma_sq_q = team_stats[q]
            c = math.sqrt(sigma_sq_i + sigma_sq_q + 2.0 * config.beta**2)
            p = _win_probability(mu_i, mu_q, c)
            sigma_sq_to_c = sigma_sq_i / c
            gamma = math.sqrt(sigma_sq_i) / c
            if rank_two > rank_one:
                score = 1.0
            elif rank_two == rank_one:
                score = 0.5
            else:
                score = 0.0
            omega += sigma_sq_to_c * (score - p)
            delta += gamma * sigma_sq_to_c / c * p * (1.0 - p)

        new_team = []
        for player in team:
            share = player.uncertainty**2 / sigma_sq_i
            new_mu = player.rating + share * omega
            sigma_adj = max(1.0 - share * delta, config.uncertainty_tolerance)
            new_sigma = math.sqrt(player.uncertainty**2 * sigma_adj)
            new_team.append(PlayerRating(rating=new_mu, uncertainty=new_sigma))
        new_teams.append(new_team)
    return new_teams


class WengLinRatingCalculator(RatingCalculator):
    """Rating calculator based on the Weng-Lin algorithm."""

    def __init__(self, config: ExtendedWengLinConfig | None = None) -> None:
        config = config if config is not None else ExtendedWengLinConfig()
        config.validate()
        self._config = config

    def default_rating(self) -> PlayerRating:
        """Rating for new players."""
        return PlayerRating(
            rating=self._config.initial_rating,
            uncertainty=self._config.initial_uncertainty,
        )

    def calculate_expected_score(
        self, player_rating: PlayerRating, opponent_ratings: Sequence[PlayerRating]
    ) -> float:
        """Mean win probability against the opponents; 0.5 with none."""
        if not opponent_ratings:
            return 0.5
        core = self._config.weng_lin_config
        total = sum(
            expected_score(player_rating, opponent, core)[0] for opponent in opponent_ratings
        )
        return total / len(opponent_ratings)

    def are_players_compatible(
        self,
        player1: PlayerRating,
        player2: PlayerRating,
        max_uncertainty_units: float,
    ) -> bool:
        """Whether the ratings lie within the uncertainty-scaled tolerance."""
        rating_diff = abs(player1.rating - player2.rating)
        combined = player1.uncertainty + player2.uncertainty
        return rating_diff <= max_uncertainty_units * combined / 2.0

    def calculate_match_quality(self, player_ratings: Sequence[PlayerRating]) -> float:
        """Quality of a match from 0.0 to 1.0; closer ratings score higher."""
        if len(player_ratings) < 2:
            return 0.0
        ratings = [r.rating for r in player_ratings]
        mean = sum(ratings) / len(ratings)
        variance = sum((r - mean) ** 2 for r in ratings) / len(ratings)
        std_dev = math.sqrt(variance)
        quality = 1.0 - min(std_dev / self._config.weng_lin_config.beta, 1.0)
        return max(quality, 0.0)

    def calculate_rating_changes(
        self,
        players: Sequence[PlayerRatingData],
        rankings: Sequence[PlayerRankingData],
    ) -> RatingCalculationResult:
        if not players:
            raise InvalidQueueRequestError("No players provided for rating calculation")
        if not rankings:
            raise InvalidQueueRequestError("No rankings provided for rating calculation")

        ranking_map = dict(rankings)
        for player_id, _ in players:
            if player_id not in ranking_map:
                raise InvalidQueueRequestError(f"No ranking provided for player {player_id}")

        teams = [([rating], ranking_map[player_id]) for player_id, rating in players]
        new_ratings = weng_lin_multi_team(teams, self._config.weng_lin_config)

        changes = [
            RatingChange(
                player_id=player_id,
                old_rating=old_rating,
                new_rating=new_team[0],
                rank=ranking_map[player_id],
            )
            for (player_id, old_rating), new_team in zip(players, new_ratings)
        ]
        return RatingCalculationResult(
            rating_changes=changes,
            match_quality=self.calculate_match_quality([r for _, r in players]),
        )

    def get_initial_rating(self) -> PlayerRating:
        return self.default_rating()

    def config(self) -> dict[str, Any]:
        return self._config.to_dict()

    def update_config(self, config: Any) -> None:
        try:
            new_config = ExtendedWengLinConfig.from_dict(config)
        except ValueError as exc:
            raise ConfigurationError(f"Invalid Weng-Lin configuration: {exc}") from exc
        new_config.validate()
        self._config = new_config
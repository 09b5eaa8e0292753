"""Core data types exchanged by the matchmaking service."""

from __future__ import annotations

import json
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Union

PlayerId = str
LobbyId = uuid.UUID
GameId = uuid.UUID

_FRACTION = re.compile(r"\.(\d+)")


def _format_timestamp(ts: datetime) -> str:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_timestamp(text: str) -> datetime:
    text = text.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    # Timestamps may carry up to nanosecond precision; keep microseconds.
    text = _FRACTION.sub(
        lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1
    )
    ts = datetime.fromisoformat(text)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


class PlayerType(Enum):
    """Kind of participant in matchmaking."""

    HUMAN = "Human"
    BOT = "Bot"


class LobbyType(Enum):
    """Kind of lobby a participant wants to join."""

    ALL_BOT = "AllBot"
    GENERAL = "General"

    def __str__(self) -> str:
        return self.value


class LeaveReason(Enum):
    """Why a participant left a lobby."""

    DISCONNECT = "Disconnect"
    USER_QUIT = "UserQuit"
    TIMEOUT = "Timeout"
    SYSTEM_ERROR = "SystemError"
    BOT_REPLACEMENT = "BotReplacement"


@dataclass(frozen=True)
class PlayerRating:
    """Skill estimate of a participant."""

    rating: float = 1500.0
    uncertainty: float = 200.0

    def to_dict(self) -> dict[str, Any]:
        return {"rating": self.rating, "uncertainty": self.uncertainty}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PlayerRating:
        return cls(rating=float(data["rating"]), uncertainty=float(data["uncertainty"]))


@dataclass
class Player:
    """A participant waiting in or playing from a lobby."""

    id: PlayerId
    player_type: PlayerType
    rating: PlayerRating
    joined_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "player_type": self.player_type.value,
            "rating": self.rating.to_dict(),
            "joined_at": _format_timestamp(self.joined_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Player:
        return cls(
            id=str(data["id"]),
            player_type=PlayerType(data["player_type"]),
            rating=PlayerRating.from_dict(data["rating"]),
            joined_at=_parse_timestamp(data["joined_at"]),
        )


@dataclass
class QueueRequest:
    """Request to join a lobby queue."""

    player_id: PlayerId
    player_type: PlayerType
    lobby_type: LobbyType
    current_rating: PlayerRating
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "player_id": self.player_id,
            "player_type": self.player_type.value,
            "lobby_type": self.lobby_type.value,
            "current_rating": self.current_rating.to_dict(),
            "timestamp": _format_timestamp(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> QueueRequest:
        return cls(
            player_id=str(data["player_id"]),
            player_type=PlayerType(data["player_type"]),
            lobby_type=LobbyType(data["lobby_type"]),
            current_rating=PlayerRating.from_dict(data["current_rating"]),
            timestamp=_parse_timestamp(data["timestamp"]),
        )


@dataclass
class PlayerJoinedLobby:
    """Event emitted when a participant joins a lobby."""

    lobby_id: LobbyId
    player_id: PlayerId
    player_type: PlayerType
    current_players: list[Player]
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "lobby_id": str(self.lobby_id),
            "player_id": self.player_id,
            "player_type": self.player_type.value,
            "current_players": [p.to_dict() for p in self.current_players],
            "timestamp": _format_timestamp(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PlayerJoinedLobby:
        return cls(
            lobby_id=uuid.UUID(data["lobby_id"]),
            player_id=str(data["player_id"]),
            player_type=PlayerType(data["player_type"]),
            current_players=[Player.from_dict(p) for p in data["current_players"]],
            timestamp=_parse_timestamp(data["timestamp"]),
        )


@dataclass
class PlayerLeftLobby:
    """Event emitted when a participant leaves a lobby."""

    lobby_id: LobbyId
    player_id: PlayerId
    reason: LeaveReason
    remaining_players: list[Player]
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "lobby_id": str(self.lobby_id),
            "player_id": self.player_id,
            "reason": self.reason.value,
            "remaining_players": [p.to_dict() for p in self.remaining_players],
            "timestamp": _format_timestamp(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PlayerLeftLobby:
        return cls(
            lobby_id=uuid.UUID(data["lobby_id"]),
            player_id=str(data["player_id"]),
            reason=LeaveReason(data["reason"]),
            remaining_players=[Player.from_dict(p) for p in data["remaining_players"]],
            timestamp=_parse_timestamp(data["timestamp"]),
        )


@dataclass
class RatingScenario:
    """Predicted rating of one player if they finish at a given rank."""

    player_id: PlayerId
    rank: int
    current_rating: PlayerRating
    predicted_rating: PlayerRating
    rating_delta: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "player_id": self.player_id,
            "rank": self.rank,
            "current_rating": self.current_rating.to_dict(),
            "predicted_rating": self.predicted_rating.to_dict(),
            "rating_delta": self.rating_delta,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RatingScenario:
        return cls(
            player_id=str(data["player_id"]),
            rank=int(data["rank"]),
            current_rating=PlayerRating.from_dict(data["current_rating"]),
            predicted_rating=PlayerRating.from_dict(data["predicted_rating"]),
            rating_delta=float(data["rating_delta"]),
        )


@dataclass
class PlayerRatingRange:
    """Best and worst rating outcomes for one player."""

    player_id: PlayerId
    current_rating: PlayerRating
    best_case_rating: PlayerRating
    worst_case_rating: PlayerRating
    max_gain: float
    max_loss: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "player_id": self.player_id,
            "current_rating": self.current_rating.to_dict(),
            "best_case_rating": self.best_case_rating.to_dict(),
            "worst_case_rating": self.worst_case_rating.to_dict(),
            "max_gain": self.max_gain,
            "max_loss": self.max_loss,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PlayerRatingRange:
        return cls(
            player_id=str(data["player_id"]),
            current_rating=PlayerRating.from_dict(data["current_rating"]),
            best_case_rating=PlayerRating.from_dict(data["best_case_rating"]),
            worst_case_rating=PlayerRating.from_dict(data["worst_case_rating"]),
            max_gain=float(data["max_gain"]),
            max_loss=float(data["max_loss"]),
        )


@dataclass
class RatingScenariosTable:
    """All rating outcomes for a game, with per-player summaries."""

    scenarios: list[RatingScenario] = field(default_factory=list)
    player_ranges: list[PlayerRatingRange] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "scenarios": [s.to_dict() for s in self.scenarios],
            "player_ranges": [r.to_dict() for r in self.player_ranges],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RatingScenariosTable:
        return cls(
            scenarios=[RatingScenario.from_dict(s) for s in data["scenarios"]],
            player_ranges=[PlayerRatingRange.from_dict(r) for r in data["player_ranges"]],
        )


@dataclass
class RatingChange:
    """Rating of a player before and after a game."""

    player_id: PlayerId
    old_rating: PlayerRating
    new_rating: PlayerRating
    rank: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "player_id": self.player_id,
            "old_rating": self.old_rating.to_dict(),
            "new_rating": self.new_rating.to_dict(),
            "rank": self.rank,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RatingChange:
        return cls(
            player_id=str(data["player_id"]),
            old_rating=PlayerRating.from_dict(data["old_rating"]),
            new_rating=PlayerRating.from_dict(data["new_rating"]),
            rank=int(data["rank"]),
        )


@dataclass
class GameStarting:
    """Event emitted when a lobby is full and its game starts."""

    lobby_id: LobbyId
    game_id: GameId
    players: list[Player]
    rating_scenarios: RatingScenariosTable
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "lobby_id": str(self.lobby_id),
            "game_id": str(self.game_id),
            "players": [p.to_dict() for p in self.players],
            "rating_scenarios": self.rating_scenarios.to_dict(),
            "timestamp": _format_timestamp(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> GameStarting:
        return cls(
            lobby_id=uuid.UUID(data["lobby_id"]),
            game_id=uuid.UUID(data["game_id"]),
            players=[Player.from_dict(p) for p in data["players"]],
            rating_scenarios=RatingScenariosTable.from_dict(data["rating_scenarios"]),
            timestamp=_parse_timestamp(data["timestamp"]),
        )


Message = Union[QueueRequest, PlayerJoinedLobby, PlayerLeftLobby, GameStarting]

_MESSAGE_TYPES: dict[str, type] = {
    cls.__name__: cls
    for cls in (QueueRequest, PlayerJoinedLobby, PlayerLeftLobby, GameStarting)
}


def encode_message(message: Message) -> str:
    """Serialise a message to JSON with a ``type`` tag."""
    tag = type(message).__name__
    if _MESSAGE_TYPES.get(tag) is not type(message):
        raise TypeError(f"not a message type: {tag}")
    return json.dumps({"type": tag, **message.to_dict()})


def decode_message(data: str | bytes) -> Message:
    """Parse a tagged JSON message; raises ValueError on malformed input."""
    payload = json.loads(data)
    if not isinstance(payload, dict):
        raise ValueError("message must be a JSON object")
    tag = payload.get("type")
    cls = _MESSAGE_TYPES.get(tag) if isinstance(tag, str) else None
    if cls is None:
        raise ValueError(f"unknown message type: {tag!r}")
    try:
        return cls.from_dict(payload)
    except (KeyError, TypeError, AttributeError) as exc:
        raise ValueError(f"malformed {tag} message: {exc}") from exc
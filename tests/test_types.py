import json
import uuid
from datetime import datetime, timezone

import pytest

from parlor_room.types import (
    GameStarting,
    LeaveReason,
    LobbyType,
    Player,
    PlayerJoinedLobby,
    PlayerLeftLobby,
    PlayerRating,
    PlayerRatingRange,
    PlayerType,
    QueueRequest,
    RatingChange,
    RatingScenario,
    RatingScenariosTable,
    decode_message,
    encode_message,
)

NOW = datetime(2024, 5, 1, 12, 30, 45, 123456, tzinfo=timezone.utc)


def make_player(pid="player1", kind=PlayerType.HUMAN):
    return Player(id=pid, player_type=kind, rating=PlayerRating(1600.0, 150.0), joined_at=NOW)


def test_default_rating():
    rating = PlayerRating()
    assert rating.rating == 1500.0
    assert rating.uncertainty == 200.0


def test_lobby_type_display():
    assert str(LobbyType("AllBot")) == "AllBot"
    assert str(LobbyType("General")) == "General"
    assert LobbyType("AllBot") is LobbyType.ALL_BOT


def test_queue_request_round_trip():
    request = QueueRequest(
        player_id="player1",
        player_type=PlayerType.BOT,
        lobby_type=LobbyType.ALL_BOT,
        current_rating=PlayerRating(1400.0, 180.0),
        timestamp=NOW,
    )
    text = encode_message(request)
    payload = json.loads(text)
    assert payload["type"] == "QueueRequest"
    assert payload["player_type"] == "Bot"
    assert payload["lobby_type"] == "AllBot"
    assert decode_message(text) == request


def test_player_joined_round_trip():
    event = PlayerJoinedLobby(
        lobby_id=uuid.uuid4(),
        player_id="player2",
        player_type=PlayerType.HUMAN,
        current_players=[make_player(), make_player("player2")],
        timestamp=NOW,
    )
    assert decode_message(encode_message(event)) == event


def test_player_left_round_trip():
    event = PlayerLeftLobby(
        lobby_id=uuid.uuid4(),
        player_id="player1",
        reason=LeaveReason.BOT_REPLACEMENT,
        remaining_players=[make_player("bot1", PlayerType.BOT)],
        timestamp=NOW,
    )
    text = encode_message(event)
    assert json.loads(text)["reason"] == "BotReplacement"
    assert decode_message(text) == event


def test_game_starting_round_trip():
    current = PlayerRating(1500.0, 200.0)
    better = PlayerRating(1550.0, 190.0)
    worse = PlayerRating(1450.0, 190.0)
    table = RatingScenariosTable(
        scenarios=[
            RatingScenario("player1", 1, current, better, 50.0),
            RatingScenario("player1", 2, current, worse, -50.0),
        ],
        player_ranges=[PlayerRatingRange("player1", current, better, worse, 50.0, -50.0)],
    )
    event = GameStarting(
        lobby_id=uuid.uuid4(),
        game_id=uuid.uuid4(),
        players=[make_player()],
        rating_scenarios=table,
        timestamp=NOW,
    )
    decoded = decode_message(encode_message(event))
    assert decoded == event
    assert decoded.rating_scenarios.scenarios[1].rating_delta == -50.0


def test_rating_change_round_trip():
    change = RatingChange("p", PlayerRating(), PlayerRating(1550.0, 190.0), 1)
    assert RatingChange.from_dict(change.to_dict()) == change


def test_timestamp_written_in_utc_with_z():
    request = QueueRequest("p", PlayerType.HUMAN, LobbyType.GENERAL, PlayerRating(), NOW)
    assert json.loads(encode_message(request))["timestamp"].endswith("Z")


def test_decode_accepts_nanosecond_timestamps():
    payload = {
        "type": "QueueRequest",
        "player_id": "p",
        "player_type": "Human",
        "lobby_type": "General",
        "current_rating": {"rating": 1500, "uncertainty": 200},
        "timestamp": "2024-05-01T12:30:45.123456789Z",
    }
    request = decode_message(json.dumps(payload))
    assert request.timestamp == NOW
    assert request.current_rating == PlayerRating()


def test_decode_unknown_type():
    with pytest.raises(ValueError):
        decode_message('{"type": "Nonsense"}')


def test_decode_missing_field():
    with pytest.raises(ValueError):
        decode_message('{"type": "QueueRequest", "player_id": "p"}')


def test_decode_bad_enum():
    request = QueueRequest("p", PlayerType.HUMAN, LobbyType.GENERAL, PlayerRating(), NOW)
    payload = json.loads(encode_message(request))
    payload["player_type"] = "Robot"
    with pytest.raises(ValueError):
        decode_message(json.dumps(payload))


def test_encode_rejects_non_message():
    with pytest.raises(TypeError):
        encode_message(make_player())
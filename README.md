# parlor-room

Building blocks for a matchmaking service that queues human players and bots
into lobbies by skill rating: message types, a Weng-Lin (OpenSkill) rating
calculator, rating storage, Prometheus-style metrics and HTTP health
endpoints.

## Modules

- `parlor_room.types` – `PlayerType`, `LobbyType`, `LeaveReason`,
  `PlayerRating` (defaults: rating 1500.0, uncertainty 200.0), `Player`,
  `QueueRequest`, the events `PlayerJoinedLobby`, `PlayerLeftLobby` and
  `GameStarting`, and the rating tables `RatingScenario`,
  `PlayerRatingRange`, `RatingScenariosTable` and `RatingChange`. Each type
  has `to_dict()` / `from_dict()`. `encode_message(message)` writes a
  `QueueRequest` or one of the three events as JSON with a `"type"` tag;
  `decode_message(data)` reads it back and raises `ValueError` on malformed
  or unknown messages.
- `parlor_room.utils` – `generate_lobby_id()`, `generate_game_id()` (random
  UUIDs), `current_timestamp()` (UTC), `rating_difference()` and
  `ratings_within_tolerance()`.
- `parlor_room.errors` – `MatchmakingError` and its subclasses
  `InvalidQueueRequestError`, `ConfigurationError` and `InternalError`.
- `parlor_room.calculator` – the abstract `RatingCalculator`,
  `RatingCalculationResult`, `NoOpRatingCalculator` (ratings unchanged,
  match quality 1.0) and `MockRatingCalculator` (records calls, returns a
  fixed result if one was set, otherwise unchanged ratings with quality 0.8).
- `parlor_room.weng_lin` – `WengLinConfig`, `ExtendedWengLinConfig` (with
  `conservative()`, `aggressive()`, `validate()`, `to_dict()`,
  `from_dict()`), the functions `expected_score()` and
  `weng_lin_multi_team()`, and `WengLinRatingCalculator`.
- `parlor_room.storage` – `RatingEntry`, the abstract `RatingStorage`,
  `InMemoryRatingStorage` and `MockRatingStorage`.
- `parlor_room.collector` – `Registry`, `Counter`, `Gauge`, `Histogram`,
  `MetricsTimer` and `MetricsCollector`.
- `parlor_room.service_health` – `HealthStatus`, `ComponentCheck`,
  `ServiceStats` and `HealthCheck`.
- `parlor_room.health_server` – `HealthServerConfig`, `HealthServer`,
  `HealthEndpoints` and `MetricsService`.

## Rating a game

```python
from parlor_room.types import PlayerRating
from parlor_room.weng_lin import ExtendedWengLinConfig, WengLinRatingCalculator

calculator = WengLinRatingCalculator(ExtendedWengLinConfig())

players = [
    ("alice", PlayerRating(rating=1500.0, uncertainty=200.0)),
    ("bot-7", PlayerRating(rating=1500.0, uncertainty=200.0)),
]
rankings = [("alice", 1), ("bot-7", 2)]

result = calculator.calculate_rating_changes(players, rankings)
for change in result.rating_changes:
    print(change.player_id, change.old_rating.rating, "->", change.new_rating.rating)
print("match quality:", result.match_quality)
```

Each player is its own team, so any number of players can be rated at once;
equal ranks count as draws. An empty player list, an empty ranking list or a
player without a rank raises `InvalidQueueRequestError`. The calculator's
constructor validates its configuration, and `update_config()` accepts a
dictionary in the shape of `config()`; a bad configuration raises
`ConfigurationError`.

Other helpers on `WengLinRatingCalculator`:

- `calculate_expected_score(rating, opponents)` – mean win probability, 0.5
  when there are no opponents.
- `are_players_compatible(a, b, max_uncertainty_units)` – whether the rating
  gap is at most `max_uncertainty_units` times the mean of the two
  uncertainties.
- `calculate_match_quality(ratings)` – 1.0 minus the ratings' standard
  deviation divided by beta, clamped to 0.0–1.0; 0.0 for fewer than two
  players.

## Storing ratings

```python
from parlor_room.storage import InMemoryRatingStorage, RatingEntry
from parlor_room.types import PlayerRating

storage = InMemoryRatingStorage(10_000)
storage.store_rating(RatingEntry("alice", PlayerRating(1550.0, 180.0)))

for entry in storage.get_players_by_rating_range(1400.0, 1600.0, 10):
    print(entry.player_id, entry.rating.rating, entry.games_played)
```

`InMemoryRatingStorage` holds at most `max_entries` entries (10 000 by
default) and, when over the limit, drops the least recently updated ones.
Range queries are inclusive and sorted by rating, highest first; the limit
may be `None`. `RatingEntry.update_rating()` sets a new rating, counts one
more game and refreshes `last_updated`. `MockRatingStorage` never evicts and
keeps every stored entry in `get_store_calls()`. Storage is in memory only;
nothing is written to disk or a database.

## Metrics

```python
from parlor_room.collector import MetricsCollector, Registry
from parlor_room.types import LobbyType, PlayerType

collector = MetricsCollector(Registry())
collector.record_lobby_created(LobbyType.GENERAL)
collector.record_queue_request(PlayerType.HUMAN, LobbyType.GENERAL, 0.012)
collector.update_health_status(2)

timer = collector.start_timer()
...
collector.record_rating_calculation(timer.stop())

print(collector.registry.encode_text())
```

The collector's metric groups are the attributes `service`, `lobby`,
`player`, `bot` and `performance`; every metric name starts with
`parlor_room_`. Durations are seconds, given as numbers or `timedelta`.
`update_from_lobby_stats(stats)` takes any object with `lobbies_created`,
`lobbies_cleaned`, `games_started`, `players_queued`, `active_lobbies` and
`players_waiting`.

## Health checks and the HTTP app

`HealthCheck.check()`, `liveness_check()` and `readiness_check()` are
coroutines that take an application state object with:

- `service_name` – a string,
- `lobby_manager` – an object with `get_stats()` (plain or async) returning
  the lobby statistics named above, or `None` when it cannot be reached,
- `is_running()` – plain or async, returning a bool.

```python
from parlor_room.collector import MetricsCollector
from parlor_room.health_server import HealthServer, HealthServerConfig

server = HealthServer(HealthServerConfig(), MetricsCollector())
server.with_app_state(app_state)
app = server.create_app()          # a Starlette ASGI application
# await server.start()             # serve with uvicorn until server.stop()
```

`HealthServerConfig` defaults to host `0.0.0.0`, port `8080`; `start()`
requires an IP address as host and raises `ValueError` otherwise. Routes:

| Path       | Answer |
|------------|--------|
| `/`        | service name, version and the list of endpoints |
| `/health`  | JSON status; 503 when unhealthy |
| `/ready`   | `Ready`, `Degraded but ready`, or 503 `Not ready` |
| `/alive`   | `Alive`, or 503 `Not alive` |
| `/metrics` | the collector's metrics as Prometheus text |
| `/stats`   | status, lobby and player counts and component checks |

Without an application state, every route except `/` and `/metrics` answers
503. `HealthEndpoints` gives the same health status and metrics text without
HTTP, and `MetricsService` pairs a collector with a `HealthServer`.

## What this package does not do

It contains no lobby manager, no message-broker consumer or publisher, no
bot backfill and no command to run a service. Queue requests are only
modelled and serialised here; forming lobbies and starting games is left to
the application that uses these pieces.
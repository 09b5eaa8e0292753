"""Exceptions raised by the matchmaking service."""

from __future__ import annotations


class MatchmakingError(Exception):
    """Base class for all matchmaking failures."""


class InvalidQueueRequestError(MatchmakingError):
    """A request or its data cannot be processed."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Invalid queue request: {reason}")
        self.reason = reason


class ConfigurationError(MatchmakingError):
    """Configuration values are invalid."""

    def __init__(self, message: str) -> None:
        super().__init__(f"Configuration error: {message}")
        self.message = message


class InternalError(MatchmakingError):
    """An unexpected internal failure."""

    def __init__(self, message: str) -> None:
        super().__init__(f"Internal error: {message}")
        self.message = message
"""Matchmaking components: message types, Weng-Lin ratings, rating storage, metrics and health endpoints."""

__version__ = "0.1.0"
"""Infrastructure components for configuration persistence.

This module provides swappable infrastructure interfaces:
- StateStore: in-memory key-value persistence
- JsonFileStateStore: durable JSON-file key-value persistence

Future versions can swap to Redis or Postgres behind the same interface.
"""

from core.infrastructure.state_store import JsonFileStateStore, StateStore

__all__ = [
    "StateStore",
    "JsonFileStateStore",
]

"""
Persistence layer for handball stats.
No business logic, only read/write interfaces.
"""
from .db import get_connection, init_db
from .repositories import (
    PlayerRepository,
    MatchRepository,
    PreferenceRepository,
    PlayerNotFoundError,
    MatchNotFoundError,
    MatchPlayerNotFoundError,
)

__all__ = [
    "get_connection",
    "init_db",
    "PlayerRepository",
    "MatchRepository",
    "PreferenceRepository",
    "PlayerNotFoundError",
    "MatchNotFoundError",
    "MatchPlayerNotFoundError",
]

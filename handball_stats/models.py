"""
Data models for the handball stats backend.
Domain objects only; no persistence or API logic.

Players are registered once; a match owns a fixed roster of MatchPlayer rows
created together with it. Counters are written back in bulk when a live
session is finalized.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


# ---------- Player category ----------
class Category(str, Enum):
    MASCULINO = "MASCULINO"
    FEMENINO = "FEMENINO"


def parse_category(value: str | None) -> Category | None:
    """Return the Category for value, or None if it is not one of the two categories."""
    if not value:
        return None
    try:
        return Category(value.strip().upper())
    except ValueError:
        return None


# ---------- Counters ----------
# Incrementable per-match counters (Python attribute names, in display order).
STAT_FIELDS: tuple[str, ...] = (
    "goals",
    "assists",
    "saves",
    "turnovers",
    "shots_on_goal",
    "shots_off_target",
    "recoveries",
    "fouls_committed",
    "fouls_received",
    "yellow_cards",
    "red_cards",
)
# Everything written back on finalize: the counters plus seconds on court.
COUNTER_FIELDS: tuple[str, ...] = STAT_FIELDS + ("play_time",)

WIRE_NAMES: dict[str, str] = {
    "goals": "goals",
    "assists": "assists",
    "saves": "saves",
    "turnovers": "turnovers",
    "shots_on_goal": "shotsOnGoal",
    "shots_off_target": "shotsOffTarget",
    "recoveries": "recoveries",
    "fouls_committed": "foulsCommitted",
    "fouls_received": "foulsReceived",
    "yellow_cards": "yellowCards",
    "red_cards": "redCards",
    "play_time": "playTime",
}
_FROM_WIRE = {v: k for k, v in WIRE_NAMES.items()}


def parse_stat(name: str | None) -> str | None:
    """
    Map a stat name (wire camelCase or Python snake_case) to its attribute name.
    Only incrementable counters are accepted; play_time is driven by the clock.
    """
    if not name:
        return None
    attr = _FROM_WIRE.get(name, name)
    return attr if attr in STAT_FIELDS else None


def counters_to_dict(source: Any) -> dict[str, int]:
    """camelCase dict of every counter (including playTime) read from source's attributes."""
    return {WIRE_NAMES[f]: getattr(source, f) for f in COUNTER_FIELDS}


# ---------- Player ----------
@dataclass
class Player:
    """A registered squad member. Immutable once created."""
    id: int
    name: str
    position: str  # free-text role label, e.g. "Portero", "Lateral"
    number: int
    category: str  # Category value
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "position": self.position,
            "number": self.number,
            "category": self.category,
            "createdAt": self.created_at.isoformat(),
        }


# ---------- MatchPlayer ----------
@dataclass
class MatchPlayer:
    """
    One player's statistical record for one match.
    One row per (match, player); the set of rows is fixed when the match is created.
    """
    id: int
    match_id: int
    player_id: int
    starter: bool
    goals: int = 0
    assists: int = 0
    saves: int = 0
    turnovers: int = 0
    shots_on_goal: int = 0
    shots_off_target: int = 0
    recoveries: int = 0
    fouls_committed: int = 0
    fouls_received: int = 0
    yellow_cards: int = 0
    red_cards: int = 0
    play_time: int = 0  # seconds
    player: Player | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "matchId": self.match_id,
            "playerId": self.player_id,
            "starter": self.starter,
        }
        d.update(counters_to_dict(self))
        if self.player is not None:
            d["player"] = self.player.to_dict()
        return d


# ---------- Match ----------
@dataclass
class Match:
    """A recorded game. opponent_score starts at 0 and is overwritten on finalize."""
    id: int
    opponent: str
    date: str  # ISO-8601
    location: str
    opponent_score: int
    created_at: datetime
    match_players: list[MatchPlayer] = field(default_factory=list)

    @property
    def team_score(self) -> int:
        return sum(mp.goals for mp in self.match_players)

    def to_dict(self, include_players: bool = True) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "opponent": self.opponent,
            "date": self.date,
            "location": self.location,
            "opponentScore": self.opponent_score,
            "createdAt": self.created_at.isoformat(),
        }
        if include_players:
            d["matchPlayers"] = [mp.to_dict() for mp in self.match_players]
        return d


# ---------- Player field validation ----------
def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_player_number(value: Any) -> int | None:
    """Coerce a shirt number (int, integral float or digit string). None if not a whole number."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if isinstance(value, float):
        if not math.isfinite(value) or not value.is_integer():
            return None
        return int(value)
    return None


def validate_player_fields(name: Any, position: Any, number: Any, category: Any) -> dict[str, Any]:
    """
    Validated, normalized fields for a new Player.
    Raises ValueError with a user-facing message on the first bad field.
    """
    if _is_blank(name) or _is_blank(position) or _is_blank(number) or _is_blank(category):
        raise ValueError("Todos los campos son obligatorios")
    if not isinstance(name, str) or not isinstance(position, str):
        raise ValueError("name and position must be text")
    parsed_number = parse_player_number(number)
    if parsed_number is None:
        raise ValueError(f"number must be a whole number, got {number!r}")
    parsed_category = parse_category(category if isinstance(category, str) else None)
    if parsed_category is None:
        raise ValueError("category must be MASCULINO or FEMENINO")
    return {
        "name": name.strip(),
        "position": position.strip(),
        "number": parsed_number,
        "category": parsed_category.value,
    }

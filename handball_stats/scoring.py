"""
Lineup scoring for the "best team" view.
A criterion selects one formula over a player's season totals; the best team
is the top scorer per formation slot, backfilled from the overall ranking.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any


class Criterion(str, Enum):
    BALANCED = "balanced"
    OFFENSIVE = "offensive"
    DEFENSIVE = "defensive"
    EFFICIENT = "efficient"


CRITERION_DESCRIPTIONS: dict[Criterion, str] = {
    Criterion.BALANCED: "Selección equilibrada basada en todas las estadísticas",
    Criterion.OFFENSIVE: "Prioriza jugadores con más goles y asistencias",
    Criterion.DEFENSIVE: "Prioriza jugadores con más atajadas y menos pérdidas",
    Criterion.EFFICIENT: "Prioriza jugadores con mejor relación entre goles y tiempo jugado",
}


def parse_criterion(value: str | None) -> Criterion:
    """Unknown or missing tags fall back to balanced."""
    if not value:
        return Criterion.BALANCED
    try:
        return Criterion(value.strip().lower())
    except ValueError:
        return Criterion.BALANCED


# ---------- Position adjustment ----------
GOALKEEPER = "Portero"
GOALKEEPER_DEFENSIVE_MULTIPLIER = 1.5
GOALKEEPER_OTHER_MULTIPLIER = 0.8

# ---------- Efficient formula weights ----------
EFFICIENT_CONTRIBUTION_WEIGHT = 10
EFFICIENT_GOAL_RATE_WEIGHT = 2

# Formation: position label -> slots
FORMATION: tuple[tuple[str, int], ...] = (
    ("Portero", 1),
    ("Lateral", 2),
    ("Central", 1),
    ("Pivote", 1),
)


def round_half_up(value: float, digits: int = 0) -> float:
    """Round like JavaScript's Math.round (halves go up), not banker's rounding."""
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


@dataclass
class ScoredPlayer:
    id: int
    name: str
    position: str
    number: int
    score: float
    rollup: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        d = dict(self.rollup)
        d["score"] = self.score
        return d


def _raw_score(totals: dict[str, Any], criterion: Criterion) -> float:
    goals = totals.get("goals", 0)
    assists = totals.get("assists", 0)
    saves = totals.get("saves", 0)
    turnovers = totals.get("turnovers", 0)
    if criterion == Criterion.OFFENSIVE:
        return goals * 2 + assists * 1.5 - turnovers * 0.5
    if criterion == Criterion.DEFENSIVE:
        return saves * 2 - turnovers * 2 + assists
    if criterion == Criterion.EFFICIENT:
        hours = totals.get("playTime", 0) / 3600
        score = (goals + assists) / max(turnovers, 1) * EFFICIENT_CONTRIBUTION_WEIGHT
        score += goals / max(hours, 1) * EFFICIENT_GOAL_RATE_WEIGHT
        return score
    return goals + assists + saves * 0.5 - turnovers


def compute_player_score(totals: dict[str, Any], position: str, criterion: Criterion) -> float:
    """
    Composite score for one player's totals (camelCase keys as in the rollup's
    "stats"). Goalkeepers are boosted under defensive and damped otherwise.
    Rounded half-up to one decimal.
    """
    score = _raw_score(totals, criterion)
    if position == GOALKEEPER:
        if criterion == Criterion.DEFENSIVE:
            score *= GOALKEEPER_DEFENSIVE_MULTIPLIER
        else:
            score *= GOALKEEPER_OTHER_MULTIPLIER
    return round_half_up(score, 1)


def score_players(rollups: list[dict[str, Any]], criterion: Criterion) -> list[ScoredPlayer]:
    """Score each rollup (see analytics.player_rollups). Keeps input order."""
    return [
        ScoredPlayer(
            id=r["id"],
            name=r["name"],
            position=r["position"],
            number=r["number"],
            score=compute_player_score(r["stats"], r["position"], criterion),
            rollup=r,
        )
        for r in rollups
    ]


def rank_players(scored: list[ScoredPlayer]) -> list[ScoredPlayer]:
    """Highest score first; ties keep their input order."""
    return sorted(scored, key=lambda p: -p.score)


def select_best_team(scored: list[ScoredPlayer]) -> list[ScoredPlayer]:
    """
    Fill the formation with the top scorer(s) of each position. Each empty slot
    is then backfilled with the best-ranked player not yet chosen; when the pool
    runs out the slot is dropped.
    """
    slots: list[ScoredPlayer | None] = []
    for position, count in FORMATION:
        candidates = rank_players([p for p in scored if p.position == position])
        for i in range(count):
            slots.append(candidates[i] if i < len(candidates) else None)

    ranked = rank_players(scored)
    for i, chosen in enumerate(slots):
        if chosen is not None:
            continue
        taken = {p.id for p in slots if p is not None}
        candidate = next((p for p in ranked if p.id not in taken), None)
        if candidate is not None:
            slots[i] = candidate
    return [p for p in slots if p is not None]

"""
Deterministic season analytics.
Read-only: consumes players and their MatchPlayer rows, returns JSON-friendly stats.
Used by GET /stats/players, /stats/best-team, /stats/compare and /stats/matches/{id}.
No persistence, no HTTP.
"""
from __future__ import annotations

from typing import Any, Iterable

from handball_stats.models import COUNTER_FIELDS, WIRE_NAMES, Match, MatchPlayer, Player
from handball_stats.scoring import round_half_up

# Metrics where a smaller total is the better one.
LOWER_IS_BETTER: frozenset[str] = frozenset(
    {"turnovers", "shotsOffTarget", "foulsCommitted", "yellowCards", "redCards"}
)

COMPARE_METRICS: tuple[str, ...] = tuple(WIRE_NAMES[f] for f in COUNTER_FIELDS) + ("efficiency",)

RESULT_WIN = "Victoria"
RESULT_LOSS = "Derrota"
RESULT_DRAW = "Empate"
RESULT_PENDING = "???"


# ---------- Rollups ----------


def _sum_counters(rows: Iterable[MatchPlayer]) -> dict[str, int]:
    totals = {WIRE_NAMES[f]: 0 for f in COUNTER_FIELDS}
    for mp in rows:
        for f in COUNTER_FIELDS:
            totals[WIRE_NAMES[f]] += getattr(mp, f)
    return totals


def player_rollup(player: Player, rows: list[MatchPlayer]) -> dict[str, Any]:
    """Season totals for one player. Averages are per match played (0 with no matches)."""
    totals = _sum_counters(rows)
    matches = len(rows)
    averages = {
        k: (v / matches if matches else 0)
        for k, v in totals.items()
    }
    return {
        "id": player.id,
        "name": player.name,
        "position": player.position,
        "number": player.number,
        "category": player.category,
        "matches": matches,
        "stats": totals,
        "averages": averages,
    }


def player_rollups(players: list[Player], match_players: list[MatchPlayer]) -> list[dict[str, Any]]:
    """One rollup per player (input order kept), including players with no matches."""
    by_player: dict[int, list[MatchPlayer]] = {p.id: [] for p in players}
    for mp in match_players:
        if mp.player_id in by_player:
            by_player[mp.player_id].append(mp)
    return [player_rollup(p, by_player[p.id]) for p in players]


# ---------- Match results ----------


def match_result(team_score: int, opponent_score: int) -> str:
    if team_score > opponent_score:
        return RESULT_WIN
    if team_score < opponent_score:
        return RESULT_LOSS
    return RESULT_DRAW


def match_list_entry(match: Match) -> dict[str, Any]:
    """Row for the matches table. The result is not computed here."""
    d = match.to_dict(include_players=False)
    d["result"] = RESULT_PENDING
    return d


def match_summary(match: Match) -> dict[str, Any]:
    """Post-match summary: full match plus team score and the computed result."""
    d = match.to_dict()
    d["teamScore"] = match.team_score
    d["result"] = match_result(match.team_score, match.opponent_score)
    return d


# ---------- Comparison ----------


def calculate_percentage(v1: float, v2: float) -> int:
    """
    Share of v1 in v1 + v2 as a whole percentage.
    Both zero -> 50; only v2 zero -> 100.
    """
    if v1 == 0 and v2 == 0:
        return 50
    if v2 == 0:
        return 100
    total = v1 + v2
    if total == 0:
        return 50
    return int(round_half_up(v1 / total * 100))


def format_duration(seconds: int) -> str:
    """Play time as 'Hh Mm Ss'."""
    seconds = max(int(seconds), 0)
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours}h {minutes}m {secs}s"


def efficiency(totals: dict[str, int]) -> int:
    return totals.get("goals", 0) + totals.get("assists", 0) - totals.get("turnovers", 0)


def _indicator(metric: str, diff: int) -> str:
    if diff == 0:
        return "Igual"
    if metric == "playTime":
        sign = "+" if diff > 0 else "-"
        return f"{sign}{format_duration(abs(diff))}"
    if metric in LOWER_IS_BETTER:
        return f"{abs(diff)} menos" if diff < 0 else f"{diff} más"
    return f"+{diff}" if diff > 0 else f"{diff}"


def _better(metric: str, v1: int, v2: int) -> str | None:
    if v1 == v2:
        return None
    if metric in LOWER_IS_BETTER:
        return "player1" if v1 < v2 else "player2"
    return "player1" if v1 > v2 else "player2"


def compare_players(rollup1: dict[str, Any], rollup2: dict[str, Any]) -> dict[str, Any]:
    """
    Metric-by-metric comparison of two rollups (see player_rollup).
    Each metric carries both values, player1's share, the signed difference,
    an indicator label and which side is better (None on a tie).
    """
    s1 = dict(rollup1["stats"], efficiency=efficiency(rollup1["stats"]))
    s2 = dict(rollup2["stats"], efficiency=efficiency(rollup2["stats"]))
    metrics: list[dict[str, Any]] = []
    for metric in COMPARE_METRICS:
        v1, v2 = s1[metric], s2[metric]
        diff = v1 - v2
        entry = {
            "metric": metric,
            "player1": v1,
            "player2": v2,
            "percentage": calculate_percentage(v1, v2),
            "difference": diff,
            "indicator": _indicator(metric, diff),
            "better": _better(metric, v1, v2),
            "lowerIsBetter": metric in LOWER_IS_BETTER,
        }
        if metric == "playTime":
            entry["player1Formatted"] = format_duration(v1)
            entry["player2Formatted"] = format_duration(v2)
        metrics.append(entry)
    return {
        "player1": rollup1,
        "player2": rollup2,
        "metrics": metrics,
    }

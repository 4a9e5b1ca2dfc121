"""
Tests for season rollups, match results and player comparison.
"""
from __future__ import annotations

from datetime import datetime, timezone

from handball_stats.analytics import (
    calculate_percentage,
    compare_players,
    format_duration,
    match_list_entry,
    match_result,
    match_summary,
    player_rollups,
)
from handball_stats.models import Match, MatchPlayer, Player

NOW = datetime(2024, 3, 10, tzinfo=timezone.utc)


def _player(pid: int, name: str = "Ana", position: str = "Lateral") -> Player:
    return Player(id=pid, name=name, position=position, number=pid, category="FEMENINO", created_at=NOW)


def _mp(mp_id: int, player_id: int, match_id: int = 1, **counters) -> MatchPlayer:
    return MatchPlayer(id=mp_id, match_id=match_id, player_id=player_id, starter=True, **counters)


class TestRollups:
    def test_sums_and_averages(self):
        players = [_player(1), _player(2, "Bea")]
        rows = [
            _mp(1, 1, match_id=1, goals=3, play_time=100),
            _mp(2, 1, match_id=2, goals=2, assists=1, play_time=50),
            _mp(3, 2, match_id=1, saves=4),
        ]
        r1, r2 = player_rollups(players, rows)
        assert r1["matches"] == 2
        assert r1["stats"]["goals"] == 5
        assert r1["stats"]["playTime"] == 150
        assert r1["averages"]["goals"] == 2.5
        assert r2["stats"]["saves"] == 4
        assert r2["matches"] == 1

    def test_averages_keep_full_precision(self):
        rows = [
            _mp(1, 1, match_id=1, goals=1, play_time=100),
            _mp(2, 1, match_id=2, play_time=100),
            _mp(3, 1, match_id=3, play_time=101),
        ]
        (r,) = player_rollups([_player(1)], rows)
        assert r["averages"]["goals"] == 1 / 3
        assert r["averages"]["playTime"] == 301 / 3

    def test_player_without_matches(self):
        (r,) = player_rollups([_player(1)], [])
        assert r["matches"] == 0
        assert all(v == 0 for v in r["stats"].values())
        assert all(v == 0 for v in r["averages"].values())


class TestMatchResult:
    def test_result_text(self):
        assert match_result(25, 20) == "Victoria"
        assert match_result(18, 20) == "Derrota"
        assert match_result(20, 20) == "Empate"

    def test_summary_and_list_entry(self):
        match = Match(
            id=1, opponent="Rivas", date="2024-03-10", location="Pabellón",
            opponent_score=10, created_at=NOW,
            match_players=[_mp(1, 1, goals=3), _mp(2, 2, goals=8)],
        )
        summary = match_summary(match)
        assert summary["teamScore"] == 11
        assert summary["result"] == "Victoria"
        assert len(summary["matchPlayers"]) == 2
        entry = match_list_entry(match)
        assert entry["result"] == "???"
        assert "matchPlayers" not in entry


class TestComparison:
    def test_percentage(self):
        assert calculate_percentage(0, 0) == 50
        assert calculate_percentage(3, 0) == 100
        assert calculate_percentage(0, 3) == 0
        assert calculate_percentage(5, 5) == 50
        assert calculate_percentage(1, 2) == 33
        assert calculate_percentage(1, 7) == 13  # 12.5 rounds up

    def test_format_duration(self):
        assert format_duration(0) == "0h 0m 0s"
        assert format_duration(3725) == "1h 2m 5s"

    def test_equal_goals(self):
        players = [_player(1), _player(2, "Bea")]
        rows = [_mp(1, 1, goals=5), _mp(2, 2, goals=5)]
        r1, r2 = player_rollups(players, rows)
        metrics = {m["metric"]: m for m in compare_players(r1, r2)["metrics"]}
        goals = metrics["goals"]
        assert goals["percentage"] == 50
        assert 100 - goals["percentage"] == 50
        assert goals["indicator"] == "Igual"
        assert goals["better"] is None

    def test_indicators_and_lower_is_better(self):
        players = [_player(1), _player(2, "Bea")]
        rows = [
            _mp(1, 1, goals=6, turnovers=4, red_cards=1, play_time=3725),
            _mp(2, 2, goals=2, turnovers=1, play_time=60),
        ]
        r1, r2 = player_rollups(players, rows)
        metrics = {m["metric"]: m for m in compare_players(r1, r2)["metrics"]}
        assert metrics["goals"]["indicator"] == "+4"
        assert metrics["goals"]["better"] == "player1"
        assert metrics["goals"]["percentage"] == 75
        assert metrics["turnovers"]["indicator"] == "3 más"
        assert metrics["turnovers"]["better"] == "player2"
        assert metrics["redCards"]["lowerIsBetter"] is True
        assert metrics["playTime"]["player1Formatted"] == "1h 2m 5s"
        assert metrics["playTime"]["indicator"] == "+1h 1m 5s"
        # efficiency = goals + assists - turnovers
        assert metrics["efficiency"]["player1"] == 2
        assert metrics["efficiency"]["player2"] == 1

    def test_reversed_order_indicator(self):
        players = [_player(1), _player(2, "Bea")]
        rows = [_mp(1, 1, goals=1), _mp(2, 2, goals=4)]
        r1, r2 = player_rollups(players, rows)
        metrics = {m["metric"]: m for m in compare_players(r1, r2)["metrics"]}
        assert metrics["goals"]["indicator"] == "-3"
        assert metrics["goals"]["difference"] == -3

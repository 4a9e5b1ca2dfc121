"""
Tests for the live match session: clock, events, substitutions, finalize.
The clock is driven with explicit `now` values; no real time passes.
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from handball_stats.live_session import (
    LiveMatchSession,
    LivePlayerNotFoundError,
    SessionFinalizedError,
    SubstitutionError,
    UnknownStatError,
    format_clock,
    open_session,
)
from handball_stats.persistence import (
    MatchNotFoundError,
    MatchRepository,
    PlayerRepository,
    get_connection,
)
from handball_stats.persistence.db import init_db, set_db_path
from handball_stats.services import LiveSessionRegistry


@pytest.fixture
def conn(tmp_path):
    db_path = tmp_path / "live.db"
    set_db_path(db_path)
    init_db(db_path)
    c = get_connection(db_path)
    yield c
    c.close()


@pytest.fixture
def match(conn):
    """14-player match, first 5 starters."""
    repo = PlayerRepository()
    ids = [repo.create(conn, f"P{i}", "Lateral", i, "MASCULINO").id for i in range(14)]
    return MatchRepository().create(conn, "Rivas", "2024-03-10", "Pabellón", [(pid, i < 5) for i, pid in enumerate(ids)])


@pytest.fixture
def session(match):
    return LiveMatchSession.from_match(match)


class TestSeeding:
    def test_starters_on_court(self, session):
        assert len(session.on_court) == 5
        assert len(session.bench) == 9
        assert all(p.starter for p in session.on_court)
        assert session.elapsed_seconds == 0
        assert not session.running

    def test_open_unknown_match(self, conn):
        with pytest.raises(MatchNotFoundError):
            open_session(conn, 999)
        with pytest.raises(MatchNotFoundError):
            open_session(conn, None)


class TestClock:
    def test_k_ticks_add_k_seconds_to_on_court_only(self, session):
        session.start_clock(now=100.0)
        for k in range(1, 8):
            session.tick(now=100.0 + k)
        assert session.elapsed_seconds == 7
        assert all(p.play_time == 7 for p in session.on_court)
        assert all(p.play_time == 0 for p in session.bench)

    def test_stop_then_resume_keeps_elapsed(self, session):
        session.start_clock(now=0.0)
        session.tick(now=1.0)
        session.tick(now=2.0)
        session.stop_clock()
        session.tick(now=50.0)  # stopped: no-op
        assert session.elapsed_seconds == 2
        session.start_clock(now=1000.0)
        session.tick(now=1001.2)
        assert session.elapsed_seconds == 3
        assert session.on_court[0].play_time == 3

    def test_sub_second_ticks_accrue_elapsed_seconds_only(self, session):
        session.start_clock(now=0.0)
        for k in range(1, 10):
            session.tick(now=k * 0.25)
        assert session.elapsed_seconds == 2
        assert all(p.play_time == 2 for p in session.on_court)

    def test_toggle(self, session):
        assert session.toggle_clock(now=0.0) is True
        assert session.toggle_clock(now=5.0) is False

    def test_format_clock(self):
        assert format_clock(0) == "00:00"
        assert format_clock(75) == "01:15"
        assert format_clock(3600) == "60:00"

    def test_substituted_player_accrues_from_entry(self, session):
        out_id = session.on_court[0].match_player_id
        in_id = session.bench[0].match_player_id
        session.start_clock(now=0.0)
        session.tick(now=1.0)
        session.substitute(out_id, in_id)
        session.tick(now=2.0)
        assert session.get_player(out_id).play_time == 1
        assert session.get_player(in_id).play_time == 1


class TestEvents:
    def test_increment_touches_one_counter_of_one_player(self, session):
        target = session.players[2]
        before = {p.match_player_id: (p.goals, p.assists) for p in session.players}
        session.increment_stat(target.match_player_id, "goals")
        for p in session.players:
            goals, assists = before[p.match_player_id]
            assert p.assists == assists
            assert p.goals == goals + (1 if p is target else 0)
        assert session.team_score == 1

    def test_wire_stat_names(self, session):
        p = session.players[0]
        session.increment_stat(p.match_player_id, "shotsOnGoal")
        session.increment_stat(p.match_player_id, "yellow_cards")
        assert p.shots_on_goal == 1
        assert p.yellow_cards == 1

    def test_unknown_stat_or_player(self, session):
        with pytest.raises(UnknownStatError):
            session.increment_stat(session.players[0].match_player_id, "playTime")
        with pytest.raises(LivePlayerNotFoundError):
            session.increment_stat(424242, "goals")

    def test_substitution_needs_both_ids(self, session):
        on_court = [p.match_player_id for p in session.on_court]
        assert session.substitute(on_court[0], None) is False
        assert session.substitute(None, None) is False
        assert [p.match_player_id for p in session.on_court] == on_court

    def test_substitution_swaps_flags(self, session):
        out_p, in_p = session.on_court[0], session.bench[0]
        assert session.substitute(out_p.match_player_id, in_p.match_player_id) is True
        assert not out_p.playing and in_p.playing
        assert out_p.starter and not in_p.starter
        assert len(session.on_court) == 5

    def test_substitution_preconditions(self, session):
        bench_a, bench_b = session.bench[0], session.bench[1]
        court = session.on_court[0]
        with pytest.raises(SubstitutionError):
            session.substitute(bench_a.match_player_id, bench_b.match_player_id)
        with pytest.raises(SubstitutionError):
            session.substitute(court.match_player_id, court.match_player_id)

    def test_opponent_score_floor(self, session):
        assert session.decrement_opponent_score() == 0
        session.increment_opponent_score()
        session.increment_opponent_score()
        assert session.decrement_opponent_score() == 1


class TestFinalize:
    def test_persists_counters_and_score(self, conn, match, session):
        scorer = session.on_court[0]
        session.start_clock(now=0.0)
        for k in range(1, 4):
            session.tick(now=float(k))
        session.increment_stat(scorer.match_player_id, "goals")
        session.increment_opponent_score()
        session.finalize(conn)

        assert session.finalized and not session.running
        stored = MatchRepository().get(conn, match.id)
        by_id = {mp.id: mp for mp in stored.match_players}
        assert by_id[scorer.match_player_id].goals == 1
        assert by_id[scorer.match_player_id].play_time == 3
        assert stored.opponent_score == 1
        assert stored.team_score == 1

        with pytest.raises(SessionFinalizedError):
            session.increment_stat(scorer.match_player_id, "goals")
        with pytest.raises(SessionFinalizedError):
            session.finalize(conn)

    def test_failure_preserves_session(self, conn, match, session):
        session.start_clock(now=0.0)
        session.increment_stat(session.players[0].match_player_id, "goals")
        conn.execute("DELETE FROM match_players WHERE match_id = ?", (match.id,))
        conn.commit()
        with pytest.raises(LookupError):
            session.finalize(conn)
        assert not session.finalized
        assert session.running
        assert session.team_score == 1
        session.increment_stat(session.players[0].match_player_id, "goals")
        assert session.team_score == 2


class TestRegistry:
    def test_ticker_play_time_matches_elapsed_with_fast_period(self, conn, match):
        """A ticker faster than 1s still adds one play second per elapsed second."""
        now = [0.0]

        def clock() -> float:
            now[0] += 0.25
            return now[0]

        async def scenario():
            registry = LiveSessionRegistry(tick_seconds=0.001, clock=clock)
            session = registry.open(conn, match.id)
            await registry.toggle_clock(match.id)
            assert registry.is_ticking(match.id)
            while session.elapsed_seconds < 2:
                await asyncio.sleep(0.005)
            await registry.toggle_clock(match.id)
            assert not registry.is_ticking(match.id)
            played = session.on_court[0].play_time
            assert played == session.elapsed_seconds
            assert session.bench[0].play_time == 0
            await asyncio.sleep(0.02)
            assert session.on_court[0].play_time == played
            return played

        assert asyncio.run(scenario()) >= 2

    def test_open_returns_same_session_until_finalized(self, conn, match):
        async def scenario():
            registry = LiveSessionRegistry(tick_seconds=60)
            first = registry.open(conn, match.id)
            assert registry.open(conn, match.id) is first
            await registry.finalize(conn, match.id)
            assert registry.open(conn, match.id) is not first

        asyncio.run(scenario())

    def test_register_keeps_the_open_session(self, conn, match):
        async def scenario():
            registry = LiveSessionRegistry(tick_seconds=60)
            assert registry.find_open(match.id) is None
            first = registry.register(open_session(conn, match.id))
            assert registry.find_open(match.id) is first
            assert registry.register(open_session(conn, match.id)) is first
            await registry.finalize(conn, match.id)
            assert registry.find_open(match.id) is None
            assert registry.register(open_session(conn, match.id)) is not first

        asyncio.run(scenario())

    def test_shutdown_cancels_tickers(self, conn, match):
        async def scenario():
            registry = LiveSessionRegistry(tick_seconds=60)
            registry.open(conn, match.id)
            await registry.toggle_clock(match.id)
            await registry.shutdown()
            assert not registry.is_ticking(match.id)

        asyncio.run(scenario())

"""
Live match session: in-memory working copy of one match's roster while it is
being played. Holds per-player counters, on-court/bench flags, the opponent's
score and a resumable clock. Nothing is persisted until finalize(), which
writes the whole snapshot back in one transaction.

Single-threaded by contract: every method is a synchronous reducer over the
session's own state, driven by user actions or by the 1-second clock tick.
"""
from __future__ import annotations

import logging
import math
import sqlite3
from dataclasses import dataclass, field
from typing import Any

from handball_stats.models import (
    COUNTER_FIELDS,
    STAT_FIELDS,
    WIRE_NAMES,
    Match,
    counters_to_dict,
    parse_stat,
)
from handball_stats.persistence.repositories import MatchNotFoundError, MatchRepository

logger = logging.getLogger(__name__)


class LivePlayerNotFoundError(LookupError):
    """No live player with that match_player_id in this session."""


class UnknownStatError(ValueError):
    """Stat name is not one of the incrementable counters."""


class SubstitutionError(ValueError):
    """playerOut must be on court and playerIn on the bench."""


class SessionFinalizedError(RuntimeError):
    """The session was saved; it accepts no further mutations."""


@dataclass
class LivePlayer:
    """Session-local copy of a MatchPlayer. `playing` changes with substitutions; `starter` never does."""
    match_player_id: int
    player_id: int
    name: str
    position: str
    number: int
    starter: bool
    playing: bool
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
    play_time: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "matchPlayerId": self.match_player_id,
            "id": self.player_id,
            "name": self.name,
            "position": self.position,
            "number": self.number,
            "starter": self.starter,
            "playing": self.playing,
            "stats": counters_to_dict(self),
        }


def format_clock(seconds: int) -> str:
    """MM:SS for the on-screen timer (minutes keep counting past 59)."""
    mins, secs = divmod(max(seconds, 0), 60)
    return f"{mins:02d}:{secs:02d}"


@dataclass
class LiveMatchSession:
    match_id: int
    opponent: str
    date: str
    location: str
    players: list[LivePlayer]
    opponent_score: int = 0
    elapsed_seconds: int = 0
    running: bool = False
    finalized: bool = False
    _started_at: float | None = field(default=None, init=False, repr=False)

    # ---------- Construction ----------

    @classmethod
    def from_match(cls, match: Match) -> LiveMatchSession:
        """Seed one LivePlayer per MatchPlayer: playing = starter, counters copied verbatim, clock at zero."""
        players = []
        for mp in match.match_players:
            counters = {f: getattr(mp, f) for f in COUNTER_FIELDS}
            p = mp.player
            players.append(LivePlayer(
                match_player_id=mp.id,
                player_id=mp.player_id,
                name=p.name if p else "",
                position=p.position if p else "",
                number=p.number if p else 0,
                starter=mp.starter,
                playing=mp.starter,
                **counters,
            ))
        return cls(
            match_id=match.id,
            opponent=match.opponent,
            date=match.date,
            location=match.location,
            players=players,
            opponent_score=match.opponent_score,
        )

    # ---------- Derived ----------

    @property
    def team_score(self) -> int:
        return sum(p.goals for p in self.players)

    @property
    def on_court(self) -> list[LivePlayer]:
        return [p for p in self.players if p.playing]

    @property
    def bench(self) -> list[LivePlayer]:
        return [p for p in self.players if not p.playing]

    def get_player(self, match_player_id: int) -> LivePlayer:
        for p in self.players:
            if p.match_player_id == match_player_id:
                return p
        raise LivePlayerNotFoundError(f"Player {match_player_id} is not part of match {self.match_id}")

    def _ensure_open(self) -> None:
        if self.finalized:
            raise SessionFinalizedError(f"Match {self.match_id} was already saved")

    # ---------- Clock ----------

    def start_clock(self, now: float) -> None:
        """Resume from the retained elapsed value: logical start = now - elapsed."""
        self._ensure_open()
        if self.running:
            return
        self._started_at = now - self.elapsed_seconds
        self.running = True

    def stop_clock(self) -> None:
        """Halt ticking; elapsed_seconds is kept so the clock can resume."""
        self.running = False
        self._started_at = None

    def toggle_clock(self, now: float) -> bool:
        """Start or stop the clock. Returns the new running state."""
        if self.running:
            self.stop_clock()
        else:
            self.start_clock(now)
        return self.running

    def tick(self, now: float) -> None:
        """
        One timer callback. Elapsed is recomputed from the logical start (absorbs
        callback jitter); every on-court player gains the whole seconds elapsed
        since the previous tick, so k running seconds add exactly k to play_time.
        """
        if not self.running or self._started_at is None:
            return
        elapsed = math.floor(now - self._started_at)
        gained = max(elapsed - self.elapsed_seconds, 0)
        self.elapsed_seconds = max(elapsed, self.elapsed_seconds)
        for p in self.players:
            if p.playing:
                p.play_time += gained

    # ---------- Events ----------

    def increment_stat(self, match_player_id: int, stat: str) -> LivePlayer:
        """Add exactly 1 to one counter of one player."""
        self._ensure_open()
        attr = parse_stat(stat)
        if attr is None:
            allowed = ", ".join(WIRE_NAMES[f] for f in STAT_FIELDS)
            raise UnknownStatError(f"Unknown stat '{stat}'. Must be one of: {allowed}")
        player = self.get_player(match_player_id)
        setattr(player, attr, getattr(player, attr) + 1)
        return player

    def substitute(self, player_out: int | None, player_in: int | None) -> bool:
        """
        Swap one on-court player for one bench player in a single transition.
        Returns False (no-op) when either id is unset.
        """
        self._ensure_open()
        if player_out is None or player_in is None:
            return False
        out_p = self.get_player(player_out)
        in_p = self.get_player(player_in)
        if not out_p.playing:
            raise SubstitutionError(f"Player {player_out} is not on court")
        if in_p.playing:
            raise SubstitutionError(f"Player {player_in} is not on the bench")
        out_p.playing = False
        in_p.playing = True
        return True

    def increment_opponent_score(self) -> int:
        self._ensure_open()
        self.opponent_score += 1
        return self.opponent_score

    def decrement_opponent_score(self) -> int:
        """Never goes below zero."""
        self._ensure_open()
        self.opponent_score = max(0, self.opponent_score - 1)
        return self.opponent_score

    # ---------- Save ----------

    def updated_stats(self) -> list[dict[str, int]]:
        """Project every LivePlayer to {match_player_id, <counters>, play_time} for MatchRepository.update_stats."""
        out = []
        for p in self.players:
            row = {"match_player_id": p.match_player_id}
            row.update({f: getattr(p, f) for f in COUNTER_FIELDS})
            out.append(row)
        return out

    def finalize(self, conn: sqlite3.Connection) -> None:
        """
        Stop the clock and write every player's counters plus the opponent score.
        On failure the exception propagates and the session stays editable (retry);
        on success the session is terminal.
        """
        self._ensure_open()
        MatchRepository().update_stats(
            conn, self.match_id, self.updated_stats(), self.opponent_score
        )
        self.stop_clock()
        self.finalized = True
        logger.info(
            f"Match {self.match_id} saved: {self.team_score}-{self.opponent_score}, "
            f"{self.elapsed_seconds}s played"
        )

    # ---------- View ----------

    def snapshot(self) -> dict[str, Any]:
        return {
            "matchId": self.match_id,
            "opponent": self.opponent,
            "date": self.date,
            "location": self.location,
            "elapsedSeconds": self.elapsed_seconds,
            "clock": format_clock(self.elapsed_seconds),
            "running": self.running,
            "teamScore": self.team_score,
            "opponentScore": self.opponent_score,
            "finalized": self.finalized,
            "onCourt": [p.to_dict() for p in self.on_court],
            "bench": [p.to_dict() for p in self.bench],
        }


def open_session(conn: sqlite3.Connection, match_id: int | None) -> LiveMatchSession:
    """Load a match and seed a session. Absent or unknown id: MatchNotFoundError, no retry."""
    if match_id is None:
        raise MatchNotFoundError("No match id given")
    match = MatchRepository().get(conn, match_id)
    if match is None:
        raise MatchNotFoundError(f"Match not found: {match_id}")
    return LiveMatchSession.from_match(match)

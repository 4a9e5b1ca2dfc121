"""
Repository interfaces for handball stats data.
No business logic, only read/write operations.
"""
from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from typing import Any, Iterable

from handball_stats.models import COUNTER_FIELDS, Match, MatchPlayer, Player


class PlayerNotFoundError(LookupError):
    """Referenced player id does not exist."""


class MatchNotFoundError(LookupError):
    """Referenced match id does not exist."""


class MatchPlayerNotFoundError(LookupError):
    """MatchPlayer id does not exist or belongs to another match."""


def _parse_datetime(s: str | None) -> datetime:
    if s is None:
        raise ValueError("expected datetime string")
    return datetime.fromisoformat(s.replace("Z", "+00:00"))


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


_PLAYER_COLS = "id, name, position, number, category, created_at"
_MATCH_COLS = "id, opponent, date, location, opponent_score, created_at"
_MATCH_PLAYER_COLS = "id, match_id, player_id, starter, " + ", ".join(COUNTER_FIELDS)


def _player_from_row(r: sqlite3.Row) -> Player:
    return Player(
        id=r["id"],
        name=r["name"],
        position=r["position"],
        number=r["number"],
        category=r["category"],
        created_at=_parse_datetime(r["created_at"]),
    )


def _match_from_row(r: sqlite3.Row) -> Match:
    return Match(
        id=r["id"],
        opponent=r["opponent"],
        date=r["date"],
        location=r["location"],
        opponent_score=r["opponent_score"],
        created_at=_parse_datetime(r["created_at"]),
    )


def _match_player_from_row(r: sqlite3.Row, player: Player | None = None) -> MatchPlayer:
    counters = {f: r[f] for f in COUNTER_FIELDS}
    return MatchPlayer(
        id=r["id"],
        match_id=r["match_id"],
        player_id=r["player_id"],
        starter=bool(r["starter"]),
        player=player,
        **counters,
    )


# ---------- PlayerRepository ----------


class PlayerRepository:
    """CRUD for players. No uniqueness rules on name or number."""

    def create(
        self,
        conn: sqlite3.Connection,
        name: str,
        position: str,
        number: int,
        category: str,
    ) -> Player:
        now = _now()
        cur = conn.execute(
            "INSERT INTO players (name, position, number, category, created_at) VALUES (?, ?, ?, ?, ?)",
            (name, position, number, category, now),
        )
        conn.commit()
        return Player(
            id=cur.lastrowid,
            name=name,
            position=position,
            number=number,
            category=category,
            created_at=_parse_datetime(now),
        )

    def get(self, conn: sqlite3.Connection, player_id: int) -> Player | None:
        row = conn.execute(
            f"SELECT {_PLAYER_COLS} FROM players WHERE id = ?",
            (player_id,),
        ).fetchone()
        if row is None:
            return None
        return _player_from_row(row)

    def list_all(self, conn: sqlite3.Connection) -> list[Player]:
        rows = conn.execute(f"SELECT {_PLAYER_COLS} FROM players ORDER BY id ASC").fetchall()
        return [_player_from_row(r) for r in rows]

    def delete_unused(self, conn: sqlite3.Connection) -> None:
        """Remove every player that has no match history (roster reseeding)."""
        conn.execute(
            "DELETE FROM players WHERE id NOT IN (SELECT DISTINCT player_id FROM match_players)"
        )
        conn.commit()


# ---------- MatchRepository ----------


class MatchRepository:
    """CRUD for matches and their match_players rows."""

    def create(
        self,
        conn: sqlite3.Connection,
        opponent: str,
        date: str,
        location: str,
        selected: Iterable[tuple[int, bool]],
    ) -> Match:
        """
        Insert a match plus one zeroed MatchPlayer per (player_id, starter).
        Single transaction: an unknown player id leaves nothing behind.
        """
        now = _now()
        with conn:
            cur = conn.execute(
                "INSERT INTO matches (opponent, date, location, opponent_score, created_at) VALUES (?, ?, ?, 0, ?)",
                (opponent, date, location, now),
            )
            match_id = cur.lastrowid
            for player_id, starter in selected:
                exists = conn.execute("SELECT 1 FROM players WHERE id = ?", (player_id,)).fetchone()
                if exists is None:
                    raise PlayerNotFoundError(f"Player not found: {player_id}")
                conn.execute(
                    "INSERT INTO match_players (match_id, player_id, starter) VALUES (?, ?, ?)",
                    (match_id, player_id, 1 if starter else 0),
                )
        match = self.get(conn, match_id)
        assert match is not None
        return match

    def get(self, conn: sqlite3.Connection, match_id: int) -> Match | None:
        """Match with its MatchPlayers, each joined to its Player."""
        row = conn.execute(
            f"SELECT {_MATCH_COLS} FROM matches WHERE id = ?",
            (match_id,),
        ).fetchone()
        if row is None:
            return None
        match = _match_from_row(row)
        match.match_players = self._list_match_players(conn, "mp.match_id = ?", (match_id,))
        return match

    def list_all(self, conn: sqlite3.Connection) -> list[Match]:
        """Matches without players, most recent date first."""
        rows = conn.execute(
            f"SELECT {_MATCH_COLS} FROM matches ORDER BY date DESC, id DESC"
        ).fetchall()
        return [_match_from_row(r) for r in rows]

    def list_all_match_players(self, conn: sqlite3.Connection) -> list[MatchPlayer]:
        """Every MatchPlayer row across all matches (for per-player rollups)."""
        return self._list_match_players(conn, "1 = 1", ())

    def _list_match_players(
        self, conn: sqlite3.Connection, where: str, args: tuple[Any, ...]
    ) -> list[MatchPlayer]:
        mp_cols = ", ".join(f"mp.{c.strip()}" for c in _MATCH_PLAYER_COLS.split(","))
        rows = conn.execute(
            f"SELECT {mp_cols}, p.name AS p_name, p.position AS p_position, p.number AS p_number, "
            f"p.category AS p_category, p.created_at AS p_created_at "
            f"FROM match_players mp JOIN players p ON p.id = mp.player_id "
            f"WHERE {where} ORDER BY mp.id",
            args,
        ).fetchall()
        result: list[MatchPlayer] = []
        for r in rows:
            player = Player(
                id=r["player_id"],
                name=r["p_name"],
                position=r["p_position"],
                number=r["p_number"],
                category=r["p_category"],
                created_at=_parse_datetime(r["p_created_at"]),
            )
            result.append(_match_player_from_row(r, player))
        return result

    def update_stats(
        self,
        conn: sqlite3.Connection,
        match_id: int,
        updated_stats: Iterable[dict[str, Any]],
        opponent_score: int | None,
    ) -> None:
        """
        Overwrite counters for each listed MatchPlayer, then the match's opponent score.
        Each item holds match_player_id plus any counters to overwrite (absent keys are kept).
        All writes commit together or not at all.
        """
        with conn:
            if conn.execute("SELECT 1 FROM matches WHERE id = ?", (match_id,)).fetchone() is None:
                raise MatchNotFoundError(f"Match not found: {match_id}")
            for item in updated_stats:
                mp_id = item["match_player_id"]
                values = {f: item[f] for f in COUNTER_FIELDS if item.get(f) is not None}
                if values:
                    assignments = ", ".join(f"{f} = ?" for f in values)
                    cur = conn.execute(
                        f"UPDATE match_players SET {assignments} WHERE id = ? AND match_id = ?",
                        (*values.values(), mp_id, match_id),
                    )
                    found = cur.rowcount > 0
                else:
                    found = conn.execute(
                        "SELECT 1 FROM match_players WHERE id = ? AND match_id = ?",
                        (mp_id, match_id),
                    ).fetchone() is not None
                if not found:
                    raise MatchPlayerNotFoundError(
                        f"MatchPlayer {mp_id} not found in match {match_id}"
                    )
            if opponent_score is not None:
                conn.execute(
                    "UPDATE matches SET opponent_score = ? WHERE id = ?",
                    (opponent_score, match_id),
                )


# ---------- PreferenceRepository ----------


class PreferenceRepository:
    """Key/value store for process-wide UI preferences."""

    def get(self, conn: sqlite3.Connection, key: str, default: str | None = None) -> str | None:
        row = conn.execute("SELECT value FROM preferences WHERE key = ?", (key,)).fetchone()
        if row is None:
            return default
        return row["value"]

    def set(self, conn: sqlite3.Connection, key: str, value: str) -> None:
        conn.execute(
            "INSERT INTO preferences (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
            (key, value),
        )
        conn.commit()

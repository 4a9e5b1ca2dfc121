"""
SQLite schema for handball stats entities.
Migration-friendly: each table created with IF NOT EXISTS.
"""
from __future__ import annotations


def players_schema() -> str:
    """Squad members. category: MASCULINO | FEMENINO."""
    return """
    CREATE TABLE IF NOT EXISTS players (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        position TEXT NOT NULL,
        number INTEGER NOT NULL,
        category TEXT NOT NULL,
        created_at TEXT NOT NULL
    );
    """


def matches_schema() -> str:
    return """
    CREATE TABLE IF NOT EXISTS matches (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        opponent TEXT NOT NULL,
        date TEXT NOT NULL,
        location TEXT NOT NULL,
        opponent_score INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL
    );
    CREATE INDEX IF NOT EXISTS ix_matches_date ON matches(date);
    """


def match_players_schema() -> str:
    """Per-match counters. One row per (match, player); rows are created with the match."""
    return """
    CREATE TABLE IF NOT EXISTS match_players (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        match_id INTEGER NOT NULL,
        player_id INTEGER NOT NULL,
        starter INTEGER NOT NULL DEFAULT 0,
        goals INTEGER NOT NULL DEFAULT 0,
        assists INTEGER NOT NULL DEFAULT 0,
        saves INTEGER NOT NULL DEFAULT 0,
        turnovers INTEGER NOT NULL DEFAULT 0,
        shots_on_goal INTEGER NOT NULL DEFAULT 0,
        shots_off_target INTEGER NOT NULL DEFAULT 0,
        recoveries INTEGER NOT NULL DEFAULT 0,
        fouls_committed INTEGER NOT NULL DEFAULT 0,
        fouls_received INTEGER NOT NULL DEFAULT 0,
        yellow_cards INTEGER NOT NULL DEFAULT 0,
        red_cards INTEGER NOT NULL DEFAULT 0,
        play_time INTEGER NOT NULL DEFAULT 0,
        UNIQUE (match_id, player_id),
        FOREIGN KEY (match_id) REFERENCES matches(id),
        FOREIGN KEY (player_id) REFERENCES players(id)
    );
    CREATE INDEX IF NOT EXISTS ix_match_players_match ON match_players(match_id);
    CREATE INDEX IF NOT EXISTS ix_match_players_player ON match_players(player_id);
    """


def preferences_schema() -> str:
    """Process-wide UI preferences (theme)."""
    return """
    CREATE TABLE IF NOT EXISTS preferences (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL
    );
    """


def all_schema_sql() -> str:
    """Combine all schema DDL for a single execution. Order: players, matches, match_players, preferences."""
    return "\n".join([
        players_schema(),
        matches_schema(),
        match_players_schema(),
        preferences_schema(),
    ])

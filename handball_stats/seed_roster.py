"""
Load a squad roster from JSON into the players table.
Each entry is validated like POST /players; one bad entry aborts the load.

    python -m handball_stats.seed_roster roster.json [--db PATH] [--replace]

Roster format: {"players": [{"name", "position", "number", "category"}, ...]}
"""
from __future__ import annotations

import argparse
import json
import logging
import sqlite3
from pathlib import Path
from typing import Any

from handball_stats.config import configure_logging
from handball_stats.models import validate_player_fields
from handball_stats.persistence import PlayerRepository, get_connection, init_db
from handball_stats.persistence.db import get_db_path

logger = logging.getLogger(__name__)


def load_roster(path: Path) -> list[dict[str, Any]]:
    """Read and validate every entry. Raises ValueError naming the offending entry."""
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    entries = data.get("players") if isinstance(data, dict) else None
    if not isinstance(entries, list):
        raise ValueError(f"{path}: expected an object with a 'players' list")
    roster = []
    for i, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise ValueError(f"{path}: entry {i} is not an object")
        try:
            roster.append(validate_player_fields(
                entry.get("name"), entry.get("position"), entry.get("number"), entry.get("category")
            ))
        except ValueError as e:
            raise ValueError(f"{path}: entry {i}: {e}") from e
    return roster


def seed_roster(conn: sqlite3.Connection, roster: list[dict[str, Any]], replace: bool = False) -> int:
    """Insert the roster. With replace, players without match history are removed first."""
    repo = PlayerRepository()
    if replace:
        repo.delete_unused(conn)
    for fields in roster:
        repo.create(conn, **fields)
    return len(roster)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Seed the squad roster from a JSON file.")
    parser.add_argument("roster", type=Path, help="Path to roster JSON")
    parser.add_argument("--db", type=Path, default=None, help="SQLite file (default: configured database)")
    parser.add_argument(
        "--replace",
        action="store_true",
        help="Remove players with no match history before loading",
    )
    args = parser.parse_args(argv)
    configure_logging()

    try:
        roster = load_roster(args.roster)
    except (OSError, ValueError) as e:
        raise SystemExit(f"Cannot load roster: {e}") from e

    db_path = args.db or get_db_path()
    init_db(db_path)
    conn = get_connection(db_path)
    try:
        count = seed_roster(conn, roster, replace=args.replace)
    finally:
        conn.close()
    logger.info(f"Inserted {count} player(s) into {db_path}")


if __name__ == "__main__":
    main()

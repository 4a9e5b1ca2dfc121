"""
Tests for the squad selection guard.
"""
from __future__ import annotations

from handball_stats.services.match_setup import (
    MAX_SELECTED,
    STARTERS_REQUIRED,
    SUBSTITUTES_REQUIRED,
    validate_selection,
)


def _squad(starters: int, subs: int) -> list[tuple[int, bool]]:
    return [(i, i < starters) for i in range(starters + subs)]


def test_valid_squad():
    assert validate_selection(_squad(STARTERS_REQUIRED, SUBSTITUTES_REQUIRED)) is None
    assert STARTERS_REQUIRED + SUBSTITUTES_REQUIRED == MAX_SELECTED


def test_too_many_players():
    assert "14" in validate_selection(_squad(5, 10))


def test_wrong_starter_count():
    assert "titulares" in validate_selection(_squad(4, 9))
    assert "titulares" in validate_selection(_squad(6, 8))


def test_wrong_substitute_count():
    assert "suplentes" in validate_selection(_squad(5, 8))


def test_duplicate_player():
    squad = _squad(5, 9)
    squad[-1] = (0, False)
    assert "dos veces" in validate_selection(squad)

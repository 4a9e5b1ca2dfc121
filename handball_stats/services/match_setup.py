"""
Match setup guard: squad selection rules checked before a match is created.
Pure validation, no persistence.
"""
from __future__ import annotations

from typing import Iterable

MAX_SELECTED = 14
STARTERS_REQUIRED = 5
SUBSTITUTES_REQUIRED = 9


def validate_selection(selected: Iterable[tuple[int, bool]]) -> str | None:
    """
    Check a (player_id, starter) selection. Returns the first failing rule's
    message, or None when the squad can be submitted.
    """
    selected = list(selected)
    if len(selected) > MAX_SELECTED:
        return f"Solo puedes seleccionar hasta {MAX_SELECTED} jugadores"
    starters = sum(1 for _, starter in selected if starter)
    if starters != STARTERS_REQUIRED:
        return f"Debes seleccionar exactamente {STARTERS_REQUIRED} titulares"
    if len(selected) - starters != SUBSTITUTES_REQUIRED:
        return f"Debes seleccionar exactamente {SUBSTITUTES_REQUIRED} suplentes"
    ids = [pid for pid, _ in selected]
    if len(set(ids)) != len(ids):
        return "Un jugador no puede seleccionarse dos veces"
    return None

"""
Service layer: squad selection rules, live session registry, mail dispatch.
Domain state lives in live_session; persistence stays in the repositories.
"""
from .match_setup import (
    MAX_SELECTED,
    STARTERS_REQUIRED,
    SUBSTITUTES_REQUIRED,
    validate_selection,
)
from .live_sessions import LiveSessionNotFoundError, LiveSessionRegistry
from .notifications import (
    MailDeliveryError,
    MailjetDispatcher,
    NoRecipientsError,
    parse_recipients,
)

__all__ = [
    "MAX_SELECTED",
    "STARTERS_REQUIRED",
    "SUBSTITUTES_REQUIRED",
    "validate_selection",
    "LiveSessionNotFoundError",
    "LiveSessionRegistry",
    "MailDeliveryError",
    "MailjetDispatcher",
    "NoRecipientsError",
    "parse_recipients",
]

"""
Mass notification dispatcher: one Mailjet v3.1 send call per broadcast.
No retry and no delivery tracking; the provider's response body is returned as-is.
"""
from __future__ import annotations

import logging
from typing import Any

import httpx

from handball_stats.config import Settings, get_settings

logger = logging.getLogger(__name__)

CUSTOM_ID = "MassEmail"


# ---------- Exceptions ----------


class NoRecipientsError(ValueError):
    """The recipient list is empty after trimming."""

    def __init__(self, message: str = "No se proporcionaron direcciones de correo válidas") -> None:
        super().__init__(message)


class MailDeliveryError(RuntimeError):
    """The provider rejected the request or could not be reached."""


def parse_recipients(to_emails: str | None) -> list[str]:
    """Split a comma-separated address list, trimming and dropping empties."""
    if not to_emails:
        return []
    return [e.strip() for e in to_emails.split(",") if e.strip()]


def _provider_error(response: httpx.Response) -> str:
    """Best-effort error text from a Mailjet error body."""
    try:
        data = response.json()
    except ValueError:
        return response.text or f"Mailjet responded with status {response.status_code}"
    if isinstance(data, dict):
        for key in ("ErrorMessage", "message", "error"):
            if data.get(key):
                return str(data[key])
        for message in data.get("Messages") or []:
            for err in message.get("Errors") or []:
                if err.get("ErrorMessage"):
                    return str(err["ErrorMessage"])
    return f"Mailjet responded with status {response.status_code}"


class MailjetDispatcher:
    """Sends a single message to many recipients through the Mailjet send API."""

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._transport = transport

    def build_payload(
        self,
        recipients: list[str],
        to_name: str | None,
        subject: str | None,
        text: str | None,
        html: str | None,
    ) -> dict[str, Any]:
        return {
            "Messages": [
                {
                    "From": {
                        "Email": self.settings.mail_sender_email,
                        "Name": self.settings.mail_sender_name,
                    },
                    "To": [{"Email": email, "Name": to_name} for email in recipients],
                    "Subject": subject,
                    "TextPart": text,
                    "HTMLPart": html,
                    "CustomID": CUSTOM_ID,
                }
            ]
        }

    def send(
        self,
        to_emails: str | None,
        to_name: str | None = None,
        subject: str | None = None,
        text: str | None = None,
        html: str | None = None,
    ) -> Any:
        """
        Send one message to every address in to_emails. Returns the provider's body.
        Raises NoRecipientsError before any request when the list is empty,
        MailDeliveryError when the provider fails.
        """
        recipients = parse_recipients(to_emails)
        if not recipients:
            raise NoRecipientsError()
        payload = self.build_payload(recipients, to_name, subject, text, html)
        auth = (self.settings.mj_apikey_public, self.settings.mj_apikey_private)
        try:
            with httpx.Client(
                auth=auth,
                timeout=self.settings.mail_timeout_seconds,
                transport=self._transport,
            ) as client:
                response = client.post(self.settings.mailjet_api_url, json=payload)
        except httpx.HTTPError as e:
            logger.error(f"Mass email transport failure: {e}")
            raise MailDeliveryError(str(e)) from e
        if response.is_error:
            message = _provider_error(response)
            logger.error(f"Mass email rejected ({response.status_code}): {message}")
            raise MailDeliveryError(message)
        logger.info(f"Mass email '{subject}' sent to {len(recipients)} recipient(s)")
        try:
            return response.json()
        except ValueError:
            return response.text

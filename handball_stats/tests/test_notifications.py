"""
Tests for the Mailjet dispatcher. The provider is replaced with httpx.MockTransport.
"""
from __future__ import annotations

import base64
import json

import httpx
import pytest

from handball_stats.config import Settings
from handball_stats.services.notifications import (
    MailDeliveryError,
    MailjetDispatcher,
    NoRecipientsError,
    parse_recipients,
)


@pytest.fixture
def settings():
    return Settings(
        mj_apikey_public="public-key",
        mj_apikey_private="private-key",
        mail_sender_email="coach@club.es",
        mail_sender_name="HandBall Coaching",
    )


def test_parse_recipients():
    assert parse_recipients(" a@x.com,b@x.com , ,c@x.com,") == ["a@x.com", "b@x.com", "c@x.com"]
    assert parse_recipients("") == []
    assert parse_recipients(None) == []


def test_send_single_request_with_all_recipients(settings):
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"Messages": [{"Status": "success"}]})

    dispatcher = MailjetDispatcher(settings, transport=httpx.MockTransport(handler))
    body = dispatcher.send("a@x.com, b@x.com", "Plantilla", "Entreno", "texto", "<b>html</b>")

    assert body == {"Messages": [{"Status": "success"}]}
    assert len(requests) == 1
    req = requests[0]
    assert str(req.url) == "https://api.mailjet.com/v3.1/send"
    expected_auth = base64.b64encode(b"public-key:private-key").decode()
    assert req.headers["Authorization"] == f"Basic {expected_auth}"
    message = json.loads(req.content)["Messages"][0]
    assert message["From"] == {"Email": "coach@club.es", "Name": "HandBall Coaching"}
    assert message["To"] == [
        {"Email": "a@x.com", "Name": "Plantilla"},
        {"Email": "b@x.com", "Name": "Plantilla"},
    ]
    assert message["Subject"] == "Entreno"
    assert message["TextPart"] == "texto"
    assert message["HTMLPart"] == "<b>html</b>"
    assert message["CustomID"] == "MassEmail"


def test_empty_list_sends_nothing(settings):
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={})

    dispatcher = MailjetDispatcher(settings, transport=httpx.MockTransport(handler))
    with pytest.raises(NoRecipientsError):
        dispatcher.send(" , ,")
    assert requests == []


def test_provider_error_message_passed_through(settings):
    def handler(request):
        return httpx.Response(
            400,
            json={"Messages": [{"Status": "error", "Errors": [{"ErrorMessage": "Invalid email"}]}]},
        )

    dispatcher = MailjetDispatcher(settings, transport=httpx.MockTransport(handler))
    with pytest.raises(MailDeliveryError, match="Invalid email"):
        dispatcher.send("bad")


def test_transport_error_is_delivery_error(settings):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    dispatcher = MailjetDispatcher(settings, transport=httpx.MockTransport(handler))
    with pytest.raises(MailDeliveryError, match="connection refused"):
        dispatcher.send("a@x.com")

from urllib.parse import parse_qs

import pytest
import requests
import responses

from tourwatch.notify import PUSHOVER_MESSAGES_URL, NotifyClient


def test_missing_app_token():
    with pytest.raises(ValueError, match="missing required app_token"):
        NotifyClient("", "token")


def test_missing_recipient_token():
    with pytest.raises(ValueError, match="missing required recipient_token"):
        NotifyClient("token", "")


def test_send_posts_message():
    client = NotifyClient("token", "token")
    title = "New tour availabilities posted"
    message = "Tour: Colosseum\nDate: 2025-04-01"
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, PUSHOVER_MESSAGES_URL, json={"status": 1, "request": "abc"}, status=200)
        result = client.send(title, message)
        calls = len(rsps.calls)
        body = rsps.calls[0].request.body
    assert result is None
    assert calls == 1
    assert parse_qs(body) == {
        "token": ["token"],
        "user": ["token"],
        "message": [message],
        "title": [title],
    }


def test_send_rejected_by_status_code():
    client = NotifyClient("token", "token")
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.POST,
            PUSHOVER_MESSAGES_URL,
            json={"status": 0, "errors": ["application token is invalid"]},
            status=400,
        )
        with pytest.raises(requests.HTTPError, match="application token is invalid"):
            client.send("title", "message")


def test_send_rejected_by_payload_status():
    client = NotifyClient("token", "token")
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.POST,
            PUSHOVER_MESSAGES_URL,
            json={"status": 0, "errors": ["message cannot be blank"]},
            status=200,
        )
        with pytest.raises(requests.HTTPError, match="message cannot be blank"):
            client.send("title", "")
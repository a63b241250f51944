"""Push notifications sent through Pushover."""

from __future__ import annotations

import requests

PUSHOVER_MESSAGES_URL = "https://api.pushover.net/1/messages.json"


class NotifyClient:
    """Sends titled messages from one application to one recipient."""

    def __init__(self, app_token: str, recipient_token: str) -> None:
        if not app_token:
            raise ValueError("missing required app_token")
        if not recipient_token:
            raise ValueError("missing required recipient_token")
        self.app_token = app_token
        self.recipient_token = recipient_token

    def send(self, title: str, message: str) -> None:
        """Deliver a message, raising if the service rejects it."""
        response = requests.post(
            PUSHOVER_MESSAGES_URL,
            data={
                "token": self.app_token,
                "user": self.recipient_token,
                "message": message,
                "title": title,
            },
        )
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}
        if response.status_code != 200 or payload.get("status") != 1:
            errors = payload.get("errors") or [response.text]
            raise requests.HTTPError(
                f"notification rejected ({response.status_code}): {'; '.join(map(str, errors))}",
                response=response,
            )
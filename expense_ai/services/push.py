"""Expo push notification client."""
import logging
import re
from typing import Any, Optional

import httpx

from expense_ai.config import get_settings

logger = logging.getLogger(__name__)

PUSH_TOKEN = re.compile(r"^(ExponentPushToken|ExpoPushToken)\[.+\]$")


class ExpoPushClient:
    """
    Sends one message per call to the Expo push API.

    Returns True only when Expo accepted the message. Failures are logged
    and reported as False; nothing is retried.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        access_token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        settings = get_settings()
        self.url = url or settings.expo_push_url
        self.access_token = access_token if access_token is not None else settings.expo_access_token
        self.timeout = timeout or settings.push_timeout_seconds
        self._transport = transport

    @staticmethod
    def is_push_token(token: Optional[str]) -> bool:
        return bool(token) and PUSH_TOKEN.match(token) is not None

    def _headers(self) -> dict:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    def send(self, token: str, title: str, body: str, data: Optional[dict[str, Any]] = None) -> bool:
        if not self.is_push_token(token):
            logger.error(f"Push token {token} is not a valid Expo push token")
            return False

        message = {"to": token, "sound": "default", "title": title, "body": body, "data": data or {}}
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.post(self.url, json=[message], headers=self._headers())
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPError as e:
            logger.error(f"Failed to send push notification: {e}")
            return False
        except ValueError as e:
            logger.error(f"Push provider returned invalid JSON: {e}")
            return False

        tickets = payload.get("data") if isinstance(payload, dict) else None
        ticket = tickets[0] if isinstance(tickets, list) and tickets else tickets
        if not isinstance(ticket, dict):
            logger.error(f"Unexpected push provider response: {payload}")
            return False
        if ticket.get("status") == "error":
            logger.error(f"Error sending push notification: {ticket.get('message')}")
            return False

        logger.info(f"Push notification sent successfully to {token}")
        return True


def get_push_client() -> ExpoPushClient:
    return ExpoPushClient()

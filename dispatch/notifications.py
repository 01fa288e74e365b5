"""
Purpose: Outbound notification gateway.
Every user-visible effect of dispatch leaves through here.
Fire-and-forget: a failed delivery is logged, never raised into the caller.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)

ADMIN_CHANNEL = "admin"


class NotificationGateway(ABC):

    @abstractmethod
    def notify(self, channel: str, event_type: str, payload: Dict[str, Any]) -> None:
        """Deliver one event to a channel (e.g. "client:12", "driver:7", "admin")."""

    def notify_client(self, client_id: Optional[int], payload: Dict[str, Any]) -> None:
        # counter-created orders have no client to tell
        if client_id is None:
            return
        self.notify(f"client:{client_id}", "notification", payload)

    def notify_driver(self, driver_id: int, payload: Dict[str, Any], event_type: str = "notification") -> None:
        self.notify(f"driver:{driver_id}", event_type, payload)

    def notify_admins(self, event_type: str, payload: Dict[str, Any]) -> None:
        self.notify(ADMIN_CHANNEL, event_type, payload)


class LoggingNotificationGateway(NotificationGateway):
    """
    Default gateway: writes events to the log. Useful in development and as a sink
    when no push transport is configured.
    """

    def notify(self, channel: str, event_type: str, payload: Dict[str, Any]) -> None:
        logger.info("notify %s %s %s", channel, event_type, json.dumps(payload, default=str))


class WebhookNotificationGateway(NotificationGateway):
    """
    POSTs each event as JSON to a push relay (socket server, FCM bridge, ...).
    """

    def __init__(self, url: str, timeout: float = 3.0, session: Optional[requests.Session] = None):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def notify(self, channel: str, event_type: str, payload: Dict[str, Any]) -> None:
        body = json.dumps({"channel": channel, "event": event_type, "payload": payload}, default=str)
        try:
            response = self.session.post(
                self.url,
                data=body,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.error("Notification %s to %s failed: %s", event_type, channel, exc)


def build_notification_gateway(webhook_url: Optional[str] = None) -> NotificationGateway:
    if webhook_url:
        return WebhookNotificationGateway(webhook_url)
    return LoggingNotificationGateway()

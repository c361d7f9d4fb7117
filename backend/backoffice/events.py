# Overview: Post-commit fan-out to notification, cache and real-time collaborators.

"""
EventHub is built once by create_app and stored in app.extensions. Services
reach it through get_event_hub() and only after their transaction has
committed: delivery is best effort, so a failing channel is logged and the
remaining channels still run.

Three concerns, each with its own channel list:
- notify(tenant_id, event_type, payload): notification dispatcher (email/SMS)
- invalidate_product(tenant_id, product_id): read-through product caches
- broadcast(tenant_id, location_id, event_type, payload): connected POS clients
"""

from __future__ import annotations

import logging
from typing import Callable

from flask import current_app

EXTENSION_KEY = "backoffice.events"

STOCK_UPDATE = "STOCK_UPDATE"
SESSION_SUMMARY_UPDATE = "SESSION_SUMMARY_UPDATE"
SUSPENDED_COUNT_UPDATE = "SUSPENDED_COUNT_UPDATE"
LOW_STOCK = "LOW_STOCK"

NotifyHandler = Callable[[int, str, dict], None]
InvalidateHandler = Callable[[int, int], None]
BroadcastHandler = Callable[[int, int, str, dict], None]


class EventHub:
    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger(__name__)
        self._notifiers: list[NotifyHandler] = []
        self._invalidators: list[InvalidateHandler] = []
        self._broadcasters: list[BroadcastHandler] = []

    def register_notifier(self, handler: NotifyHandler) -> None:
        self._notifiers.append(handler)

    def register_cache_invalidator(self, handler: InvalidateHandler) -> None:
        self._invalidators.append(handler)

    def register_broadcaster(self, handler: BroadcastHandler) -> None:
        self._broadcasters.append(handler)

    def clear(self) -> None:
        self._notifiers.clear()
        self._invalidators.clear()
        self._broadcasters.clear()

    def _dispatch(self, handlers, description: str, *args) -> int:
        delivered = 0
        for handler in list(handlers):
            try:
                handler(*args)
                delivered += 1
            except Exception:
                self.logger.warning("%s handler %r failed", description, handler, exc_info=True)
        return delivered

    def notify(self, tenant_id: int, event_type: str, payload: dict) -> int:
        return self._dispatch(self._notifiers, f"notify[{event_type}]", tenant_id, event_type, payload)

    def invalidate_product(self, tenant_id: int, product_id: int) -> int:
        return self._dispatch(self._invalidators, "invalidate_product", tenant_id, product_id)

    def broadcast(self, tenant_id: int, location_id: int, event_type: str, payload: dict) -> int:
        return self._dispatch(self._broadcasters, f"broadcast[{event_type}]", tenant_id, location_id, event_type, payload)


def logging_channels(hub: EventHub) -> EventHub:
    """Default channels: record every event in the app log."""
    logger = hub.logger

    def log_notification(tenant_id, event_type, payload):
        logger.info("notify tenant=%s %s %s", tenant_id, event_type, payload)

    def log_invalidation(tenant_id, product_id):
        logger.debug("invalidate product cache tenant=%s product=%s", tenant_id, product_id)

    def log_broadcast(tenant_id, location_id, event_type, payload):
        logger.debug("broadcast tenant=%s location=%s %s %s", tenant_id, location_id, event_type, payload)

    hub.register_notifier(log_notification)
    hub.register_cache_invalidator(log_invalidation)
    hub.register_broadcaster(log_broadcast)
    return hub


def init_event_hub(app) -> EventHub:
    hub = logging_channels(EventHub(app.logger))
    app.extensions[EXTENSION_KEY] = hub
    return hub


def get_event_hub() -> EventHub:
    return current_app.extensions[EXTENSION_KEY]

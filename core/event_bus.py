"""
In-process event bus for the notification engine.

Booking events (EnrollmentConfirmed, AppointmentBooked) drive triggered
sends; engine events (RefundFailed, MilestoneFired) feed alerting and audit.

Handlers run synchronously in the publisher's thread. Bulk sends publish
RefundFailed from pool workers, so the subscriber table is guarded by a lock
and handlers must be safe to call concurrently. A failing handler is logged
and skipped: a booking confirmation must not fail because its notification
did.
"""

import logging
import threading
from collections import defaultdict
from typing import Callable

from core.events import NotifyEvent

logger = logging.getLogger(__name__)

Handler = Callable[[NotifyEvent], None]

# Operational alerts go to their own logger so they can be routed to paging
ALERT_LOGGER = "notify.alerts"


def _event_name(event_type: type | str) -> str:
    return event_type if isinstance(event_type, str) else event_type.__name__


class EventBus:
    """
    Pub/sub keyed by event class name.

    Subscribe with the event class or its name, publish instances.
    """

    def __init__(self):
        self._handlers: dict[str, list[Handler]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, event_type: type | str, handler: Handler) -> None:
        """Register handler for event_type (class, or class name like 'RefundFailed')."""
        with self._lock:
            self._handlers[_event_name(event_type)].append(handler)

    def unsubscribe(self, event_type: type | str, handler: Handler) -> bool:
        """Returns False if the handler was not subscribed."""
        with self._lock:
            handlers = self._handlers.get(_event_name(event_type), [])
            if handler not in handlers:
                return False
            handlers.remove(handler)
            return True

    def publish(self, event: NotifyEvent) -> int:
        """
        Call every handler subscribed to the event's class, in order.

        Returns:
            Number of handlers that raised. Their errors are logged, never
            propagated.
        """
        event_type = type(event).__name__
        with self._lock:
            handlers = list(self._handlers.get(event_type, ()))

        failures = 0
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                failures += 1
                logger.exception(
                    "Handler %s failed for %s (event_id=%s)",
                    getattr(handler, "__name__", repr(handler)),
                    event_type,
                    event.event_id,
                )
        return failures


def alert_on_refund_failure(bus: EventBus, alerts: logging.Logger | None = None) -> Handler:
    """
    Subscribe a handler that raises a CRITICAL alert for every RefundFailed.

    Returns:
        The subscribed handler, for unsubscribe
    """
    alerts = alerts or logging.getLogger(ALERT_LOGGER)

    def refund_failed_alert(event):
        alerts.critical(
            "Credit refund failed: account %s is short %s unit(s) for debit %s "
            "(delivery %s): %s",
            event.account_id,
            event.amount,
            event.debit_transaction_id,
            event.delivery_id,
            event.error,
            extra={
                "event_id": event.event_id,
                "account_id": str(event.account_id),
                "debit_transaction_id": str(event.debit_transaction_id),
            },
        )

    bus.subscribe("RefundFailed", refund_failed_alert)
    return refund_failed_alert

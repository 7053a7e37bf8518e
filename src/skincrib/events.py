"""
Consumer notifications for the Skincrib merchant client.

The Notifier is a small publish-subscribe dispatcher. Every push event and
every derived notification goes through a single emit() path on the event
loop, so subscribers see them in the order the mirror applied them.

Subscriber errors are isolated: a failing callback is logged and counted,
and the remaining subscribers still run.
"""

import asyncio
import inspect
import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Set

logger = logging.getLogger(__name__)


class NotificationType(Enum):
    """Notifications emitted to consumers."""
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"
    AUTHENTICATED = "authenticated"
    LISTING_ADDED = "listing.added"
    LISTING_REMOVED = "listing.removed"
    LISTING_UPDATED = "listing.updated"


class Notifier:
    """
    Dispatches notifications to subscribed callbacks.

    Plain callbacks run inline. Coroutine callbacks are scheduled as tasks
    on the running loop; the notifier keeps a reference until they finish.
    """

    def __init__(self):
        self._subscribers: Dict[NotificationType, List[Callable]] = {}
        self._pending: Set[asyncio.Task] = set()

        self._notifications_emitted = 0
        self._callback_errors = 0

    def subscribe(self, notification: NotificationType, callback: Callable) -> None:
        """
        Subscribe to a notification type.

        Args:
            notification: Type (or its string value, e.g. "listing.added")
            callback: Function or coroutine function receiving the payload
        """
        notification = NotificationType(notification)
        self._subscribers.setdefault(notification, []).append(callback)
        logger.debug(f"Subscriber added for {notification.value}: {getattr(callback, '__name__', callback)}")

    def unsubscribe(self, notification: NotificationType, callback: Callable) -> None:
        notification = NotificationType(notification)
        try:
            self._subscribers.get(notification, []).remove(callback)
        except ValueError:
            logger.warning(f"Callback not found in subscribers: {getattr(callback, '__name__', callback)}")

    def emit(self, notification: NotificationType, payload: Any = None) -> None:
        """Deliver a notification to every subscriber of its type."""
        self._notifications_emitted += 1
        callbacks = list(self._subscribers.get(notification, []))
        logger.debug(f"Emitting {notification.value} to {len(callbacks)} subscriber(s)")

        for callback in callbacks:
            try:
                if inspect.iscoroutinefunction(callback):
                    task = asyncio.get_running_loop().create_task(callback(payload))
                    self._pending.add(task)
                    task.add_done_callback(self._on_task_done)
                else:
                    callback(payload)
            except Exception as e:
                self._callback_errors += 1
                logger.error(f"Subscriber error for {notification.value}: {e}")

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self._callback_errors += 1
            logger.error(f"Async subscriber error: {error}")

    def subscriber_count(self, notification: NotificationType) -> int:
        return len(self._subscribers.get(NotificationType(notification), []))

    def get_stats(self) -> Dict[str, int]:
        return {
            'notifications_emitted': self._notifications_emitted,
            'callback_errors': self._callback_errors,
            'pending_tasks': len(self._pending),
        }

"""Notification dispatch and UI-facing events.

Events are fire-and-forget: each subscriber is called once per emit, with
no acknowledgement. Blocked-access notifications are delayed on their own
task so the monitor loop never waits on them.
"""

import asyncio
import dataclasses
import inspect
import logging
import threading
from collections.abc import Callable
from typing import Any, Optional

from domainguard.models import AlertEvent, NotificationSettings

logger = logging.getLogger(__name__)

EVENT_DOMAIN_BLOCKED = "domain-blocked"
EVENT_DOMAIN_UNBLOCKED = "domain-unblocked"
EVENT_ACCESS_BLOCKED = "domain-access-blocked-notification"
EVENT_MONITOR_STATE = "monitor-state-changed"

EventCallback = Callable[[str, dict[str, Any]], Any]


class EventEmitter:
    """Minimal publish/subscribe hub for UI events.

    Subscribers receive (event_name, payload). Coroutine subscribers are
    scheduled on the running loop; a failing subscriber is logged and does
    not affect the others.
    """

    def __init__(self) -> None:
        self._subscribers: list[tuple[Optional[str], EventCallback]] = []
        self._tasks: set[asyncio.Task] = set()
        self._lock = threading.Lock()

    def subscribe(self, callback: EventCallback, event: Optional[str] = None) -> None:
        """Register a callback for one event name, or all events if None."""
        with self._lock:
            self._subscribers.append((event, callback))

    def emit(self, event: str, payload: dict[str, Any]) -> None:
        with self._lock:
            subscribers = [cb for name, cb in self._subscribers if name is None or name == event]

        for callback in subscribers:
            try:
                result = callback(event, payload)
                if inspect.isawaitable(result):
                    self._schedule(result)
            except Exception as e:
                logger.warning(f"Event subscriber failed for {event}: {e}")

    def _schedule(self, awaitable: Any) -> None:
        try:
            task = asyncio.get_running_loop().create_task(awaitable)
        except RuntimeError:
            # No running loop (sync caller); nothing can drive the coroutine
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            logger.debug("Dropped async event subscriber: no running event loop")
            return
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)


class NotificationState:
    """Process-wide notification settings behind a lock.

    `get()` returns a copy so each reader sees one consistent set of values;
    changes made through `update()` apply to the next read.
    """

    def __init__(self, settings: Optional[NotificationSettings] = None) -> None:
        self._settings = settings or NotificationSettings()
        self._lock = threading.Lock()

    def get(self) -> NotificationSettings:
        with self._lock:
            return dataclasses.replace(self._settings)

    def update(self, **changes: Any) -> NotificationSettings:
        """Change one or more settings (enabled, delay_seconds, cooldown_seconds)."""
        with self._lock:
            self._settings = dataclasses.replace(self._settings, **changes)
            return dataclasses.replace(self._settings)


class NotificationDispatcher:
    """Emits blocked-access notifications after the configured delay."""

    def __init__(
        self,
        emitter: EventEmitter,
        state: NotificationState,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ) -> None:
        self.emitter = emitter
        self.state = state
        self._sleep = sleep
        self._pending: set[asyncio.Task] = set()

    def notify(self, domain: str, ip: str, alert: AlertEvent) -> Optional[asyncio.Task]:
        """Schedule a notification for a blocked domain contact.

        Returns:
            The scheduled task, or None when notifications are disabled
        """
        settings = self.state.get()
        if not settings.enabled:
            logger.debug(f"Notifications disabled, skipping {domain} ({ip})")
            return None

        task = asyncio.get_running_loop().create_task(
            self._deliver(domain, ip, alert, settings.delay_seconds)
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _deliver(self, domain: str, ip: str, alert: AlertEvent, delay_seconds: float) -> None:
        if delay_seconds > 0:
            await self._sleep(delay_seconds)

        payload = {
            "domain": domain,
            "ip": ip,
            "timestamp": alert.timestamp,
            "signature": alert.signature,
        }
        logger.info(f"Blocked domain contacted: {domain} ({ip})")
        self.emitter.emit(EVENT_ACCESS_BLOCKED, payload)

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for every scheduled notification to be delivered."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

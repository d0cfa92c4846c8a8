"""Blocked-domain access monitor.

Polls the IDS alert source, maps each alert's destination IP back to a
domain through the reverse-lookup cache, and raises a notification when a
blocked domain is still being contacted. Notifications for the same
(domain, ip) pair are suppressed until the cooldown has elapsed.

Lifecycle: Stopped -> Running -> Stopped. `start()` is idempotent; `stop()`
only signals the loop, which exits after its current tick.
"""

import asyncio
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Optional, Protocol

from cachetools import TTLCache

from domainguard.models import AccessAttempt, AlertEvent
from domainguard.notifiers.dispatcher import (
    EVENT_MONITOR_STATE,
    EventEmitter,
    NotificationDispatcher,
)
from domainguard.resolver import ReverseLookupCache
from domainguard.storage import BlockedDomainStore

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_SWEEP_INTERVAL = 300.0  # 5 minutes
DEFAULT_ATTEMPT_TTL = 600.0  # 10 minutes of inactivity
DEFAULT_ATTEMPT_CACHE_SIZE = 5000


class AlertSource(Protocol):
    def is_available(self) -> bool: ...

    def read_alert_events(self) -> list[AlertEvent]: ...

    def seek_to_end(self) -> None: ...


@dataclass
class MonitorConfig:
    """Configuration for the access monitor."""

    poll_interval: float = DEFAULT_POLL_INTERVAL
    sweep_interval: float = DEFAULT_SWEEP_INTERVAL
    attempt_ttl: float = DEFAULT_ATTEMPT_TTL

    # Ignore alerts already in the log when monitoring starts
    skip_existing: bool = True


class AccessAttemptTable:
    """Per "domain:ip" access bookkeeping with inactivity expiry."""

    def __init__(
        self,
        ttl: float = DEFAULT_ATTEMPT_TTL,
        maxsize: int = DEFAULT_ATTEMPT_CACHE_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        # Re-assigning a key refreshes its expiry, so entries live until idle for `ttl`
        self._attempts: TTLCache[str, AccessAttempt] = TTLCache(maxsize=maxsize, ttl=ttl, timer=clock)

    @staticmethod
    def key(domain: str, ip: str) -> str:
        return f"{domain}:{ip}"

    def record(self, domain: str, ip: str, cooldown_seconds: float) -> tuple[AccessAttempt, bool]:
        """Record a match and decide whether to notify.

        Returns:
            (updated attempt, True if this is the first sighting or the
            cooldown since the last notification has elapsed)
        """
        key = self.key(domain, ip)
        with self._lock:
            now = self._clock()
            attempt = self._attempts.get(key)

            if attempt is None:
                attempt = AccessAttempt(
                    key=key,
                    domain=domain,
                    ip=ip,
                    first_seen=now,
                    last_seen=now,
                    last_notified_at=now,
                )
                should_notify = True
            else:
                attempt.count += 1
                attempt.last_seen = now
                should_notify = now - attempt.last_notified_at > cooldown_seconds
                if should_notify:
                    attempt.last_notified_at = now

            self._attempts[key] = attempt
            return attempt, should_notify

    def get(self, domain: str, ip: str) -> Optional[AccessAttempt]:
        with self._lock:
            return self._attempts.get(self.key(domain, ip))

    def sweep(self) -> int:
        """Drop attempts idle for longer than the TTL. Returns the number removed."""
        with self._lock:
            return len(self._attempts.expire())

    def __len__(self) -> int:
        with self._lock:
            self._attempts.expire()
            return len(self._attempts)


class AccessMonitor:
    """Background task correlating IDS alerts with blocked domains.

    Usage:
        monitor = AccessMonitor(store, cache, source, dispatcher)
        monitor.start()        # from inside a running event loop
        ...
        monitor.stop()
        await monitor.wait_stopped()
    """

    def __init__(
        self,
        store: BlockedDomainStore,
        cache: ReverseLookupCache,
        source: AlertSource,
        dispatcher: NotificationDispatcher,
        config: Optional[MonitorConfig] = None,
        emitter: Optional[EventEmitter] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.cache = cache
        self.source = source
        self.dispatcher = dispatcher
        self.config = config or MonitorConfig()
        self.emitter = emitter or dispatcher.emitter
        self._clock = clock
        self.attempts = AccessAttemptTable(ttl=self.config.attempt_ttl, clock=clock)

        self._active = False
        self._flag_lock = threading.Lock()
        self._stop_event: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None

        self.stats = {
            "ticks": 0,
            "alerts_seen": 0,
            "matches": 0,
            "notifications": 0,
            "errors": 0,
        }

    @property
    def is_running(self) -> bool:
        with self._flag_lock:
            return self._active

    def start(self) -> bool:
        """Start the monitor loop on the running event loop.

        Returns:
            True if the monitor is running, False if no event loop was
            available (monitor unavailable)
        """
        with self._flag_lock:
            if self._active:
                return True
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                logger.error("Access monitor unavailable: no running event loop")
                return False
            self._active = True

        if self.config.skip_existing and self.source.is_available():
            self.source.seek_to_end()

        # Each run owns its stop event; a restart waits for the previous run to exit
        previous = self._task if self._task is not None and not self._task.done() else None
        self._stop_event = asyncio.Event()
        self._task = loop.create_task(self._run(self._stop_event, previous))
        logger.info(f"Access monitor started (poll every {self.config.poll_interval:g}s)")
        self.emitter.emit(EVENT_MONITOR_STATE, {"active": True})
        return True

    def stop(self) -> None:
        """Signal the loop to exit. Takes effect at the end of the current tick."""
        with self._flag_lock:
            if not self._active:
                return
            self._active = False
            stop_event = self._stop_event
        if stop_event is not None:
            stop_event.set()
        logger.info("Access monitor stopping")
        self.emitter.emit(EVENT_MONITOR_STATE, {"active": False})

    async def wait_stopped(self) -> None:
        """Wait for the loop task to finish after stop()."""
        if self._task is not None:
            await self._task

    async def _run(self, stop_event: asyncio.Event, previous: Optional[asyncio.Task] = None) -> None:
        if previous is not None:
            await previous

        last_sweep = self._clock()

        while not stop_event.is_set():
            try:
                await self.tick()
            except Exception as e:
                self.stats["errors"] += 1
                logger.error(f"Error checking for blocked domain access: {e}")

            now = self._clock()
            if now - last_sweep >= self.config.sweep_interval:
                self.sweep()
                last_sweep = now

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.config.poll_interval)
            except asyncio.TimeoutError:
                pass

        logger.info("Access monitor stopped")

    async def tick(self) -> int:
        """Run one polling pass.

        Returns:
            Number of alerts that matched a blocked domain
        """
        self.stats["ticks"] += 1

        if not self.source.is_available():
            return 0

        blocked = self.store.snapshot()
        if not blocked:
            # Alerts logged while nothing was blocked must not match a later block
            self.source.seek_to_end()
            return 0

        loop = asyncio.get_running_loop()
        try:
            alerts = await loop.run_in_executor(None, self.source.read_alert_events)
        except OSError as e:
            logger.warning(f"Failed to read alert events: {e}")
            return 0

        matches = 0
        for alert in alerts:
            if not alert.dest_ip:
                continue
            self.stats["alerts_seen"] += 1
            try:
                if await self._process_alert(alert, alert.dest_ip, blocked):
                    matches += 1
            except Exception as e:
                self.stats["errors"] += 1
                logger.warning(f"Failed to process alert for {alert.dest_ip}: {e}")

        return matches

    async def _process_alert(self, alert: AlertEvent, ip: str, blocked: frozenset[str]) -> bool:
        result = await self.cache.lookup_or_resolve(ip, blocked)
        if not result.blocked or result.domain is None:
            return False

        self.stats["matches"] += 1
        cooldown = self.dispatcher.state.get().cooldown_seconds
        attempt, should_notify = self.attempts.record(result.domain, ip, cooldown)

        if should_notify:
            logger.debug(f"Access to blocked {result.domain} ({ip}), attempt #{attempt.count}")
            if self.dispatcher.notify(result.domain, ip, alert) is not None:
                self.stats["notifications"] += 1
        else:
            logger.debug(f"Suppressed notification for {attempt.key} (attempt #{attempt.count})")
        return True

    def sweep(self) -> None:
        """Purge idle access attempts and expired reverse-lookup entries."""
        attempts = self.attempts.sweep()
        entries = self.cache.sweep()
        if attempts or entries:
            logger.debug(f"Sweep removed {attempts} access attempts, {entries} cache entries")

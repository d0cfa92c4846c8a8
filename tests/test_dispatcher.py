"""Tests for event emission and notification dispatch."""

import asyncio

import httpx
import pytest

from domainguard.models import AlertEvent, NotificationSettings
from domainguard.notifiers import (
    EVENT_ACCESS_BLOCKED,
    EVENT_DOMAIN_BLOCKED,
    EventEmitter,
    NotificationDispatcher,
    NotificationState,
    SlackConfig,
    SlackNotifier,
)

ALERT = AlertEvent(timestamp="2024-01-26T14:32:15+0000", dest_ip="93.184.216.34", signature="ET TEST")


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class TestEventEmitter:
    """Tests for the publish/subscribe hub."""

    def test_filtered_and_wildcard_subscribers(self) -> None:
        emitter = EventEmitter()
        only_blocked: list[str] = []
        everything: list[str] = []
        emitter.subscribe(lambda e, p: only_blocked.append(p["domain"]), EVENT_DOMAIN_BLOCKED)
        emitter.subscribe(lambda e, p: everything.append(e))

        emitter.emit(EVENT_DOMAIN_BLOCKED, {"domain": "example.test"})
        emitter.emit(EVENT_ACCESS_BLOCKED, {"domain": "example.test"})

        assert only_blocked == ["example.test"]
        assert everything == [EVENT_DOMAIN_BLOCKED, EVENT_ACCESS_BLOCKED]

    def test_failing_subscriber_does_not_block_others(self) -> None:
        emitter = EventEmitter()
        seen: list[str] = []

        def broken(event: str, payload: dict) -> None:
            raise RuntimeError("boom")

        emitter.subscribe(broken)
        emitter.subscribe(lambda e, p: seen.append(e))

        emitter.emit(EVENT_DOMAIN_BLOCKED, {})

        assert seen == [EVENT_DOMAIN_BLOCKED]

    @pytest.mark.asyncio
    async def test_async_subscriber_scheduled(self) -> None:
        emitter = EventEmitter()
        seen: list[str] = []

        async def handler(event: str, payload: dict) -> None:
            seen.append(payload["domain"])

        emitter.subscribe(handler)
        emitter.emit(EVENT_DOMAIN_BLOCKED, {"domain": "example.test"})
        await asyncio.sleep(0)

        assert seen == ["example.test"]

    def test_async_subscriber_without_loop_dropped(self) -> None:
        emitter = EventEmitter()
        seen: list[str] = []

        async def handler(event: str, payload: dict) -> None:
            seen.append(event)

        emitter.subscribe(handler)
        emitter.emit(EVENT_DOMAIN_BLOCKED, {})

        assert seen == []


class TestNotificationState:
    def test_defaults(self) -> None:
        settings = NotificationState().get()

        assert settings.enabled is True
        assert settings.delay_seconds == 2
        assert settings.cooldown_seconds == 30

    def test_update_and_copy(self) -> None:
        state = NotificationState()
        snapshot = state.get()

        state.update(cooldown_seconds=60, enabled=False)

        assert snapshot.cooldown_seconds == 30
        assert state.get().cooldown_seconds == 60
        assert state.get().enabled is False


class TestNotificationDispatcher:
    """Tests for delayed blocked-access notifications."""

    @pytest.mark.asyncio
    async def test_delay_then_emit(self) -> None:
        emitter = EventEmitter()
        received: list[dict] = []
        emitter.subscribe(lambda e, p: received.append(p), EVENT_ACCESS_BLOCKED)
        sleep = RecordingSleep()
        dispatcher = NotificationDispatcher(emitter, NotificationState(), sleep=sleep)

        task = dispatcher.notify("example.test", "93.184.216.34", ALERT)
        assert task is not None
        await dispatcher.drain()

        assert sleep.calls == [2]
        assert received == [
            {
                "domain": "example.test",
                "ip": "93.184.216.34",
                "timestamp": "2024-01-26T14:32:15+0000",
                "signature": "ET TEST",
            }
        ]
        assert dispatcher.pending == 0

    @pytest.mark.asyncio
    async def test_zero_delay_skips_sleep(self) -> None:
        sleep = RecordingSleep()
        dispatcher = NotificationDispatcher(
            EventEmitter(), NotificationState(NotificationSettings(delay_seconds=0)), sleep=sleep
        )

        dispatcher.notify("example.test", "93.184.216.34", ALERT)
        await dispatcher.drain()

        assert sleep.calls == []

    @pytest.mark.asyncio
    async def test_disabled(self) -> None:
        emitter = EventEmitter()
        received: list[dict] = []
        emitter.subscribe(lambda e, p: received.append(p))
        dispatcher = NotificationDispatcher(emitter, NotificationState(NotificationSettings(enabled=False)))

        assert dispatcher.notify("example.test", "93.184.216.34", ALERT) is None
        await dispatcher.drain()

        assert received == []

    @pytest.mark.asyncio
    async def test_settings_read_at_notify_time(self) -> None:
        state = NotificationState()
        sleep = RecordingSleep()
        dispatcher = NotificationDispatcher(EventEmitter(), state, sleep=sleep)

        state.update(delay_seconds=7)
        dispatcher.notify("example.test", "93.184.216.34", ALERT)
        await dispatcher.drain()

        assert sleep.calls == [7]


class TestSlackNotifier:
    """Tests for the Slack webhook notifier."""

    def test_format_message(self) -> None:
        notifier = SlackNotifier(SlackConfig(webhook_url="https://hooks.example.test/x"))

        message = notifier._format_message(
            EVENT_ACCESS_BLOCKED,
            {"domain": "example.test", "ip": "93.184.216.34", "signature": "ET TEST", "timestamp": "t"},
        )

        attachment = message["attachments"][0]
        assert attachment["title"] == "Blocked domain contacted"
        titles = [f["title"] for f in attachment["fields"]]
        assert titles == ["Domain", "IP", "Signature", "Alert time"]

    @pytest.mark.asyncio
    async def test_posts_to_webhook(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, text="ok")

        notifier = SlackNotifier(SlackConfig(webhook_url="https://hooks.example.test/x"))
        notifier._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))

        sent = await notifier.handle_event(EVENT_ACCESS_BLOCKED, {"domain": "example.test", "ip": "1.2.3.4"})
        await notifier.close()

        assert sent is True
        assert len(requests) == 1
        assert str(requests[0].url) == "https://hooks.example.test/x"

    @pytest.mark.asyncio
    async def test_ignores_unsubscribed_events(self) -> None:
        notifier = SlackNotifier(SlackConfig(webhook_url="https://hooks.example.test/x"))

        assert await notifier.handle_event(EVENT_DOMAIN_BLOCKED, {"domain": "example.test"}) is False

    @pytest.mark.asyncio
    async def test_webhook_error_status(self) -> None:
        notifier = SlackNotifier(SlackConfig(webhook_url="https://hooks.example.test/x"))
        notifier._client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(500, text="no"))
        )

        assert await notifier.handle_event(EVENT_ACCESS_BLOCKED, {"domain": "example.test"}) is False
        await notifier.close()

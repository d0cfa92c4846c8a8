"""Notifiers package for UI events and external alert delivery."""

from domainguard.notifiers.dispatcher import (
    EVENT_ACCESS_BLOCKED,
    EVENT_DOMAIN_BLOCKED,
    EVENT_DOMAIN_UNBLOCKED,
    EVENT_MONITOR_STATE,
    EventEmitter,
    NotificationDispatcher,
    NotificationState,
)
from domainguard.notifiers.slack import SlackConfig, SlackNotifier

__all__ = [
    "EVENT_ACCESS_BLOCKED",
    "EVENT_DOMAIN_BLOCKED",
    "EVENT_DOMAIN_UNBLOCKED",
    "EVENT_MONITOR_STATE",
    "EventEmitter",
    "NotificationDispatcher",
    "NotificationState",
    "SlackConfig",
    "SlackNotifier",
]

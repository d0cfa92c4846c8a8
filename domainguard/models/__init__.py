"""Data models for domainguard."""

from domainguard.models.events import (
    AccessAttempt,
    AlertEvent,
    FlowEvent,
    NotificationSettings,
)
from domainguard.models.rules import Direction, RuleDescriptor

__all__ = [
    "AccessAttempt",
    "AlertEvent",
    "FlowEvent",
    "NotificationSettings",
    "Direction",
    "RuleDescriptor",
]

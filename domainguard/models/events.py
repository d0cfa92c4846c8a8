"""Event and notification data models.

AlertEvent and FlowEvent are read-only records parsed from the IDS log.
AccessAttempt and NotificationSettings are the monitor's own state.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class AlertEvent:
    """An IDS alert record (Suricata EVE `event_type == "alert"`)."""

    timestamp: str
    src_ip: Optional[str] = None
    dest_ip: Optional[str] = None
    src_port: Optional[int] = None
    dest_port: Optional[int] = None
    signature: Optional[str] = None
    category: Optional[str] = None
    severity: Optional[int] = None


@dataclass(frozen=True)
class FlowEvent:
    """An IDS flow record (Suricata EVE `event_type == "flow"`)."""

    src_ip: str
    dest_ip: str
    src_port: int = 0
    dest_port: int = 0
    protocol: str = ""
    bytes_toserver: int = 0
    bytes_toclient: int = 0
    pkts_toserver: int = 0
    pkts_toclient: int = 0
    start_time: str = ""
    end_time: str = ""


@dataclass
class AccessAttempt:
    """Tracks repeated contact with one blocked (domain, ip) pair.

    Attributes:
        key: "domain:ip"
        first_seen: Clock value of the first observed match
        last_seen: Clock value of the most recent match (drives inactivity purge)
        last_notified_at: Clock value of the last dispatched notification
        count: Number of matches observed
    """

    key: str
    domain: str
    ip: str
    first_seen: float
    last_seen: float
    last_notified_at: float
    count: int = 1


@dataclass
class NotificationSettings:
    """User-visible notification behaviour.

    Mutable at any time; readers take a fresh copy on every use.
    """

    enabled: bool = True
    delay_seconds: int = 2
    cooldown_seconds: int = 30

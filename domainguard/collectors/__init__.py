"""Collectors for external alert sources."""

from domainguard.collectors.suricata import (
    SuricataAlertSource,
    SuricataConfig,
    split_eve_log,
)

__all__ = [
    "SuricataAlertSource",
    "SuricataConfig",
    "split_eve_log",
]

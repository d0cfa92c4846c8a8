"""Configuration loading for domainguard.

Loads settings from TOML config file with CLI override support.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import tomli

from domainguard.collectors.suricata import default_log_dir
from domainguard.firewall.rules import BACKENDS, DEFAULT_MAX_ORDINAL
from domainguard.storage.store import default_data_dir

logger = logging.getLogger(__name__)


def get_default_config_path() -> Path:
    """Get the default config file path."""
    return Path.home() / ".config" / "domainguard" / "domainguard.toml"


def get_config_search_paths() -> list[Path]:
    """Get list of paths to search for config file."""
    return [
        Path("domainguard.toml"),  # Current directory
        Path.home() / ".config" / "domainguard" / "domainguard.toml",
        Path("/etc/domainguard/domainguard.toml"),
    ]


def find_config_file() -> Optional[Path]:
    """Find the first existing config file."""
    for path in get_config_search_paths():
        if path.exists():
            return path
    return None


@dataclass
class Config:
    """Loaded configuration with all sections."""

    # Storage
    data_dir: Path = field(default_factory=default_data_dir)

    # Firewall
    firewall_backend: str = "auto"  # "auto", "netsh" or "iptables"
    max_unblock_ordinal: int = DEFAULT_MAX_ORDINAL
    command_timeout: float = 60.0
    dry_run: bool = False

    # Resolver
    nslookup_command: str = "nslookup"
    dns_server: Optional[str] = None

    # Monitor
    poll_interval: float = 5.0
    sweep_interval: float = 300.0
    attempt_ttl: float = 600.0
    reverse_cache_ttl: float = 3600.0  # 1 hour
    suricata_log_dir: Path = field(default_factory=default_log_dir)
    eve_file: str = "eve.json"

    # Notifications
    notifications_enabled: bool = True
    notification_delay_seconds: int = 2
    notification_cooldown_seconds: int = 30

    # Slack
    slack_enabled: bool = False
    slack_webhook_url: Optional[str] = None

    @property
    def backend(self) -> Optional[str]:
        """Concrete firewall backend, or None to pick by platform."""
        return None if self.firewall_backend == "auto" else self.firewall_backend


def load_config(config_path: Optional[Path] = None) -> Config:
    """Load configuration from TOML file.

    Args:
        config_path: Explicit path to config file, or None to search

    Returns:
        Config object with loaded values
    """
    config = Config()

    # Find config file
    if config_path is None:
        config_path = find_config_file()

    if config_path is None or not config_path.exists():
        logger.debug("No config file found, using defaults")
        return config

    logger.info(f"Loading config from {config_path}")

    try:
        with open(config_path, "rb") as f:
            data = tomli.load(f)
    except (OSError, tomli.TOMLDecodeError) as e:
        logger.warning(f"Failed to load config file: {e}")
        return config

    # Storage section
    if "storage" in data:
        storage = data["storage"]
        if "data_dir" in storage:
            config.data_dir = Path(storage["data_dir"]).expanduser()

    # Firewall section
    if "firewall" in data:
        fw = data["firewall"]
        if "backend" in fw:
            backend = fw["backend"]
            if backend == "auto" or backend in BACKENDS:
                config.firewall_backend = backend
            else:
                logger.warning(f"Unknown firewall backend {backend!r}, using auto")
        if "max_unblock_ordinal" in fw:
            config.max_unblock_ordinal = fw["max_unblock_ordinal"]
        if "command_timeout" in fw:
            config.command_timeout = fw["command_timeout"]
        if "dry_run" in fw:
            config.dry_run = fw["dry_run"]

    # Resolver section
    if "resolver" in data:
        resolver = data["resolver"]
        if "nslookup_command" in resolver:
            config.nslookup_command = resolver["nslookup_command"]
        if "dns_server" in resolver:
            config.dns_server = resolver["dns_server"]

    # Monitor section
    if "monitor" in data:
        monitor = data["monitor"]
        if "poll_interval" in monitor:
            config.poll_interval = monitor["poll_interval"]
        if "sweep_interval" in monitor:
            config.sweep_interval = monitor["sweep_interval"]
        if "attempt_ttl" in monitor:
            config.attempt_ttl = monitor["attempt_ttl"]
        if "reverse_cache_ttl" in monitor:
            config.reverse_cache_ttl = monitor["reverse_cache_ttl"]
        if "suricata_log_dir" in monitor:
            config.suricata_log_dir = Path(monitor["suricata_log_dir"]).expanduser()
        if "eve_file" in monitor:
            config.eve_file = monitor["eve_file"]

    # Notifications section
    if "notifications" in data:
        notif = data["notifications"]
        if "enabled" in notif:
            config.notifications_enabled = notif["enabled"]
        if "delay_seconds" in notif:
            config.notification_delay_seconds = notif["delay_seconds"]
        if "cooldown_seconds" in notif:
            config.notification_cooldown_seconds = notif["cooldown_seconds"]

    # Slack section
    if "slack" in data:
        slack = data["slack"]
        if "enabled" in slack:
            config.slack_enabled = slack["enabled"]
        if "webhook_url" in slack:
            config.slack_webhook_url = slack["webhook_url"]

    return config


def merge_cli_options(config: Config, **cli_options: Any) -> Config:
    """Merge CLI options into config (CLI takes precedence).

    Args:
        config: Base config from file
        **cli_options: CLI option overrides (None values are ignored)

    Returns:
        Config with CLI overrides applied
    """
    # Map CLI option names to config attributes
    mappings = {
        "data_dir": "data_dir",
        "backend": "firewall_backend",
        "dry_run": "dry_run",
        "poll_interval": "poll_interval",
        "log_dir": "suricata_log_dir",
        "notify": "notifications_enabled",
        "delay": "notification_delay_seconds",
        "cooldown": "notification_cooldown_seconds",
    }

    for cli_name, config_name in mappings.items():
        if cli_name in cli_options:
            value = cli_options[cli_name]
            # Only override if CLI value is meaningful
            if value is not None and value != "":
                if cli_name in ("data_dir", "log_dir"):
                    value = Path(value).expanduser()
                setattr(config, config_name, value)

    return config

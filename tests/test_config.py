"""Tests for configuration loading."""

from pathlib import Path

from domainguard.config import Config, load_config, merge_cli_options


class TestLoadConfig:
    """Tests for TOML config loading."""

    def test_defaults_when_missing(self, tmp_path: Path) -> None:
        config = load_config(tmp_path / "nope.toml")

        assert config.firewall_backend == "auto"
        assert config.backend is None
        assert config.poll_interval == 5.0
        assert config.sweep_interval == 300.0
        assert config.attempt_ttl == 600.0
        assert config.notifications_enabled is True
        assert config.notification_delay_seconds == 2
        assert config.notification_cooldown_seconds == 30
        assert config.max_unblock_ordinal == 20

    def test_sections(self, tmp_path: Path) -> None:
        path = tmp_path / "domainguard.toml"
        path.write_text(
            """
[storage]
data_dir = "/var/lib/domainguard"

[firewall]
backend = "iptables"
max_unblock_ordinal = 50
dry_run = true

[resolver]
dns_server = "1.1.1.1"

[monitor]
poll_interval = 2
suricata_log_dir = "/var/log/suricata"

[notifications]
enabled = false
delay_seconds = 0
cooldown_seconds = 120

[slack]
enabled = true
webhook_url = "https://hooks.example.test/x"
"""
        )

        config = load_config(path)

        assert config.data_dir == Path("/var/lib/domainguard")
        assert config.backend == "iptables"
        assert config.max_unblock_ordinal == 50
        assert config.dry_run is True
        assert config.dns_server == "1.1.1.1"
        assert config.poll_interval == 2
        assert config.suricata_log_dir == Path("/var/log/suricata")
        assert config.notifications_enabled is False
        assert config.notification_delay_seconds == 0
        assert config.notification_cooldown_seconds == 120
        assert config.slack_enabled is True
        assert config.slack_webhook_url == "https://hooks.example.test/x"

    def test_unknown_backend_falls_back_to_auto(self, tmp_path: Path) -> None:
        path = tmp_path / "domainguard.toml"
        path.write_text('[firewall]\nbackend = "pf"\n')

        assert load_config(path).firewall_backend == "auto"

    def test_invalid_toml_gives_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "domainguard.toml"
        path.write_text("[firewall\nbackend = ")

        assert load_config(path).firewall_backend == "auto"


class TestMergeCliOptions:
    def test_overrides_and_none_ignored(self, tmp_path: Path) -> None:
        config = Config()

        merge_cli_options(
            config,
            data_dir=str(tmp_path),
            poll_interval=1.5,
            notify=False,
            delay=None,
            cooldown=10,
        )

        assert config.data_dir == tmp_path
        assert config.poll_interval == 1.5
        assert config.notifications_enabled is False
        assert config.notification_delay_seconds == 2
        assert config.notification_cooldown_seconds == 10

"""Tests for the Suricata EVE log collector."""

import json
from pathlib import Path

import pytest

from domainguard.collectors.suricata import (
    SuricataAlertSource,
    SuricataConfig,
    parse_alert,
    parse_flow,
    split_eve_log,
)


def alert_record(dest_ip: str, signature: str = "ET TEST") -> dict:
    return {
        "timestamp": "2024-01-26T14:32:15.000000+0000",
        "event_type": "alert",
        "src_ip": "192.168.1.10",
        "src_port": 50000,
        "dest_ip": dest_ip,
        "dest_port": 443,
        "proto": "TCP",
        "alert": {"signature": signature, "category": "Policy", "severity": 2},
    }


def flow_record(dest_ip: str) -> dict:
    return {
        "timestamp": "2024-01-26T14:32:16.000000+0000",
        "event_type": "flow",
        "src_ip": "192.168.1.10",
        "src_port": 50000,
        "dest_ip": dest_ip,
        "dest_port": 443,
        "proto": "TCP",
        "flow": {
            "bytes_toserver": 120,
            "bytes_toclient": 4000,
            "pkts_toserver": 3,
            "pkts_toclient": 5,
            "start": "2024-01-26T14:32:10.000000+0000",
            "end": "2024-01-26T14:32:16.000000+0000",
        },
    }


def append(path: Path, *records: dict) -> None:
    with open(path, "a", encoding="utf-8") as f:
        for record in records:
            f.write(json.dumps(record) + "\n")


@pytest.fixture()
def config(tmp_path: Path) -> SuricataConfig:
    """Provide a collector config pointing at a temp log directory."""
    return SuricataConfig(log_dir=tmp_path)


class TestParsing:
    def test_parse_alert(self) -> None:
        event = parse_alert(alert_record("93.184.216.34"))

        assert event.dest_ip == "93.184.216.34"
        assert event.dest_port == 443
        assert event.signature == "ET TEST"
        assert event.category == "Policy"
        assert event.severity == 2

    def test_parse_alert_missing_fields(self) -> None:
        event = parse_alert({"event_type": "alert", "dest_port": "443"})

        assert event.timestamp == ""
        assert event.dest_ip is None
        assert event.dest_port is None
        assert event.signature is None

    def test_parse_flow(self) -> None:
        event = parse_flow(flow_record("93.184.216.34"))

        assert event.protocol == "TCP"
        assert event.bytes_toclient == 4000
        assert event.pkts_toserver == 3
        assert event.start_time.startswith("2024-01-26T14:32:10")


class TestSuricataAlertSource:
    """Tests for incremental reads."""

    def test_missing_directory_unavailable(self, tmp_path: Path) -> None:
        source = SuricataAlertSource(SuricataConfig(log_dir=tmp_path / "missing"))

        assert not source.is_available()
        assert source.read_alert_events() == []

    def test_missing_file_gives_no_events(self, config: SuricataConfig) -> None:
        source = SuricataAlertSource(config)

        assert source.is_available()
        assert source.read_alert_events() == []

    def test_only_new_records_returned(self, config: SuricataConfig) -> None:
        eve = config.log_dir / "eve.json"
        append(eve, alert_record("10.0.0.1"), flow_record("10.0.0.1"))
        source = SuricataAlertSource(config)

        first = source.read_alert_events()
        append(eve, alert_record("10.0.0.2"))
        second = source.read_alert_events()
        third = source.read_alert_events()

        assert [a.dest_ip for a in first] == ["10.0.0.1"]
        assert [a.dest_ip for a in second] == ["10.0.0.2"]
        assert third == []

    def test_alert_and_flow_offsets_are_independent(self, config: SuricataConfig) -> None:
        append(config.log_dir / "eve.json", alert_record("10.0.0.1"), flow_record("10.0.0.1"))
        source = SuricataAlertSource(config)

        source.read_alert_events()
        flows = source.read_flow_events()

        assert [f.dest_ip for f in flows] == ["10.0.0.1"]

    def test_malformed_lines_skipped(self, config: SuricataConfig) -> None:
        eve = config.log_dir / "eve.json"
        eve.write_text("not json\n")
        append(eve, alert_record("10.0.0.1"))

        assert [a.dest_ip for a in SuricataAlertSource(config).read_alert_events()] == ["10.0.0.1"]

    def test_partial_line_read_later(self, config: SuricataConfig) -> None:
        eve = config.log_dir / "eve.json"
        line = json.dumps(alert_record("10.0.0.1"))
        eve.write_text(line[:20])
        source = SuricataAlertSource(config)

        assert source.read_alert_events() == []

        eve.write_text(line + "\n")
        assert [a.dest_ip for a in source.read_alert_events()] == ["10.0.0.1"]

    def test_truncated_file_read_from_start(self, config: SuricataConfig) -> None:
        eve = config.log_dir / "eve.json"
        append(eve, alert_record("10.0.0.1"), alert_record("10.0.0.2"))
        source = SuricataAlertSource(config)
        source.read_alert_events()

        eve.write_text(json.dumps(alert_record("10.0.0.3")) + "\n")

        assert [a.dest_ip for a in source.read_alert_events()] == ["10.0.0.3"]

    def test_seek_to_end_skips_existing(self, config: SuricataConfig) -> None:
        eve = config.log_dir / "eve.json"
        append(eve, alert_record("10.0.0.1"))
        source = SuricataAlertSource(config)

        source.seek_to_end()
        append(eve, alert_record("10.0.0.2"))

        assert [a.dest_ip for a in source.read_alert_events()] == ["10.0.0.2"]

    def test_reset_rereads(self, config: SuricataConfig) -> None:
        append(config.log_dir / "eve.json", alert_record("10.0.0.1"))
        source = SuricataAlertSource(config)
        source.read_alert_events()

        source.reset()

        assert len(source.read_alert_events()) == 1

    def test_batch_size_limits_read(self, tmp_path: Path) -> None:
        config = SuricataConfig(log_dir=tmp_path, batch_size=2)
        append(tmp_path / "eve.json", *[alert_record(f"10.0.0.{i}") for i in range(1, 6)])
        source = SuricataAlertSource(config)

        assert len(source.read_alert_events()) == 2
        assert len(source.read_alert_events()) == 2
        assert len(source.read_alert_events()) == 1

    def test_split_file_preferred(self, config: SuricataConfig) -> None:
        append(config.log_dir / "eve.json", alert_record("10.0.0.1"))
        append(config.log_dir / "alert.json", alert_record("10.0.0.9"))

        events = SuricataAlertSource(config).read_alert_events()

        assert [a.dest_ip for a in events] == ["10.0.0.9"]


class TestSplitEveLog:
    def test_split(self, config: SuricataConfig) -> None:
        eve = config.log_dir / "eve.json"
        append(eve, alert_record("10.0.0.1"), flow_record("10.0.0.1"), {"event_type": "dns"})

        counts = split_eve_log(config)

        assert counts == {"alert": 1, "flow": 1}
        assert eve.read_text() == ""
        assert len((config.log_dir / "alert.json").read_text().splitlines()) == 1
        assert len((config.log_dir / "flow.json").read_text().splitlines()) == 1

    def test_missing_eve(self, config: SuricataConfig) -> None:
        assert split_eve_log(config) == {"alert": 0, "flow": 0}

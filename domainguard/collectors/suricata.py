"""Suricata EVE log collector.

Reads alert and flow records produced by an externally running Suricata
process. Only records appended since the previous read are returned, so
the access monitor can poll cheaply. A missing log file simply means no
events.

Suricata writes all record types to eve.json. Some deployments split them
into alert.json and flow.json first (see split_eve_log); when those files
exist they are preferred.
"""

import json
import logging
import tempfile
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator, Optional

from domainguard.models import AlertEvent, FlowEvent

logger = logging.getLogger(__name__)


def default_log_dir() -> Path:
    return Path(tempfile.gettempdir()) / "suricata_logs"


@dataclass
class SuricataConfig:
    """Configuration for the Suricata collector."""

    log_dir: Path = field(default_factory=default_log_dir)
    eve_file: str = "eve.json"
    alert_file: str = "alert.json"
    flow_file: str = "flow.json"

    # Upper bound on records returned per read
    batch_size: int = 1000


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    return None


def _as_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def parse_alert(record: dict) -> AlertEvent:
    """Convert an EVE alert record to an AlertEvent."""
    alert = record.get("alert")
    if not isinstance(alert, dict):
        alert = {}
    return AlertEvent(
        timestamp=_as_str(record.get("timestamp")) or "",
        src_ip=_as_str(record.get("src_ip")),
        dest_ip=_as_str(record.get("dest_ip")),
        src_port=_as_int(record.get("src_port")),
        dest_port=_as_int(record.get("dest_port")),
        signature=_as_str(alert.get("signature")),
        category=_as_str(alert.get("category")),
        severity=_as_int(alert.get("severity")),
    )


def parse_flow(record: dict) -> FlowEvent:
    """Convert an EVE flow record to a FlowEvent."""
    flow = record.get("flow")
    if not isinstance(flow, dict):
        flow = {}
    return FlowEvent(
        src_ip=_as_str(record.get("src_ip")) or "",
        dest_ip=_as_str(record.get("dest_ip")) or "",
        src_port=_as_int(record.get("src_port")) or 0,
        dest_port=_as_int(record.get("dest_port")) or 0,
        protocol=_as_str(record.get("proto")) or "",
        bytes_toserver=_as_int(flow.get("bytes_toserver")) or 0,
        bytes_toclient=_as_int(flow.get("bytes_toclient")) or 0,
        pkts_toserver=_as_int(flow.get("pkts_toserver")) or 0,
        pkts_toclient=_as_int(flow.get("pkts_toclient")) or 0,
        start_time=_as_str(flow.get("start")) or "",
        end_time=_as_str(flow.get("end")) or "",
    )


class SuricataAlertSource:
    """Incremental reader for Suricata EVE JSON logs.

    Keeps a byte offset per (file, event type); a file that shrinks is
    assumed rotated or truncated and is read again from the start.
    """

    def __init__(self, config: Optional[SuricataConfig] = None) -> None:
        self.config = config or SuricataConfig()
        self._offsets: dict[tuple[Path, str], int] = {}
        self._lock = threading.Lock()

    def is_available(self) -> bool:
        """Whether the Suricata log directory exists."""
        return self.config.log_dir.is_dir()

    def _path_for(self, event_type: str) -> Path:
        split_name = self.config.alert_file if event_type == "alert" else self.config.flow_file
        split_path = self.config.log_dir / split_name
        if split_path.exists():
            return split_path
        return self.config.log_dir / self.config.eve_file

    def read_alert_events(self) -> list[AlertEvent]:
        """Alert records appended since the last call."""
        return [parse_alert(r) for r in self._read_new("alert")]

    def read_flow_events(self) -> list[FlowEvent]:
        """Flow records appended since the last call."""
        return [parse_flow(r) for r in self._read_new("flow")]

    def reset(self) -> None:
        """Forget read positions; the next read starts from the beginning."""
        with self._lock:
            self._offsets.clear()

    def seek_to_end(self) -> None:
        """Skip everything already in the logs (used when monitoring starts)."""
        with self._lock:
            for event_type in ("alert", "flow"):
                path = self._path_for(event_type)
                try:
                    self._offsets[(path, event_type)] = path.stat().st_size
                except FileNotFoundError:
                    self._offsets[(path, event_type)] = 0

    def _read_new(self, event_type: str) -> list[dict]:
        path = self._path_for(event_type)
        key = (path, event_type)

        with self._lock:
            offset = self._offsets.get(key, 0)

        try:
            size = path.stat().st_size
        except FileNotFoundError:
            return []

        if size < offset:
            logger.debug(f"{path} shrank ({size} < {offset}), reading from start")
            offset = 0

        records: list[dict] = []
        try:
            with open(path, "rb") as f:
                f.seek(offset)
                for record, end in self._iter_records(f, event_type):
                    records.append(record)
                    offset = end
                    if len(records) >= self.config.batch_size:
                        break
                else:
                    offset = f.tell()
        except OSError as e:
            logger.warning(f"Failed to read {path}: {e}")
            return records

        with self._lock:
            self._offsets[key] = offset
        return records

    @staticmethod
    def _iter_records(f, event_type: str) -> Iterator[tuple[dict, int]]:
        """Yield (record, offset after record) for complete lines of the given type."""
        while True:
            start = f.tell()
            line = f.readline()
            if not line:
                return
            if not line.endswith(b"\n"):
                # Partial line still being written; re-read it next time
                f.seek(start)
                return
            try:
                record = json.loads(line)
            except (json.JSONDecodeError, UnicodeDecodeError):
                logger.debug(f"Skipping malformed EVE line at offset {start}")
                continue
            if isinstance(record, dict) and record.get("event_type") == event_type:
                yield record, f.tell()


def split_eve_log(config: SuricataConfig) -> dict[str, int]:
    """Move alert and flow records from eve.json into alert.json / flow.json.

    eve.json is truncated afterwards so Suricata keeps appending to an
    empty file.

    Returns:
        Number of lines moved per event type
    """
    eve_path = config.log_dir / config.eve_file
    counts = {"alert": 0, "flow": 0}
    if not eve_path.exists():
        return counts

    alert_path = config.log_dir / config.alert_file
    flow_path = config.log_dir / config.flow_file

    with open(eve_path, "rb") as eve, open(alert_path, "ab") as alerts, open(flow_path, "ab") as flows:
        for line in eve:
            try:
                record = json.loads(line)
            except (json.JSONDecodeError, UnicodeDecodeError):
                continue
            if not isinstance(record, dict):
                continue
            if not line.endswith(b"\n"):
                line += b"\n"
            event_type = record.get("event_type")
            if event_type == "alert":
                alerts.write(line)
                counts["alert"] += 1
            elif event_type == "flow":
                flows.write(line)
                counts["flow"] += 1

    with open(eve_path, "wb"):
        pass

    logger.debug(f"Split {counts['alert']} alerts and {counts['flow']} flows out of {eve_path}")
    return counts

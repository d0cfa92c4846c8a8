"""Blocked-domain store.

The in-memory set is authoritative for the running process. Every mutation
is written to disk afterwards; a failed write is logged and the mutation
stays in effect, so memory and disk can diverge until the next successful
write.

Files (both under the data directory):
    blocked_domains.json  JSON array of domain strings, insertion order
    blocked_rules.json    JSON object, domain -> list of rule identifiers
                          created when the domain was blocked
"""

import json
import logging
import os
import threading
from pathlib import Path
from typing import Iterable, Optional

from domainguard.exceptions import PersistenceError
from domainguard.validation import normalize_domain

logger = logging.getLogger(__name__)

DOMAINS_FILENAME = "blocked_domains.json"
RULES_FILENAME = "blocked_rules.json"


def default_data_dir() -> Path:
    return Path.home() / ".local" / "share" / "domainguard"


def _atomic_write_json(path: Path, data: object) -> None:
    """Write JSON to a temp file, then rename over the target."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        temp_file = path.with_suffix(".tmp")
        with open(temp_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.replace(temp_file, path)
    except OSError as e:
        raise PersistenceError(
            code="io_error",
            message=f"Failed to write {path}: {e}",
            details={"file_path": str(path)},
        ) from e


def _read_json(path: Path) -> object:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise PersistenceError(
            code="parse_error",
            message=f"Failed to parse {path}: {e}",
            details={"file_path": str(path)},
        ) from e
    except OSError as e:
        raise PersistenceError(
            code="io_error",
            message=f"Failed to read {path}: {e}",
            details={"file_path": str(path)},
        ) from e


class BlockedDomainStore:
    """Thread-safe set of blocked domains, persisted as a JSON list.

    Usage:
        store = BlockedDomainStore.open(data_dir)
        store.add("example.test")
        "example.test" in store  # True
    """

    def __init__(self, path: Path, rules_path: Optional[Path] = None) -> None:
        self.path = Path(path)
        self.rules_path = Path(rules_path) if rules_path else self.path.with_name(RULES_FILENAME)
        self._domains: list[str] = []
        self._rules: dict[str, list[str]] = {}
        self._lock = threading.Lock()
        # Serializes disk writes so an older snapshot never overwrites a newer one
        self._write_lock = threading.Lock()

    @classmethod
    def open(cls, data_dir: Optional[Path] = None) -> "BlockedDomainStore":
        """Create a store under data_dir and load persisted state."""
        data_dir = Path(data_dir).expanduser() if data_dir else default_data_dir()
        store = cls(data_dir / DOMAINS_FILENAME, data_dir / RULES_FILENAME)
        store.load()
        return store

    def load(self) -> None:
        """Load persisted state. Missing files give an empty store."""
        domains = self._load_domains()
        rules = self._load_rules()
        with self._lock:
            self._domains = domains
            self._rules = {d: ids for d, ids in rules.items() if d in domains}
        logger.info(f"Loaded {len(domains)} blocked domains from {self.path}")

    def _load_domains(self) -> list[str]:
        if not self.path.exists():
            logger.debug(f"No blocked-domain file at {self.path}, starting empty")
            return []
        try:
            data = _read_json(self.path)
        except PersistenceError as e:
            logger.warning(f"{e.message}; starting with an empty blocked-domain list")
            return []
        if not isinstance(data, list):
            logger.warning(f"Ignoring {self.path}: expected a JSON array")
            return []

        domains: list[str] = []
        for item in data:
            if not isinstance(item, str):
                continue
            domain = normalize_domain(item)
            if domain and domain not in domains:
                domains.append(domain)
        return domains

    def _load_rules(self) -> dict[str, list[str]]:
        if not self.rules_path.exists():
            return {}
        try:
            data = _read_json(self.rules_path)
        except PersistenceError as e:
            logger.warning(f"{e.message}; ignoring rule index")
            return {}
        if not isinstance(data, dict):
            return {}
        return {
            normalize_domain(k): [str(r) for r in v]
            for k, v in data.items()
            if isinstance(k, str) and isinstance(v, list)
        }

    def add(self, domain: str) -> bool:
        """Add a domain. Returns False if it was already present."""
        domain = normalize_domain(domain)
        with self._lock:
            if domain in self._domains:
                logger.debug(f"Domain {domain} already in blocked domains list")
                return False
            self._domains.append(domain)
        logger.debug(f"Added {domain} to blocked domains list")
        self._persist()
        return True

    def remove(self, domain: str) -> bool:
        """Remove a domain and its recorded rules. Returns False if it was absent."""
        domain = normalize_domain(domain)
        with self._lock:
            if domain not in self._domains:
                logger.debug(f"Domain {domain} was not in the blocked domains list")
                return False
            self._domains.remove(domain)
            self._rules.pop(domain, None)
        logger.debug(f"Removed {domain} from blocked domains list")
        self._persist()
        return True

    def contains(self, domain: str) -> bool:
        domain = normalize_domain(domain)
        with self._lock:
            return domain in self._domains

    def snapshot(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._domains)

    def record_rules(self, domain: str, rule_ids: Iterable[str]) -> None:
        """Remember the rule identifiers created for a domain."""
        domain = normalize_domain(domain)
        with self._lock:
            known = self._rules.setdefault(domain, [])
            for rid in rule_ids:
                if rid not in known:
                    known.append(rid)
        self._persist()

    def rule_ids(self, domain: str) -> list[str]:
        with self._lock:
            return list(self._rules.get(normalize_domain(domain), []))

    def forget_rules(self, domain: str) -> None:
        with self._lock:
            removed = self._rules.pop(normalize_domain(domain), None)
        if removed is not None:
            self._persist()

    def _persist(self) -> bool:
        """Write current state to disk. Failures are logged, not raised."""
        with self._write_lock:
            with self._lock:
                domains = list(self._domains)
                rules = {d: list(ids) for d, ids in self._rules.items()}
            try:
                _atomic_write_json(self.path, domains)
                _atomic_write_json(self.rules_path, rules)
            except PersistenceError as e:
                logger.error(f"Failed to persist blocked domains: {e.message}")
                return False
        return True

    def __contains__(self, domain: object) -> bool:
        return isinstance(domain, str) and self.contains(domain)

    def __len__(self) -> int:
        with self._lock:
            return len(self._domains)

    # Defined last: inside the class body this name shadows the builtin
    def list(self) -> "list[str]":
        """Blocked domains in insertion order."""
        with self._lock:
            return [d for d in self._domains]

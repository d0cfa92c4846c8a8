"""Tests for the persisted blocked-domain store."""

import json
from pathlib import Path

import pytest

from domainguard.storage import BlockedDomainStore
from domainguard.storage.store import DOMAINS_FILENAME, RULES_FILENAME


@pytest.fixture()
def store(tmp_path: Path) -> BlockedDomainStore:
    """Provide an empty store under a temp directory."""
    return BlockedDomainStore.open(tmp_path)


class TestBlockedDomainStore:
    """Tests for add/remove/list and persistence."""

    def test_missing_file_gives_empty_store(self, store: BlockedDomainStore) -> None:
        assert store.list() == []
        assert len(store) == 0

    def test_add_is_idempotent(self, store: BlockedDomainStore) -> None:
        assert store.add("example.test") is True
        assert store.add("EXAMPLE.test.") is False
        assert store.list() == ["example.test"]

    def test_remove(self, store: BlockedDomainStore) -> None:
        store.add("example.test")

        assert store.remove("example.test") is True
        assert store.remove("example.test") is False
        assert "example.test" not in store

    def test_insertion_order(self, store: BlockedDomainStore) -> None:
        for domain in ("b.test", "a.test", "c.test"):
            store.add(domain)

        assert store.list() == ["b.test", "a.test", "c.test"]
        assert store.snapshot() == frozenset({"a.test", "b.test", "c.test"})

    def test_written_as_json_array(self, tmp_path: Path, store: BlockedDomainStore) -> None:
        store.add("example.test")
        store.add("other.test")

        data = json.loads((tmp_path / DOMAINS_FILENAME).read_text())
        assert data == ["example.test", "other.test"]

    def test_reload_round_trip(self, tmp_path: Path, store: BlockedDomainStore) -> None:
        store.add("example.test")
        store.add("other.test")
        store.remove("example.test")

        reloaded = BlockedDomainStore.open(tmp_path)

        assert reloaded.list() == ["other.test"]

    def test_corrupt_file_gives_empty_store(self, tmp_path: Path) -> None:
        (tmp_path / DOMAINS_FILENAME).write_text("{not json")

        store = BlockedDomainStore.open(tmp_path)

        assert store.list() == []

    def test_non_string_entries_skipped(self, tmp_path: Path) -> None:
        (tmp_path / DOMAINS_FILENAME).write_text(json.dumps(["Example.TEST", 42, "example.test", None]))

        store = BlockedDomainStore.open(tmp_path)

        assert store.list() == ["example.test"]

    def test_write_failure_keeps_memory_state(self, tmp_path: Path) -> None:
        # A directory where the file should be makes every write fail
        data_dir = tmp_path / "data"
        data_dir.mkdir()
        (data_dir / DOMAINS_FILENAME).mkdir()
        store = BlockedDomainStore(data_dir / DOMAINS_FILENAME)

        assert store.add("example.test") is True
        assert store.contains("example.test")
        assert store.list() == ["example.test"]


class TestRuleIndex:
    """Tests for the recorded rule identifiers."""

    def test_record_and_read(self, store: BlockedDomainStore) -> None:
        store.add("example.test")
        store.record_rules("example.test", ["Block-Domain-example.test-Out", "Block-Domain-example.test-In"])
        store.record_rules("example.test", ["Block-Domain-example.test-Out"])

        assert store.rule_ids("example.test") == [
            "Block-Domain-example.test-Out",
            "Block-Domain-example.test-In",
        ]

    def test_persisted_alongside_domains(self, tmp_path: Path, store: BlockedDomainStore) -> None:
        store.add("example.test")
        store.record_rules("example.test", ["Block-Domain-example.test-Out-1"])

        data = json.loads((tmp_path / RULES_FILENAME).read_text())
        assert data == {"example.test": ["Block-Domain-example.test-Out-1"]}

        reloaded = BlockedDomainStore.open(tmp_path)
        assert reloaded.rule_ids("example.test") == ["Block-Domain-example.test-Out-1"]

    def test_rules_dropped_with_domain(self, store: BlockedDomainStore) -> None:
        store.add("example.test")
        store.record_rules("example.test", ["Block-Domain-example.test-Out"])

        store.remove("example.test")

        assert store.rule_ids("example.test") == []

    def test_rules_for_unlisted_domain_ignored_on_load(self, tmp_path: Path) -> None:
        (tmp_path / DOMAINS_FILENAME).write_text(json.dumps(["kept.test"]))
        (tmp_path / RULES_FILENAME).write_text(
            json.dumps({"kept.test": ["Block-Domain-kept.test-Out"], "gone.test": ["x"]})
        )

        store = BlockedDomainStore.open(tmp_path)

        assert store.rule_ids("kept.test") == ["Block-Domain-kept.test-Out"]
        assert store.rule_ids("gone.test") == []

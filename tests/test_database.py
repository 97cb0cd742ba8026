"""
History Store Tests

Idempotent batch insert, full-text index sync, ranking and the
context/statistics queries.
"""

import unittest
import tempfile
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, select, text

from histvault.exceptions import StoreError
from histvault.history.parser import parse_history_text, disambiguate
from histvault.models import CommandRecord
from histvault.services.database import HistoryStore
from histvault.services.query_builder import SearchFilter

ORIGIN = "/home/user/.zsh_history"


def _record(command: str, timestamp: float, origin: str = ORIGIN) -> CommandRecord:
    return CommandRecord(origin=origin, timestamp=timestamp, text=command, duration=0)


def _texts(records):
    return [r.text for r in records]


# ============================================================
# INSERT
# ============================================================

def test_scenario_same_second_log_ingests_three_records(store):
    log = ": 1704384000:5;ls -la\n: 1704384000:2;git status\n: 1704384000:1;docker ps"
    records = disambiguate(parse_history_text(log), ORIGIN)

    assert store.insert_batch(records) == (3, 0)

    stored = sorted(store.recent(limit=10), key=lambda r: r.timestamp)
    assert [r.timestamp for r in stored] == pytest.approx([1704384000.000, 1704384000.001, 1704384000.002])
    assert _texts(stored) == ["ls -la", "git status", "docker ps"]
    assert [r.duration for r in stored] == [5, 2, 1]


def test_insert_is_idempotent(store):
    records = [_record(f"echo {i}", 1700000000 + i) for i in range(7)]

    assert store.insert_batch(records) == (7, 0)
    assert store.insert_batch(records) == (0, 7)
    assert store.stats().total_records == 7


def test_insert_mixed_new_and_existing(store):
    store.insert_batch([_record("a", 1.0), _record("b", 2.0)])

    inserted, skipped = store.insert_batch([_record("b", 2.0), _record("c", 3.0)])

    assert (inserted, skipped) == (1, 1)


def test_same_timestamp_different_origin_is_distinct(store):
    inserted, _ = store.insert_batch([
        _record("ls", 100.0, origin="/a/.zsh_history"),
        _record("ls", 100.0, origin="/b/.zsh_history"),
    ])

    assert inserted == 2


def test_empty_batch(store):
    assert store.insert_batch([]) == (0, 0)


def test_sub_batches_cover_all_records(store):
    records = [_record(f"cmd {i}", 1000 + i) for i in range(5)]

    assert store.insert_batch(records, batch_size=2) == (5, 0)
    assert store.stats().total_records == 5


def test_failed_sub_batch_reports_committed_counts(store):
    records = [_record(f"cmd {i}", 1000 + i) for i in range(4)]
    failure = OperationalError("INSERT", {}, Exception("disk I/O error"))

    with patch.object(store, "_insert_chunk", side_effect=[2, failure]):
        with pytest.raises(StoreError) as exc_info:
            store.insert_batch(records, batch_size=2)

    assert exc_info.value.operation == "insert_batch"
    assert exc_info.value.inserted == 2
    assert exc_info.value.skipped == 0


# ============================================================
# SEARCH
# ============================================================

def test_scenario_git_query_excludes_other_commands(store):
    store.insert_batch([
        _record("git status", 100.0),
        _record("git commit", 200.0),
        _record("echo hi", 300.0),
    ])

    results = store.query(SearchFilter(query="git"))

    assert sorted(_texts(results)) == ["git commit", "git status"]


def test_better_match_ranks_ahead_of_newer_one(store):
    if not store.fts_enabled:
        pytest.skip("SQLite built without FTS5")

    store.insert_batch([
        _record("git", 100.0),
        _record("echo one two three four five six seven eight nine git ten", 200.0),
    ])

    results = store.query(SearchFilter(query="git"))

    assert _texts(results) == ["git", "echo one two three four five six seven eight nine git ten"]


def test_multiline_command_survives_storage(store):
    log = ": 1704384000:0;  cat <<EOF\n  a\n\tb\nEOF  \n: 1704384001:0;ls\n"
    store.insert_batch(disambiguate(parse_history_text(log), ORIGIN))

    assert _texts(store.recent(limit=10)) == ["ls", "cat <<EOF\n  a\n\tb\nEOF"]
    assert _texts(store.query(SearchFilter(query="cat"))) == ["cat <<EOF\n  a\n\tb\nEOF"]


def test_terms_are_prefix_matched_and_anded(store):
    store.insert_batch([
        _record("docker compose up -d", 100.0),
        _record("docker ps", 200.0),
        _record("compose files", 300.0),
    ])

    assert _texts(store.query(SearchFilter(query="dock comp"))) == ["docker compose up -d"]


def test_no_query_orders_by_recency_and_limits(store):
    store.insert_batch([_record(f"cmd {i}", 1000 + i) for i in range(10)])

    results = store.query(SearchFilter(limit=3))

    assert _texts(results) == ["cmd 9", "cmd 8", "cmd 7"]


def test_time_bounds_are_inclusive(store):
    store.insert_batch([_record(f"cmd {i}", float(i)) for i in range(1, 6)])

    results = store.query(SearchFilter(since=2, until=4))

    assert _texts(results) == ["cmd 4", "cmd 3", "cmd 2"]


def test_punctuation_only_query_applies_no_text_filter(store):
    store.insert_batch([_record("ls", 1.0), _record("pwd", 2.0)])

    assert len(store.query(SearchFilter(query='"*"'))) == 2


def test_query_text_is_not_sql(store):
    store.insert_batch([_record("select 1", 1.0)])

    results = store.query(SearchFilter(query="x'); DROP TABLE commands; --"))

    assert results == []
    assert store.stats().total_records == 1


def test_substring_fallback_without_fts(store):
    store.insert_batch([
        _record("git status", 100.0),
        _record("legit tool", 200.0),
        _record("echo hi", 300.0),
    ])
    store.fts_enabled = False

    results = store.query(SearchFilter(query="GIT"))

    assert _texts(results) == ["legit tool", "git status"]


# ============================================================
# CONTEXT QUERIES
# ============================================================

def test_recent_and_prefix(store):
    store.insert_batch([
        _record("git status", 1.0),
        _record("git push", 2.0),
        _record("ls", 3.0),
        _record("100%_done", 4.0),
    ])

    assert _texts(store.recent(limit=2)) == ["100%_done", "ls"]
    assert _texts(store.search_prefix("git")) == ["git push", "git status"]
    assert _texts(store.search_prefix("100%")) == ["100%_done"]


def test_frequent_groups_by_text(store):
    store.insert_batch([
        _record("ls", 1.0),
        _record("ls", 2.0),
        _record("ls", 3.0),
        _record("git status", 4.0),
        _record("git status", 5.0),
        _record("pwd", 6.0),
    ])

    assert store.frequent(limit=2) == [("ls", 3), ("git status", 2)]
    assert store.frequent(pattern="git") == [("git status", 2)]


def test_find_related_and_then_or(store):
    store.insert_batch([
        _record("docker ps", 1.0),
        _record("docker ps", 2.0),
        _record("docker compose up", 3.0),
        _record("git status", 4.0),
    ])

    assert store.find_related(["docker", "compose"]) == ["docker compose up"]
    assert store.find_related(["docker", "kubectl"]) == ["docker ps", "docker compose up"]


def test_find_related_ignores_short_keywords(store):
    store.insert_batch([_record("ps aux", 1.0)])

    assert store.find_related(["ps"]) == []


def test_stats_per_origin(store):
    store.insert_batch([
        _record("a", 1.0, origin="/a"),
        _record("b", 2.0, origin="/a"),
        _record("c", 3.0, origin="/b"),
    ])

    stats = store.stats()

    assert stats.total_records == 3
    assert stats.distinct_origins == 2
    assert stats.per_origin_counts == {"/a": 2, "/b": 1}


# ============================================================
# FULL-TEXT INDEX
# ============================================================

class TestTextIndexSync(unittest.TestCase):
    """The FTS5 index follows inserts, updates and deletes."""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.db_path = Path(self.tmpdir.name) / "index.db"
        self.store = HistoryStore(self.db_path)
        if not self.store.fts_enabled:
            self.skipTest("SQLite built without FTS5")

        self.store.insert_batch([
            _record("kubectl get pods", 1.0),
            _record("terraform plan", 2.0),
        ])

    def tearDown(self):
        self.store.close()
        self.tmpdir.cleanup()

    def _search(self, query):
        return _texts(self.store.query(SearchFilter(query=query)))

    def _integrity_check(self):
        with self.store.engine.begin() as connection:
            connection.execute(text("INSERT INTO commands_fts(commands_fts) VALUES('integrity-check')"))

    def test_update_reindexes_text(self):
        with Session(self.store.engine) as session:
            record = session.exec(select(CommandRecord).where(CommandRecord.text == "terraform plan")).one()
            record.text = "terraform apply"
            session.add(record)
            session.commit()

        self.assertEqual(self._search("apply"), ["terraform apply"])
        self.assertEqual(self._search("plan"), [])
        self._integrity_check()

    def test_delete_removes_from_index(self):
        with Session(self.store.engine) as session:
            record = session.exec(select(CommandRecord).where(CommandRecord.text == "kubectl get pods")).one()
            session.delete(record)
            session.commit()

        self.assertEqual(self._search("kubectl"), [])
        self._integrity_check()

    def test_index_created_over_existing_rows_is_rebuilt(self):
        with self.store.engine.begin() as connection:
            for trigger in ("commands_ai", "commands_ad", "commands_au"):
                connection.execute(text(f"DROP TRIGGER {trigger}"))
            connection.execute(text("DROP TABLE commands_fts"))
        self.store.close()

        self.store = HistoryStore(self.db_path)

        self.assertEqual(self._search("terraform"), ["terraform plan"])

    def test_rebuild_text_index(self):
        self.assertTrue(self.store.rebuild_text_index())
        self.assertEqual(self._search("kube"), ["kubectl get pods"])


def test_rebuild_without_fts_returns_false(store):
    store.fts_enabled = False

    assert store.rebuild_text_index() is False


def test_store_error_when_directory_cannot_be_created(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("not a directory")

    with pytest.raises(StoreError):
        HistoryStore(blocker / "sub" / "db.sqlite")


def test_engine_disposed_when_schema_creation_fails(tmp_path):
    engine = MagicMock()
    failure = StoreError("Failed to create tables", operation="open")

    with patch("histvault.services.database.create_engine", return_value=engine), \
            patch.object(HistoryStore, "_create_tables", side_effect=failure):
        with pytest.raises(StoreError):
            HistoryStore(tmp_path / "db.sqlite")

    engine.dispose.assert_called_once()

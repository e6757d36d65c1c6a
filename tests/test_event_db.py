"""Tests for event database operations."""

import sqlite3
import threading
from datetime import timedelta

import pytest

from netwatch._types import now_utc
from netwatch.event_db import EventDatabase


@pytest.fixture
def db(tmp_path):
    """Create a temporary database for testing."""
    return EventDatabase(tmp_path / "events.db")


class TestSchema:
    def test_wal_mode_enabled(self, db):
        conn = sqlite3.connect(db.db_path)
        mode = conn.execute("PRAGMA journal_mode").fetchone()[0]
        conn.close()
        assert mode.lower() == "wal"

    def test_creates_parent_directory(self, tmp_path):
        database = EventDatabase(tmp_path / "nested" / "dir" / "events.db")
        assert database.db_path.exists()


class TestSecurityEvents:
    """Tests for the append/query contract."""

    def test_append_returns_increasing_ids(self, db):
        first = db.append("file_integrity", "changed", {"file": "a"})
        second = db.append("file_integrity", "changed", {"file": "a"})

        assert second > first

    def test_round_trip_details(self, db):
        details = {"file": "/etc/hosts", "nested": {"values": [1, 2, 3]}}
        db.append("file_integrity", "File modification detected", details, severity="high")

        [record] = db.query()

        assert record.kind == "file_integrity"
        assert record.details == details
        assert record.severity == "high"

    def test_query_newest_first(self, db):
        base = now_utc()
        db.append("memory_anomaly", "old", {}, timestamp=base - timedelta(minutes=5))
        db.append("memory_anomaly", "new", {}, timestamp=base)

        assert [r.description for r in db.query()] == ["new", "old"]

    def test_filter_by_kind(self, db):
        db.append("memory_anomaly", "mem", {})
        db.append("covert_signal", "covert", {})

        records = db.query(kind="covert_signal")

        assert [r.kind for r in records] == ["covert_signal"]

    def test_filter_since(self, db):
        base = now_utc()
        db.append("covert_signal", "stale", {}, timestamp=base - timedelta(days=2))
        db.append("covert_signal", "fresh", {}, timestamp=base)

        records = db.query(since=base - timedelta(hours=1))

        assert [r.description for r in records] == ["fresh"]

    def test_limit(self, db):
        for i in range(5):
            db.append("covert_signal", f"event {i}", {})

        assert len(db.query(limit=3)) == 3

    def test_non_serializable_details_rejected(self, db):
        with pytest.raises(TypeError):
            db.append("covert_signal", "bad", {"obj": object()})

    def test_count_events(self, db):
        db.append("covert_signal", "a", {})
        db.append("covert_signal", "b", {})
        db.append("file_integrity", "c", {})

        counts = db.count_events()

        assert counts == {"covert_signal": 2, "file_integrity": 1, "total": 3}

    def test_concurrent_appends(self, db):
        """Appends from several threads all land."""
        def writer(n):
            for i in range(10):
                db.append("memory_anomaly", f"writer {n} #{i}", {"n": n})

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert db.count_events()["total"] == 40


class TestMemories:
    """Tests for telemetry records."""

    def test_store_and_search(self, db):
        db.store_memory("network_scan", [{"ip": "192.168.1.5"}])
        db.store_memory("system_stats", {"cpu": {"percent": 3.5}})

        scans = db.search_memories(memory_type="network_scan")

        assert len(scans) == 1
        assert scans[0]["data"] == [{"ip": "192.168.1.5"}]

    def test_search_by_substring(self, db):
        db.store_memory("network_scan", [{"ip": "192.168.1.5"}])
        db.store_memory("network_scan", [{"ip": "10.0.0.1"}])

        results = db.search_memories(query="10.0.0")

        assert len(results) == 1
        assert results[0]["data"][0]["ip"] == "10.0.0.1"

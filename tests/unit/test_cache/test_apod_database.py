"""
Unit tests for the SQLite APOD store.

Tests point lookups, the per-date uniqueness constraint, the access log
and the with-stats projection including its subscription mechanism.
"""

import pytest
from datetime import date, datetime, timedelta

from sqlalchemy.exc import IntegrityError

from apod.cache.apod_database import ApodDatabase
from apod.models.apod_data import AccessEvent, ApodRecord, MediaType


def _record(day: date, media_type: MediaType = MediaType.IMAGE) -> ApodRecord:
    return ApodRecord(
        date=day,
        title=f"APOD {day.isoformat()}",
        explanation="Explanation",
        media_type=media_type,
        url=f"https://apod.nasa.gov/apod/image/{day:%y%m}/pic{day:%d}.jpg",
        hd_url=None,
        copyright="NASA",
    )


class TestApodDatabase:
    """Test the local store."""

    def test_empty_database(self, database):
        """Test a new database is empty."""
        assert database.count() == 0
        assert database.select_by_date(date(2020, 1, 1)) is None
        assert database.select_all_with_stats() == []

    def test_creates_parent_directory(self, tmp_path):
        """Test the database directory is created."""
        db = ApodDatabase(tmp_path / "nested" / "dir" / "apod.db")
        try:
            assert (tmp_path / "nested" / "dir").is_dir()
        finally:
            db.close()

    def test_insert_and_select(self, database):
        """Test an inserted record round-trips with its generated id."""
        record = _record(date(2020, 1, 1))

        record_id = database.insert(record)
        stored = database.select_by_date(date(2020, 1, 1))

        assert isinstance(record_id, int)
        assert stored == record.with_id(record_id)
        assert database.select_by_id(record_id) == stored
        assert database.count() == 1

    def test_media_type_preserved(self, database):
        """Test the media type enum is stored and restored."""
        database.insert(_record(date(2020, 1, 2), MediaType.VIDEO))

        assert database.select_by_date(date(2020, 1, 2)).media_type == MediaType.VIDEO

    def test_unique_date(self, database):
        """Test at most one record per date."""
        database.insert(_record(date(2020, 1, 1)))

        with pytest.raises(IntegrityError):
            database.insert(_record(date(2020, 1, 1)))

        assert database.count() == 1

    def test_insert_access(self, database):
        """Test access events are appended."""
        record_id = database.insert(_record(date(2020, 1, 1)))

        first = database.insert_access(AccessEvent.now(record_id))
        second = database.insert_access(AccessEvent.now(record_id))

        assert second != first
        assert database.count_access(record_id) == 2

    def test_insert_access_unknown_record(self, database):
        """Test access events must reference a stored record."""
        with pytest.raises(IntegrityError):
            database.insert_access(AccessEvent.now(999))

    def test_select_all_with_stats(self, database):
        """Test the projection counts accesses and orders newest first."""
        older = database.insert(_record(date(2020, 1, 1)))
        newer = database.insert(_record(date(2020, 1, 3)))
        database.insert(_record(date(2020, 1, 2)))
        t0 = datetime(2024, 5, 1, 10, 0)
        database.insert_access(AccessEvent(apod_id=older, timestamp=t0))
        database.insert_access(AccessEvent(apod_id=older, timestamp=t0 + timedelta(hours=2)))
        database.insert_access(AccessEvent(apod_id=newer, timestamp=t0))

        stats = database.select_all_with_stats()

        assert [s.apod.date for s in stats] == [
            date(2020, 1, 3),
            date(2020, 1, 2),
            date(2020, 1, 1),
        ]
        assert [s.access_count for s in stats] == [1, 0, 2]
        assert stats[2].first_accessed == t0
        assert stats[2].last_accessed == t0 + timedelta(hours=2)
        assert stats[1].last_accessed is None

    def test_subscribe_receives_updates(self, database):
        """Test listeners get the current projection and every change."""
        received = []

        unsubscribe = database.subscribe(received.append)
        record_id = database.insert(_record(date(2020, 1, 1)))
        database.insert_access(AccessEvent.now(record_id))
        unsubscribe()
        database.insert(_record(date(2020, 1, 2)))

        assert len(received) == 3
        assert received[0] == []
        assert received[1][0].access_count == 0
        assert received[2][0].access_count == 1

    def test_failing_listener_does_not_break_writes(self, database):
        """Test a raising listener is logged and the write still succeeds."""
        calls = []

        def listener(snapshot):
            calls.append(snapshot)
            if len(calls) > 1:
                raise RuntimeError("listener broke")

        database.subscribe(listener)
        database.insert(_record(date(2020, 1, 1)))

        assert database.count() == 1
        assert len(calls) == 2

    def test_in_memory_database(self):
        """Test the in-memory variant shares one database."""
        db = ApodDatabase(":memory:")
        try:
            db.insert(_record(date(2020, 1, 1)))
            assert db.count() == 1
        finally:
            db.close()

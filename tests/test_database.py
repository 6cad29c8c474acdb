"""
Tests for the SQLite run database.
"""

import sqlite3
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from pdf_tracker_backend.errors import PersistenceError
from pdf_tracker_backend.models import RunRecord


def _record(run_id: str, identifiers, minutes: int = 0) -> RunRecord:
    return RunRecord(
        id=run_id,
        identifiers=identifiers,
        filename=f"generated_{run_id}.pdf",
        output_path=f"/tmp/generated_{run_id}.pdf",
        download_url=f"/uploads/generated_{run_id}.pdf",
        source_filename="scan.pdf",
        created_at=datetime(2024, 6, 15, tzinfo=timezone.utc) + timedelta(minutes=minutes),
    )


class TestRunRecords:
    """Tests for saving and reading run records."""

    def test_save_and_get(self, database):
        """A saved record reads back unchanged."""
        record = _record("a", ["CXM-061524-00001", "CXM-061524-00002"])
        database.save(record)
        assert database.get_run("a") == record

    def test_get_missing(self, database):
        """Unknown run IDs return None."""
        assert database.get_run("missing") is None

    def test_get_by_identifier(self, database):
        """Any identifier of a run leads back to it."""
        database.save(_record("a", ["CXM-061524-00001", "CXM-061524-00002"]))
        database.save(_record("b", ["CXM-061524-00003"]))
        assert database.get_by_identifier("CXM-061524-00002").id == "a"
        assert database.get_by_identifier("CXM-061524-00003").id == "b"
        assert database.get_by_identifier("CXM-061524-00004") is None

    def test_reused_identifier_points_at_latest_run(self, database):
        """After a counter reset the newest run owns a repeated identifier."""
        database.save(_record("old", ["CXM-061524-00001"]))
        database.save(_record("new", ["CXM-061524-00001"], minutes=5))
        assert database.get_by_identifier("CXM-061524-00001").id == "new"

    def test_list_newest_first(self, database):
        """Runs are listed by creation time, newest first."""
        database.save(_record("first", ["CXM-061524-00001"], minutes=0))
        database.save(_record("second", ["CXM-061524-00002"], minutes=10))
        assert [record.id for record in database.list_runs()] == ["second", "first"]

    def test_delete_run(self, database):
        """Deleting a run also drops its identifier index."""
        database.save(_record("a", ["CXM-061524-00001"]))
        assert database.delete_run("a") is True
        assert database.delete_run("a") is False
        assert database.get_by_identifier("CXM-061524-00001") is None

    def test_empty_run_round_trip(self, database):
        """A zero-page run is still recorded."""
        database.save(_record("empty", []))
        assert database.get_run("empty").identifiers == []

    def test_save_failure_raises_persistence_error(self, database):
        """SQLite failures are wrapped in PersistenceError."""
        with patch("pdf_tracker_backend.database.sqlite3.connect", side_effect=sqlite3.OperationalError("locked")):
            with pytest.raises(PersistenceError):
                database.save(_record("a", ["CXM-061524-00001"]))

    def test_delete_failure_raises_persistence_error(self, database):
        """Delete failures are wrapped like every other accessor."""
        with patch("pdf_tracker_backend.database.sqlite3.connect", side_effect=sqlite3.OperationalError("locked")):
            with pytest.raises(PersistenceError):
                database.delete_run("a")


class TestSequenceStorage:
    """Tests for the stored identifier counter."""

    def test_first_reservation_starts_at_initial_value(self, database):
        """An unknown sequence starts at the initial value."""
        assert database.get_sequence("content") is None
        assert database.reserve_sequence("content", 3, initial_value=1, maximum=99999) == 1
        assert database.get_sequence("content") == 3

    def test_reservations_continue(self, database):
        """Later reservations start after the stored value."""
        database.reserve_sequence("content", 3, initial_value=1, maximum=99999)
        assert database.reserve_sequence("content", 2, initial_value=1, maximum=99999) == 4
        assert database.get_sequence("content") == 5

    def test_sequences_are_independent(self, database):
        """Each named sequence keeps its own counter."""
        database.reserve_sequence("a", 5, initial_value=1, maximum=99999)
        assert database.reserve_sequence("b", 1, initial_value=1, maximum=99999) == 1

    def test_read_failure_raises_persistence_error(self, database):
        """Reading a stored counter wraps SQLite failures in PersistenceError."""
        with patch("pdf_tracker_backend.database.sqlite3.connect", side_effect=sqlite3.OperationalError("locked")):
            with pytest.raises(PersistenceError):
                database.get_sequence("content")

"""
SQLite foundation: schema creation, transactions and error translation.
"""

import sqlite3

import pytest

from memstore.core.db import (
    REQUIRED_TABLES, from_db_time, get_db, health_check, init_db, to_db_time, transaction, utcnow,
)
from memstore.core.errors import StorageFailureError


@pytest.fixture
def db_path(tmp_path):
    path = str(tmp_path / "nested" / "memory.db")
    init_db(path)
    return path


def test_init_creates_tables(db_path):
    with get_db(db_path) as conn:
        names = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}

    assert set(REQUIRED_TABLES) <= names
    assert health_check(db_path) is True


def test_init_is_idempotent(db_path):
    init_db(db_path)

    with get_db(db_path) as conn:
        version = conn.execute("SELECT value FROM schema_meta WHERE key = 'schema_version'").fetchone()[0]
    assert version == "1"


def test_wal_journal_mode(db_path):
    with get_db(db_path) as conn:
        assert conn.execute("PRAGMA journal_mode").fetchone()[0] == "wal"


def test_health_check_missing_database(tmp_path):
    assert health_check(str(tmp_path / "empty.db")) is False


def test_transaction_commits(db_path):
    with get_db(db_path) as conn:
        with transaction(conn):
            conn.execute("INSERT INTO schema_meta (key, value) VALUES ('k', 'v')")

    with get_db(db_path) as conn:
        assert conn.execute("SELECT value FROM schema_meta WHERE key = 'k'").fetchone()[0] == "v"


def test_transaction_rolls_back_on_error(db_path):
    with get_db(db_path) as conn:
        with pytest.raises(ValueError):
            with transaction(conn):
                conn.execute("INSERT INTO schema_meta (key, value) VALUES ('k', 'v')")
                raise ValueError("abort")
        assert not conn.in_transaction

    with get_db(db_path) as conn:
        assert conn.execute("SELECT COUNT(*) FROM schema_meta WHERE key = 'k'").fetchone()[0] == 0


def test_sqlite_errors_become_storage_failures(db_path):
    with get_db(db_path) as conn:
        with pytest.raises(StorageFailureError) as excinfo:
            with transaction(conn):
                conn.execute("INSERT INTO no_such_table VALUES (1)")

    assert isinstance(excinfo.value.__cause__, sqlite3.Error)


def test_history_action_constraint(db_path):
    with get_db(db_path) as conn:
        with pytest.raises(StorageFailureError):
            with transaction(conn):
                conn.execute(
                    "INSERT INTO memory_history (id, memory_id, action, created_at) "
                    "VALUES ('h', 'm', 'RENAME', '2025-01-01')"
                )


def test_busy_writer_times_out(db_path):
    with get_db(db_path) as holder:
        holder.execute("BEGIN IMMEDIATE")
        with get_db(db_path, timeout=0.05) as contender:
            with pytest.raises(StorageFailureError):
                with transaction(contender):
                    pass
        holder.execute("ROLLBACK")


def test_unopenable_path(tmp_path):
    with pytest.raises(StorageFailureError):
        with get_db(str(tmp_path / "missing-dir" / "memory.db")):
            pass


def test_time_round_trip():
    now = utcnow()

    assert from_db_time(to_db_time(now)) == now
    assert from_db_time(None) is None
    # Fixed-width strings sort chronologically
    assert len(to_db_time(now)) == len("2025-01-01T00:00:00.000000+00:00")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture
def temp_db(monkeypatch, tmp_path):
    import db

    db_path = tmp_path / "test.db"
    monkeypatch.setattr(db, "DB_PATH", str(db_path))

    # Reset the connection pool for each test
    pool = db.SQLiteConnectionPool(str(db_path), max_connections=10)
    monkeypatch.setattr(db, "_pool", pool)
    db.init()
    yield str(db_path)
    pool.close_all()


class BrokenPool:
    """Pool stand-in whose connections always fail, like a locked or missing database."""

    def get_connection(self):
        import sqlite3

        raise sqlite3.OperationalError("database is locked")


@pytest.fixture
def broken_store(monkeypatch, temp_db):
    import db

    monkeypatch.setattr(db, "_pool", BrokenPool())
    return db

import sqlite3
from unittest.mock import patch

import pytest
from infrastructure.repositories.sqlite_user_repository import SQLiteUserRepository

ALL_TABLES = {
    "schema_info", "users", "sessions", "login_attempts", "app_users", "imported_profiles",
    "app_settings", "password_resets", "family_profiles", "children",
}


def create_v3_schema(db_path: str):
    """A database left at v3, before the renewal flag existed."""
    repo = SQLiteUserRepository(db_path)
    with sqlite3.connect(db_path) as conn:
        conn.execute("CREATE TABLE schema_info (version INTEGER NOT NULL)")
        conn.execute("INSERT INTO schema_info (version) VALUES (3)")
        repo._migrate_v1(conn)
        repo._migrate_v2(conn)
        repo._migrate_v3(conn)
        conn.execute("""
            INSERT INTO users (id, email, password_salt, password_hash, subscription_expiry, created_at)
            VALUES ('u1', 'old@example.com', 'aa', 'bb', '2030-01-01T00:00:00', '2025-01-01T00:00:00')
        """)
        conn.commit()


def _version(db_file) -> int:
    with sqlite3.connect(str(db_file)) as conn:
        return conn.execute("SELECT version FROM schema_info").fetchone()[0]


def test_migration_from_empty(tmp_path):
    """An empty database is fully initialized to the latest version."""
    db_file = tmp_path / "empty.db"
    SQLiteUserRepository(str(db_file)).init_db()

    assert _version(db_file) == 4
    with sqlite3.connect(str(db_file)) as conn:
        table_names = {t[0] for t in conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()}
        cols = {r[1] for r in conn.execute("PRAGMA table_info(users)").fetchall()}
    assert ALL_TABLES.issubset(table_names)
    assert "subscription_renewed" in cols


def test_migration_from_v3_keeps_rows(tmp_path):
    db_file = tmp_path / "v3.db"
    create_v3_schema(str(db_file))

    repo = SQLiteUserRepository(str(db_file))
    repo.init_db()

    assert _version(db_file) == 4
    rows = repo.get_all_users()
    assert len(rows) == 1
    assert rows[0][1] == "old@example.com"
    assert rows[0][7] == 0


def test_migration_idempotence(tmp_path):
    """Running init_db twice does nothing and stays at the latest version."""
    db_file = tmp_path / "idem.db"
    repo = SQLiteUserRepository(str(db_file))

    repo.init_db()
    repo.init_db()

    assert _version(db_file) == 4
    with sqlite3.connect(str(db_file)) as conn:
        assert conn.execute("SELECT COUNT(*) FROM schema_info").fetchone()[0] == 1


def test_failed_migration_rolls_back(tmp_path):
    db_file = tmp_path / "broken.db"
    repo = SQLiteUserRepository(str(db_file))

    with patch.object(repo, "_migrate_v3", side_effect=sqlite3.OperationalError("disk I/O error")):
        with pytest.raises(RuntimeError, match="v3"):
            repo.init_db()

    with sqlite3.connect(str(db_file)) as conn:
        table_names = {t[0] for t in conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()}
    assert "users" not in table_names

    repo.init_db()
    assert _version(db_file) == 4

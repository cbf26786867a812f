import sqlite3
from typing import Optional


class SQLiteUserRepository:
    def __init__(self, db_path: str):
        self.db_path = db_path

    def _conn(self):
        return sqlite3.connect(self.db_path)

    def _get_current_version(self, conn) -> int:
        row = conn.execute("SELECT name FROM sqlite_master WHERE type='table' AND name='schema_info'").fetchone()
        if row:
            version_row = conn.execute("SELECT version FROM schema_info").fetchone()
            if version_row:
                return version_row[0]
        return 0

    def _migrate_v1(self, conn):
        """Credentials, sessions and login throttling."""
        conn.execute("""
            CREATE TABLE IF NOT EXISTS users (
                id TEXT PRIMARY KEY,
                email TEXT NOT NULL UNIQUE,
                password_salt TEXT NOT NULL,
                password_hash TEXT NOT NULL,
                is_active INTEGER NOT NULL DEFAULT 1,
                subscription_expiry TEXT,
                created_at TEXT NOT NULL
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS sessions (
                token TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                expires_at TEXT NOT NULL,
                created_at TEXT NOT NULL,
                last_seen_at TEXT NOT NULL,
                ua_hash TEXT,
                role TEXT,
                setup_status TEXT
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS login_attempts (
                email TEXT PRIMARY KEY,
                attempts INTEGER DEFAULT 0,
                last_attempt TEXT NOT NULL
            )
        """)

    def _migrate_v2(self, conn):
        """Role records, legacy imports, settings and password resets."""
        conn.execute("""
            CREATE TABLE IF NOT EXISTS app_users (
                auth_user_id TEXT PRIMARY KEY,
                email TEXT NOT NULL,
                name TEXT,
                role TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS imported_profiles (
                email TEXT PRIMARY KEY,
                full_name TEXT,
                is_admin INTEGER NOT NULL DEFAULT 0,
                signup_date TEXT
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS app_settings (
                key TEXT PRIMARY KEY,
                value TEXT
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS password_resets (
                token_hash TEXT PRIMARY KEY,
                refresh_hash TEXT NOT NULL,
                user_id TEXT NOT NULL,
                expires_at TEXT NOT NULL,
                used INTEGER NOT NULL DEFAULT 0
            )
        """)

    def _migrate_v3(self, conn):
        """Family profile and children written by the setup wizard."""
        conn.execute("""
            CREATE TABLE IF NOT EXISTS family_profiles (
                auth_user_id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                gender TEXT,
                age INTEGER,
                phone TEXT,
                spouse_name TEXT,
                spouse_gender TEXT,
                spouse_age INTEGER,
                address TEXT,
                district TEXT,
                state TEXT,
                pincode TEXT,
                preferred_language TEXT,
                goals TEXT,
                challenges TEXT,
                updated_at TEXT NOT NULL
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS children (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                auth_user_id TEXT NOT NULL,
                name TEXT NOT NULL,
                gender TEXT,
                date_of_birth TEXT,
                age_months INTEGER,
                interests TEXT,
                created_at TEXT NOT NULL
            )
        """)

    def _migrate_v4(self, conn):
        """Renewal flag shown in admin stats."""
        cols = [r[1] for r in conn.execute("PRAGMA table_info(users)").fetchall()]
        if "subscription_renewed" not in cols:
            conn.execute("ALTER TABLE users ADD COLUMN subscription_renewed INTEGER NOT NULL DEFAULT 0")

    def init_db(self):
        MIGRATIONS = [self._migrate_v1, self._migrate_v2, self._migrate_v3, self._migrate_v4]

        with self._conn() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS schema_info (
                    version INTEGER NOT NULL
                )
            """)
            current_version = self._get_current_version(conn)

            has_version_row = conn.execute("SELECT COUNT(*) FROM schema_info").fetchone()[0] > 0
            if not has_version_row:
                conn.execute("INSERT INTO schema_info (version) VALUES (?)", (current_version,))

            for i in range(current_version, len(MIGRATIONS)):
                target_version = i + 1
                try:
                    MIGRATIONS[i](conn)
                    conn.execute("UPDATE schema_info SET version = ?", (target_version,))
                except Exception as e:
                    # Raising inside the `with` block skips commit, so the whole init rolls back.
                    raise RuntimeError(f"Database migration to v{target_version} failed: {e}") from e

            conn.commit()

    # --- Login throttling ---

    def get_login_attempts(self, email: str):
        with self._conn() as conn:
            row = conn.execute("SELECT attempts, last_attempt FROM login_attempts WHERE email = ?", (email,)).fetchone()
            if row:
                return {"attempts": row[0], "last_attempt": row[1]}
            return None

    def reset_login_attempts(self, email: str):
        with self._conn() as conn:
            conn.execute("UPDATE login_attempts SET attempts = 0 WHERE email = ?", (email,))
            conn.commit()

    def record_failed_attempt(self, email: str, attempt_time: str):
        with self._conn() as conn:
            conn.execute("""
               INSERT INTO login_attempts (email, attempts, last_attempt)
               VALUES (?, 1, ?)
               ON CONFLICT(email) DO UPDATE SET
               attempts = attempts + 1, last_attempt = ?
            """, (email, attempt_time, attempt_time))
            conn.commit()

    def delete_login_attempts(self, email: str):
        with self._conn() as conn:
            conn.execute("DELETE FROM login_attempts WHERE email = ?", (email,))
            conn.commit()

    # --- Credentials ---

    def get_credentials_by_email(self, email: str):
        with self._conn() as conn:
            row = conn.execute("""
                SELECT id, email, password_salt, password_hash, is_active, subscription_expiry, created_at
                FROM users WHERE email = ?
            """, (email,)).fetchone()
            if row:
                return {
                    "id": row[0], "email": row[1], "password_salt": row[2], "password_hash": row[3],
                    "is_active": bool(row[4]), "subscription_expiry": row[5], "created_at": row[6],
                }
            return None

    def get_credentials_by_id(self, user_id: str):
        with self._conn() as conn:
            row = conn.execute("SELECT id, email, is_active, subscription_expiry FROM users WHERE id = ?", (user_id,)).fetchone()
            if row:
                return {"id": row[0], "email": row[1], "is_active": bool(row[2]), "subscription_expiry": row[3]}
            return None

    def create_credentials(self, user_id, email, salt_hex, pw_hash, subscription_expiry, created_at):
        with self._conn() as conn:
            try:
                conn.execute("""
                    INSERT INTO users (id, email, password_salt, password_hash, subscription_expiry, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                """, (user_id, email, salt_hex, pw_hash, subscription_expiry, created_at))
                conn.commit()
                return True, None
            except sqlite3.IntegrityError:
                return False, "integrity_error"

    def update_password(self, user_id, salt_hex, pw_hash):
        with self._conn() as conn:
            conn.execute("UPDATE users SET password_salt = ?, password_hash = ? WHERE id = ?", (salt_hex, pw_hash, user_id))
            conn.commit()

    def update_subscription_expiry(self, user_id, expiry_iso, renewed=True):
        with self._conn() as conn:
            conn.execute("UPDATE users SET subscription_renewed = ?, subscription_expiry = ? WHERE id = ?", (1 if renewed else 0, expiry_iso, user_id))
            conn.commit()

    # --- Role / profile records ---

    def create_app_user(self, auth_user_id, email, name, role, created_at):
        with self._conn() as conn:
            conn.execute("""
                INSERT OR REPLACE INTO app_users (auth_user_id, email, name, role, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (auth_user_id, email, name, role, created_at, created_at))
            conn.commit()

    def get_app_user(self, auth_user_id: str):
        with self._conn() as conn:
            row = conn.execute(
                "SELECT auth_user_id, email, name, role, created_at FROM app_users WHERE auth_user_id = ?",
                (auth_user_id,),
            ).fetchone()
            if row:
                return {"auth_user_id": row[0], "email": row[1], "name": row[2], "role": row[3], "created_at": row[4]}
            return None

    def get_app_user_by_email(self, email: str):
        with self._conn() as conn:
            row = conn.execute(
                "SELECT auth_user_id, email, name, role, created_at FROM app_users WHERE lower(email) = lower(?)",
                (email,),
            ).fetchone()
            if row:
                return {"auth_user_id": row[0], "email": row[1], "name": row[2], "role": row[3], "created_at": row[4]}
            return None

    def get_imported_profile(self, email: str):
        with self._conn() as conn:
            row = conn.execute(
                "SELECT email, full_name, is_admin, signup_date FROM imported_profiles WHERE lower(email) = lower(?)",
                (email,),
            ).fetchone()
            if row:
                return {"email": row[0], "full_name": row[1], "is_admin": bool(row[2]), "signup_date": row[3]}
            return None

    def create_imported_profile(self, email, full_name, is_admin, signup_date):
        with self._conn() as conn:
            conn.execute("""
                INSERT OR REPLACE INTO imported_profiles (email, full_name, is_admin, signup_date)
                VALUES (?, ?, ?, ?)
            """, (email, full_name, 1 if is_admin else 0, signup_date))
            conn.commit()

    def update_app_user_name(self, auth_user_id, name, updated_at):
        with self._conn() as conn:
            conn.execute("UPDATE app_users SET name = ?, updated_at = ? WHERE auth_user_id = ?", (name, updated_at, auth_user_id))
            conn.commit()

    def update_app_user_role(self, auth_user_id, role, updated_at):
        with self._conn() as conn:
            conn.execute("UPDATE app_users SET role = ?, updated_at = ? WHERE auth_user_id = ?", (role, updated_at, auth_user_id))
            conn.commit()

    def get_all_users(self):
        with self._conn() as conn:
            return conn.execute("""
                SELECT u.id, u.email, a.name, COALESCE(a.role, 'user'), u.is_active, u.subscription_expiry, u.created_at,
                       u.subscription_renewed
                FROM users u
                LEFT JOIN app_users a ON a.auth_user_id = u.id
                ORDER BY u.created_at DESC
            """).fetchall()

    def check_user_exists(self, email: str) -> bool:
        with self._conn() as conn:
            row = conn.execute("SELECT id FROM users WHERE email = ?", (email,)).fetchone()
            return row is not None

    # --- Family profile ---

    def upsert_family_profile(self, auth_user_id: str, fields: dict, updated_at: str):
        columns = [
            "name", "gender", "age", "phone", "spouse_name", "spouse_gender", "spouse_age",
            "address", "district", "state", "pincode", "preferred_language", "goals", "challenges",
        ]
        values = [fields.get(c) for c in columns]
        placeholders = ", ".join("?" for _ in range(len(columns) + 2))
        updates = ", ".join(f"{c} = excluded.{c}" for c in columns)
        with self._conn() as conn:
            conn.execute(f"""
                INSERT INTO family_profiles (auth_user_id, {", ".join(columns)}, updated_at)
                VALUES ({placeholders})
                ON CONFLICT(auth_user_id) DO UPDATE SET {updates}, updated_at = excluded.updated_at
            """, (auth_user_id, *values, updated_at))
            conn.commit()

    def get_family_profile(self, auth_user_id: str) -> Optional[dict]:
        with self._conn() as conn:
            conn.row_factory = sqlite3.Row
            row = conn.execute("SELECT * FROM family_profiles WHERE auth_user_id = ?", (auth_user_id,)).fetchone()
            return dict(row) if row else None

    def add_child(self, auth_user_id, name, gender, date_of_birth, age_months, interests, created_at):
        with self._conn() as conn:
            conn.execute("""
                INSERT INTO children (auth_user_id, name, gender, date_of_birth, age_months, interests, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (auth_user_id, name, gender, date_of_birth, age_months, interests, created_at))
            conn.commit()

    def get_children(self, auth_user_id: str) -> list[dict]:
        with self._conn() as conn:
            conn.row_factory = sqlite3.Row
            rows = conn.execute(
                "SELECT * FROM children WHERE auth_user_id = ? ORDER BY created_at ASC", (auth_user_id,)
            ).fetchall()
            return [dict(r) for r in rows]

    # --- Settings ---

    def get_setting(self, key: str) -> Optional[str]:
        with self._conn() as conn:
            row = conn.execute("SELECT value FROM app_settings WHERE key = ?", (key,)).fetchone()
            return row[0] if row else None

    def set_setting(self, key: str, value: str):
        with self._conn() as conn:
            conn.execute("INSERT OR REPLACE INTO app_settings (key, value) VALUES (?, ?)", (key, value))
            conn.commit()

    # --- Sessions ---

    def create_session(self, token, user_id, expires_iso, now_iso, ua_hash, role=None, setup_status=None):
        with self._conn() as conn:
            conn.execute("""
                INSERT OR REPLACE INTO sessions (token, user_id, expires_at, created_at, last_seen_at, ua_hash, role, setup_status)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (token, user_id, expires_iso, now_iso, now_iso, ua_hash, role, setup_status))
            conn.commit()

    def get_session(self, token):
        with self._conn() as conn:
            return conn.execute(
                "SELECT user_id, expires_at, ua_hash, role, setup_status FROM sessions WHERE token = ?", (token,)
            ).fetchone()

    def update_session_flags(self, token, role, setup_status):
        with self._conn() as conn:
            conn.execute("UPDATE sessions SET role = ?, setup_status = ? WHERE token = ?", (role, setup_status, token))
            conn.commit()

    def update_session_last_seen(self, token, now_iso):
        with self._conn() as conn:
            conn.execute("UPDATE sessions SET last_seen_at = ? WHERE token = ?", (now_iso, token))
            conn.commit()

    def delete_session(self, token):
        with self._conn() as conn:
            conn.execute("DELETE FROM sessions WHERE token = ?", (token,))
            conn.commit()

    # --- Password resets ---

    def create_password_reset(self, token_hash, refresh_hash, user_id, expires_iso):
        with self._conn() as conn:
            conn.execute("""
                INSERT INTO password_resets (token_hash, refresh_hash, user_id, expires_at)
                VALUES (?, ?, ?, ?)
            """, (token_hash, refresh_hash, user_id, expires_iso))
            conn.commit()

    def get_password_reset(self, token_hash):
        with self._conn() as conn:
            row = conn.execute(
                "SELECT refresh_hash, user_id, expires_at, used FROM password_resets WHERE token_hash = ?",
                (token_hash,),
            ).fetchone()
            if row:
                return {"refresh_hash": row[0], "user_id": row[1], "expires_at": row[2], "used": bool(row[3])}
            return None

    def mark_password_reset_used(self, token_hash):
        with self._conn() as conn:
            conn.execute("UPDATE password_resets SET used = 1 WHERE token_hash = ?", (token_hash,))
            conn.commit()

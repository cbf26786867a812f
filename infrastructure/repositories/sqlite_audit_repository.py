import json
import logging
import sqlite3
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

log = logging.getLogger(__name__)


class AuditAction(str, Enum):
    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    LOGIN_FAIL = "LOGIN_FAIL"
    LOGIN_BLOCKED = "LOGIN_BLOCKED"
    LOGOUT = "LOGOUT"
    SUBSCRIPTION_EXPIRED = "SUBSCRIPTION_EXPIRED"
    SUBSCRIPTION_RENEWED = "SUBSCRIPTION_RENEWED"
    PASSWORD_RESET_REQUEST = "PASSWORD_RESET_REQUEST"
    PASSWORD_RESET = "PASSWORD_RESET"
    PROFILE_COMPLETED = "PROFILE_COMPLETED"
    RBAC_DENIED = "RBAC_DENIED"
    USER_CREATE = "USER_CREATE"
    USER_ROLE_CHANGE = "USER_ROLE_CHANGE"
    RENEWAL_URL_UPDATE = "RENEWAL_URL_UPDATE"
    AI_REQUEST_FAILED = "AI_REQUEST_FAILED"


ALLOWED_METADATA_KEYS = {
    "reason", "attempts", "cooldown", "new_role", "old_role",
    "error_message", "target_action", "role", "tool", "days",
}
SECRET_MARKERS = ("password", "token")
MAX_METADATA_CHARS = 2000

# (column, max length) in insert order
AUDIT_COLUMNS = (
    ("actor_user_id", 64),
    ("actor_role", 20),
    ("action", 50),
    ("target_type", 50),
    ("target_id", 100),
)


def sanitize_metadata(metadata: Optional[Dict[str, Any]]) -> Optional[str]:
    """Whitelisted keys only, no values that look like secrets, capped in size."""
    if metadata is None:
        return None
    safe = {
        k: v for k, v in metadata.items()
        if k in ALLOWED_METADATA_KEYS and not any(m in str(v).lower() for m in SECRET_MARKERS)
    }
    try:
        encoded = json.dumps(safe)
    except (TypeError, ValueError):
        return '{"error": "unserializable"}'
    if len(encoded) > MAX_METADATA_CHARS:
        safe["truncated"] = True
        encoded = json.dumps(safe)[:MAX_METADATA_CHARS]
    return encoded


def _clip(value, limit):
    return str(value)[:limit] if value is not None else None


class SQLiteAuditRepository:
    """Append-only audit trail. Writes never raise into the caller."""

    def __init__(self, db_path: str):
        self.db_path = db_path

    def _conn(self):
        return sqlite3.connect(self.db_path)

    def init_db(self):
        with self._conn() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS audit_log (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    ts TEXT NOT NULL,
                    actor_user_id TEXT,
                    actor_role TEXT,
                    action TEXT NOT NULL,
                    target_type TEXT NOT NULL,
                    target_id TEXT,
                    metadata_json TEXT,
                    ip_address TEXT,
                    result TEXT NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_audit_log_action ON audit_log (action)")
            conn.commit()

    def log_action(
        self,
        action: Any,
        target_type: str,
        actor_user_id: Optional[str] = None,
        actor_role: Optional[str] = None,
        target_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        result: str = "success",
    ):
        try:
            action_val = action.value if isinstance(action, Enum) else str(action or "") or "UNKNOWN"
            values = dict(
                actor_user_id=actor_user_id,
                actor_role=actor_role,
                action=action_val,
                target_type=target_type or "UNKNOWN",
                target_id=target_id,
            )
            row = [_clip(values[col], limit) for col, limit in AUDIT_COLUMNS]
            ts = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

            with self._conn() as conn:
                conn.execute(f"""
                    INSERT INTO audit_log
                    (ts, {", ".join(c for c, _ in AUDIT_COLUMNS)}, metadata_json, ip_address, result)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (ts, *row, sanitize_metadata(metadata), _clip(ip_address, 45), _clip(result or "unknown", 20)))
                conn.commit()
        except Exception as e:
            # Audit failures must not crash the main application
            log.error(f"Audit log failed for action {action}: {e}", exc_info=True)

    def get_logs(self, limit: int = 100, action_filter: Optional[str] = None,
                 user_filter: Optional[str] = None) -> List[Tuple]:
        """Newest entries first, with the actor's email resolved where the account still exists."""
        clauses, params = [], []
        if action_filter and action_filter != "All":
            clauses.append("a.action = ?")
            params.append(action_filter)
        if user_filter and user_filter != "All":
            clauses.append("(u.email LIKE ? OR a.actor_user_id = ?)")
            params.extend([f"%{user_filter}%", user_filter])
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        try:
            with self._conn() as conn:
                return conn.execute(f"""
                    SELECT a.id, a.ts, COALESCE(u.email, a.actor_user_id, 'SYSTEM'),
                           a.actor_role, a.action, a.target_type, a.target_id,
                           a.metadata_json, a.ip_address, a.result
                    FROM audit_log a
                    LEFT JOIN users u ON a.actor_user_id = u.id
                    {where}
                    ORDER BY a.id DESC LIMIT ?
                """, (*params, limit)).fetchall()
        except Exception as e:
            log.error(f"Failed to fetch audit logs: {e}", exc_info=True)
            return []

import sqlite3
import json
import logging
from datetime import datetime
from typing import Any, Optional

log = logging.getLogger(__name__)

RUN_TABLES = ("planner_runs", "meal_plan_runs", "single_recipe_runs", "emotion_logs")


class SQLiteToolRunRepository:
    """History of AI tool runs and the usage/cost ledger behind admin stats."""

    def __init__(self, db_path: str):
        self.db_path = db_path

    def _conn(self):
        return sqlite3.connect(self.db_path)

    def init_db(self):
        with self._conn() as conn:
            for table in RUN_TABLES:
                conn.execute(f"""
                    CREATE TABLE IF NOT EXISTS {table} (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        user_id TEXT NOT NULL,
                        label TEXT,
                        language TEXT,
                        prompt TEXT NOT NULL,
                        result TEXT NOT NULL,
                        created_at TEXT NOT NULL
                    )
                """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS ai_usage_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT,
                    tool TEXT NOT NULL,
                    input_tokens INTEGER NOT NULL DEFAULT 0,
                    output_tokens INTEGER NOT NULL DEFAULT 0,
                    cost_usd REAL NOT NULL DEFAULT 0,
                    success INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL
                )
            """)
            conn.commit()

    def save_run(self, table: str, user_id: str, prompt: Any, result: Any, label: Optional[str] = None,
                 language: Optional[str] = None, created_at: Optional[str] = None) -> int:
        if table not in RUN_TABLES:
            raise ValueError(f"Unknown run table: {table}")
        created_at = created_at or datetime.utcnow().isoformat()
        with self._conn() as conn:
            cur = conn.execute(f"""
                INSERT INTO {table} (user_id, label, language, prompt, result, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (user_id, label, language, json.dumps(prompt, ensure_ascii=False),
                  json.dumps(result, ensure_ascii=False), created_at))
            conn.commit()
            return cur.lastrowid

    def get_runs(self, table: str, user_id: str, limit: int = 50) -> list[dict]:
        if table not in RUN_TABLES:
            raise ValueError(f"Unknown run table: {table}")
        with self._conn() as conn:
            rows = conn.execute(f"""
                SELECT id, label, language, prompt, result, created_at
                FROM {table} WHERE user_id = ?
                ORDER BY created_at DESC, id DESC LIMIT ?
            """, (user_id, limit)).fetchall()
        runs = []
        for row in rows:
            try:
                prompt = json.loads(row[3])
                result = json.loads(row[4])
            except (TypeError, ValueError):
                log.warning(f"Skipping corrupt {table} row {row[0]}")
                continue
            runs.append({
                "id": row[0], "label": row[1], "language": row[2],
                "prompt": prompt, "result": result, "created_at": row[5],
            })
        return runs

    def log_usage(self, user_id: Optional[str], tool: str, input_tokens: int, output_tokens: int,
                  cost_usd: float, success: bool = True, created_at: Optional[str] = None):
        created_at = created_at or datetime.utcnow().isoformat()
        try:
            with self._conn() as conn:
                conn.execute("""
                    INSERT INTO ai_usage_logs (user_id, tool, input_tokens, output_tokens, cost_usd, success, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                """, (user_id, tool, input_tokens, output_tokens, cost_usd, 1 if success else 0, created_at))
                conn.commit()
        except Exception as e:
            # Cost tracking must not fail a tool run that already succeeded
            log.error(f"Usage log failed for tool {tool}: {e}", exc_info=True)

    def get_usage_rows(self) -> list[tuple]:
        with self._conn() as conn:
            return conn.execute("""
                SELECT user_id, tool, input_tokens, output_tokens, cost_usd, success, created_at
                FROM ai_usage_logs
            """).fetchall()

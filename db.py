import asyncio
import sqlite3
import aiosqlite
import datetime
import json
import logging
from contextlib import contextmanager, asynccontextmanager
from typing import Callable, Dict, List, Optional, Tuple

from config import YamlConfig
from settings_schema import validate_settings
from log_schema import (
    date_key,
    validate_recovery_log,
    validate_workout_log,
    with_completion,
)

logger = logging.getLogger(__name__)

Snapshot = Dict[str, dict]
SnapshotCallback = Callable[[Snapshot], None]


def deep_merge(base: dict, patch: dict) -> dict:
    """Merge ``patch`` into a copy of ``base``.

    Nested mappings are merged key by key; any other value (lists
    included) replaces the stored one. Keys absent from ``patch`` are kept.
    """
    out = dict(base)
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = deep_merge(out[key], value)
        else:
            out[key] = value
    return out


class Database:
    """Provides SQLite connection management and schema initialization."""

    _TABLE_DEFINITIONS = {
        "workout_logs": (
            """CREATE TABLE workout_logs (
                    user_id TEXT NOT NULL,
                    date TEXT NOT NULL,
                    data TEXT NOT NULL,
                    updated_at TEXT,
                    PRIMARY KEY (user_id, date)
                );""",
            ["user_id", "date", "data", "updated_at"],
        ),
        "recovery_logs": (
            """CREATE TABLE recovery_logs (
                    user_id TEXT NOT NULL,
                    date TEXT NOT NULL,
                    data TEXT NOT NULL,
                    updated_at TEXT,
                    PRIMARY KEY (user_id, date)
                );""",
            ["user_id", "date", "data", "updated_at"],
        ),
        "settings": (
            """CREATE TABLE settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );""",
            ["key", "value"],
        ),
        "coach_logs": (
            """CREATE TABLE coach_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL,
                    prompt TEXT NOT NULL,
                    response TEXT,
                    success INTEGER NOT NULL DEFAULT 0
                );""",
            ["id", "timestamp", "prompt", "response", "success"],
        ),
    }

    def __init__(self, db_path: str = "liftlog.db") -> None:
        self._db_path = db_path
        self._ensure_schema()
        self._init_settings()

    @contextmanager
    def _connection(self):
        connection = sqlite3.connect(self._db_path)
        try:
            yield connection
            connection.commit()
        finally:
            connection.close()

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            for table, (sql, columns) in self._TABLE_DEFINITIONS.items():
                self._ensure_table(conn, table, sql, columns)

    def _ensure_table(
        self, conn: sqlite3.Connection, table: str, sql: str, columns: List[str]
    ) -> None:
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?;", (table,)
        )
        if cur.fetchone() is None:
            conn.execute(sql)
            return

        cur = conn.execute(f"PRAGMA table_info({table});")
        existing_cols = [row[1] for row in cur.fetchall()]
        if existing_cols == columns:
            return

        conn.execute(f"DROP TABLE IF EXISTS {table}_old;")
        conn.execute(f"ALTER TABLE {table} RENAME TO {table}_old;")
        conn.execute(sql)

        common = [c for c in existing_cols if c in columns]
        if common:
            cols = ", ".join(common)
            missing = [c for c in columns if c not in existing_cols]
            if missing:
                def default_val(col: str) -> str:
                    if col == "success":
                        return "0"
                    if col == "user_id":
                        return "'default'"
                    if col == "data":
                        return "'{}'"
                    return "NULL"

                defaults = ", ".join(default_val(c) for c in missing)
                conn.execute(
                    f"INSERT INTO {table} ({cols}, {', '.join(missing)}) SELECT {cols}, {defaults} FROM {table}_old;"
                )
            else:
                conn.execute(
                    f"INSERT INTO {table} ({cols}) SELECT {cols} FROM {table}_old;"
                )
        conn.execute(f"DROP TABLE {table}_old;")

    def _init_settings(self) -> None:
        defaults = {
            "user_id": "",
            "weight_unit": "kg",
            "timezone": "UTC",
            "load_step": "2.5",
            "load_increase": "0.025",
            "program_path": "",
            "coach_model": "gemini-1.5-flash",
            "coach_base_url": "https://generativelanguage.googleapis.com/v1beta",
            "coach_api_key": "",
            "coach_timeout": "",
            "log_level": "INFO",
        }
        with self._connection() as conn:
            for key, value in defaults.items():
                conn.execute(
                    "INSERT OR IGNORE INTO settings (key, value) VALUES (?, ?);",
                    (key, value),
                )


class BaseRepository(Database):
    """Base repository providing helper methods."""

    def execute(self, query: str, params: Tuple = ()) -> int:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.lastrowid

    def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.fetchall()

    def _delete_all(self, table: str) -> None:
        self.execute(f"DELETE FROM {table};")


class AsyncDatabase(Database):
    """Provides asynchronous connection management."""

    @asynccontextmanager
    async def _async_connection(self):
        conn = await aiosqlite.connect(self._db_path)
        try:
            yield conn
            await conn.commit()
        finally:
            await conn.close()


class AsyncBaseRepository(AsyncDatabase):
    """Asynchronous variant of BaseRepository using aiosqlite."""

    async def execute(self, query: str, params: Tuple = ()) -> int:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            await conn.commit()
            return cursor.lastrowid

    async def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
            return rows


class _LogCollection:
    """Shared behaviour of the per-user, date keyed log collections."""

    table = ""
    _subscribers: Dict[tuple, List[SnapshotCallback]] = {}

    def _init_collection(self, user_id: str) -> None:
        if not user_id:
            raise ValueError("user_id is required")
        self.user_id = user_id

    def _key(self) -> tuple:
        return (self._db_path, self.table, self.user_id)

    @staticmethod
    def _validate(data: dict) -> None:
        raise NotImplementedError

    @staticmethod
    def _decode(data: dict) -> dict:
        return data

    def _merged(self, current: Optional[dict], partial: dict) -> dict:
        merged = deep_merge(current or {}, partial)
        self._validate(merged)
        return self._decode(merged)

    def _publish(self, snapshot: Snapshot) -> None:
        for callback in list(self._subscribers.get(self._key(), [])):
            try:
                callback(snapshot)
            except Exception:
                logger.exception("snapshot subscriber failed for %s", self.table)

    def subscribe(self, callback: SnapshotCallback) -> Callable[[], None]:
        """Push the full snapshot now and after every write.

        Returns a callable that removes the subscription.
        """
        listeners = self._subscribers.setdefault(self._key(), [])
        listeners.append(callback)
        callback(self.fetch_snapshot())

        def unsubscribe() -> None:
            if callback in listeners:
                listeners.remove(callback)

        return unsubscribe


class _SyncLogRepository(_LogCollection, BaseRepository):
    def __init__(self, db_path: str = "liftlog.db", user_id: str = "default") -> None:
        super().__init__(db_path)
        self._init_collection(user_id)

    def fetch(self, date: str) -> Optional[dict]:
        rows = self.fetch_all(
            f"SELECT data FROM {self.table} WHERE user_id = ? AND date = ?;",
            (self.user_id, date_key(date)),
        )
        if not rows:
            return None
        return self._decode(json.loads(rows[0][0]))

    def fetch_snapshot(self) -> Snapshot:
        rows = self.fetch_all(
            f"SELECT date, data FROM {self.table} WHERE user_id = ? ORDER BY date;",
            (self.user_id,),
        )
        return {date: self._decode(json.loads(data)) for date, data in rows}

    def fetch_dates(self) -> List[str]:
        rows = self.fetch_all(
            f"SELECT date FROM {self.table} WHERE user_id = ? ORDER BY date;",
            (self.user_id,),
        )
        return [r[0] for r in rows]

    def upsert(self, date: str, partial: dict) -> dict:
        """Merge ``partial`` into the stored document for ``date``."""
        key = date_key(date)
        merged = self._merged(self.fetch(key), partial)
        self.execute(
            f"INSERT INTO {self.table} (user_id, date, data, updated_at) VALUES (?, ?, ?, ?) "
            "ON CONFLICT(user_id, date) DO UPDATE SET data=excluded.data, updated_at=excluded.updated_at;",
            (
                self.user_id,
                key,
                json.dumps(merged),
                datetime.datetime.now(datetime.timezone.utc).isoformat(),
            ),
        )
        self._publish(self.fetch_snapshot())
        return merged

    def delete_all(self) -> None:
        self.execute(
            f"DELETE FROM {self.table} WHERE user_id = ?;", (self.user_id,)
        )
        self._publish({})


class WorkoutLogRepository(_SyncLogRepository):
    """Repository for workout logs keyed by date."""

    table = "workout_logs"

    @staticmethod
    def _validate(data: dict) -> None:
        validate_workout_log(data)

    @staticmethod
    def _decode(data: dict) -> dict:
        return with_completion(data)


class RecoveryLogRepository(_SyncLogRepository):
    """Repository for recovery logs keyed by date."""

    table = "recovery_logs"

    @staticmethod
    def _validate(data: dict) -> None:
        validate_recovery_log(data)


class _AsyncLogRepository(_LogCollection, AsyncBaseRepository):
    def __init__(self, db_path: str = "liftlog.db", user_id: str = "default") -> None:
        super().__init__(db_path)
        self._init_collection(user_id)
        self._write_lock = asyncio.Lock()

    async def fetch(self, date: str) -> Optional[dict]:
        rows = await self.fetch_all(
            f"SELECT data FROM {self.table} WHERE user_id = ? AND date = ?;",
            (self.user_id, date_key(date)),
        )
        if not rows:
            return None
        return self._decode(json.loads(rows[0][0]))

    async def fetch_snapshot(self) -> Snapshot:
        rows = await self.fetch_all(
            f"SELECT date, data FROM {self.table} WHERE user_id = ? ORDER BY date;",
            (self.user_id,),
        )
        return {date: self._decode(json.loads(data)) for date, data in rows}

    async def upsert(self, date: str, partial: dict) -> dict:
        """Merge ``partial`` into the stored document for ``date``.

        Read, merge and write share one ``BEGIN IMMEDIATE`` transaction and
        writes through this repository are serialized, so a later write
        always merges onto the result of the earlier one.
        """
        key = date_key(date)
        async with self._write_lock:
            async with self._async_connection() as conn:
                await conn.execute("BEGIN IMMEDIATE;")
                cursor = await conn.execute(
                    f"SELECT data FROM {self.table} WHERE user_id = ? AND date = ?;",
                    (self.user_id, key),
                )
                row = await cursor.fetchone()
                current = self._decode(json.loads(row[0])) if row else None
                merged = self._merged(current, partial)
                await conn.execute(
                    f"INSERT INTO {self.table} (user_id, date, data, updated_at) VALUES (?, ?, ?, ?) "
                    "ON CONFLICT(user_id, date) DO UPDATE SET data=excluded.data, updated_at=excluded.updated_at;",
                    (
                        self.user_id,
                        key,
                        json.dumps(merged),
                        datetime.datetime.now(datetime.timezone.utc).isoformat(),
                    ),
                )
            self._publish(await self.fetch_snapshot())
        return merged

    def subscribe(self, callback: SnapshotCallback) -> Callable[[], None]:
        """Register ``callback`` for snapshots published after writes."""
        listeners = self._subscribers.setdefault(self._key(), [])
        listeners.append(callback)

        def unsubscribe() -> None:
            if callback in listeners:
                listeners.remove(callback)

        return unsubscribe


class AsyncWorkoutLogRepository(_AsyncLogRepository):
    """Async repository for workout logs keyed by date."""

    table = "workout_logs"

    @staticmethod
    def _validate(data: dict) -> None:
        validate_workout_log(data)

    @staticmethod
    def _decode(data: dict) -> dict:
        return with_completion(data)


class AsyncRecoveryLogRepository(_AsyncLogRepository):
    """Async repository for recovery logs keyed by date."""

    table = "recovery_logs"

    @staticmethod
    def _validate(data: dict) -> None:
        validate_recovery_log(data)


class CoachLogRepository(BaseRepository):
    """Repository recording advisory requests and their outcome."""

    def log(self, prompt: str, response: Optional[str], success: bool) -> int:
        return self.execute(
            "INSERT INTO coach_logs (timestamp, prompt, response, success) VALUES (?, ?, ?, ?);",
            (
                datetime.datetime.now(datetime.timezone.utc).isoformat(),
                prompt,
                response,
                int(success),
            ),
        )

    def fetch_recent(self, limit: int = 20) -> List[dict]:
        rows = self.fetch_all(
            "SELECT id, timestamp, prompt, response, success FROM coach_logs ORDER BY id DESC LIMIT ?;",
            (limit,),
        )
        return [
            {
                "id": rid,
                "timestamp": ts,
                "prompt": prompt,
                "response": response,
                "success": bool(success),
            }
            for rid, ts, prompt, response, success in rows
        ]

    def delete_all(self) -> None:
        self._delete_all("coach_logs")


class SettingsRepository(BaseRepository):
    """Repository for general application settings synchronized with YAML."""

    TEXT_KEYS = {
        "user_id",
        "weight_unit",
        "timezone",
        "program_path",
        "coach_model",
        "coach_base_url",
        "coach_api_key",
        "log_level",
    }
    OPTIONAL_FLOAT_KEYS = {"coach_timeout"}

    def __init__(
        self, db_path: str = "liftlog.db", yaml_path: str = "settings.yaml"
    ) -> None:
        super().__init__(db_path)
        self._yaml = YamlConfig(yaml_path)
        self._sync_from_yaml()
        self._sync_to_yaml()

    def _raw_all_settings(self) -> dict:
        rows = self.fetch_all("SELECT key, value FROM settings ORDER BY key;")
        result: dict[str, float | str | None] = {}
        for k, v in rows:
            if k in self.TEXT_KEYS:
                result[k] = v
                continue
            if k in self.OPTIONAL_FLOAT_KEYS and v in {"", "None"}:
                result[k] = None
                continue
            try:
                result[k] = float(v)
            except ValueError:
                result[k] = v
        return result

    def _sync_from_yaml(self) -> None:
        data = self._yaml.load()
        if not data:
            return
        validate_settings(data)
        with self._connection() as conn:
            for key, value in data.items():
                val = "" if value is None else str(value)
                conn.execute(
                    "INSERT INTO settings (key, value) VALUES (?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
                    (key, val),
                )

    def _sync_to_yaml(self) -> None:
        self._yaml.save(self._raw_all_settings())

    def get_text(self, key: str, default: str) -> str:
        self._sync_from_yaml()
        rows = self.fetch_all("SELECT value FROM settings WHERE key = ?;", (key,))
        return rows[0][0] if rows else default

    def set_text(self, key: str, value: str) -> None:
        self.execute(
            "INSERT INTO settings (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
            (key, value),
        )
        self._sync_to_yaml()

    def get_float(self, key: str, default: float) -> float:
        val = self.get_text(key, "")
        try:
            return float(val)
        except ValueError:
            return default

    def get_optional_float(self, key: str) -> Optional[float]:
        val = self.get_text(key, "")
        if val in {"", "None"}:
            return None
        try:
            return float(val)
        except ValueError:
            return None

    def all_settings(self) -> dict:
        self._sync_from_yaml()
        return self._raw_all_settings()

    def update(self, data: dict) -> None:
        """Validate and store several settings at once."""
        current = self._raw_all_settings()
        current.update(data)
        validate_settings(current)
        with self._connection() as conn:
            for key, value in data.items():
                val = "" if value is None else str(value)
                conn.execute(
                    "INSERT INTO settings (key, value) VALUES (?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
                    (key, val),
                )
        self._sync_to_yaml()

"""CryptoQuiver — SQLite: локальное key-value хранилище (избранное, флаг подписки)."""

from __future__ import annotations

import json
import logging
import pathlib
import sqlite3

import config

logger = logging.getLogger("cryptoquiver.db")


class StorageError(Exception):
    """Хранилище недоступно или запись не удалась."""


# ---------------------------------------------------------------------------
# Соединение
# ---------------------------------------------------------------------------

def _connect(db_path: str | pathlib.Path | None = None) -> sqlite3.Connection:
    """Соединение с Row factory."""
    conn = sqlite3.connect(str(db_path or config.DB_PATH))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    return conn


# ---------------------------------------------------------------------------
# Инициализация
# ---------------------------------------------------------------------------

_SCHEMA: list[str] = [
    """CREATE TABLE IF NOT EXISTS kv_store (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        updated_at TEXT DEFAULT (datetime('now'))
    )""",
]


def init_db(db_path: str | pathlib.Path | None = None) -> None:
    """Создать таблицы."""
    conn = _connect(db_path)
    try:
        cur = conn.cursor()
        for stmt in _SCHEMA:
            cur.execute(stmt)
        conn.commit()
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Key-value
# ---------------------------------------------------------------------------

def kv_get(key: str, db_path: str | pathlib.Path | None = None) -> str | None:
    """Сырое значение по ключу или None."""
    conn = _connect(db_path)
    try:
        row = conn.execute(
            "SELECT value FROM kv_store WHERE key = ?", (key,)
        ).fetchone()
        return row["value"] if row else None
    finally:
        conn.close()


def kv_set(key: str, value: str, db_path: str | pathlib.Path | None = None) -> None:
    """INSERT OR REPLACE значение."""
    conn = _connect(db_path)
    try:
        conn.execute(
            "INSERT OR REPLACE INTO kv_store (key, value, updated_at) "
            "VALUES (?, ?, datetime('now'))",
            (key, value),
        )
        conn.commit()
    finally:
        conn.close()


def kv_delete(key: str, db_path: str | pathlib.Path | None = None) -> None:
    conn = _connect(db_path)
    try:
        conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
        conn.commit()
    finally:
        conn.close()


class LocalStore:
    """JSON поверх kv_store. Любая ошибка sqlite/ФС → StorageError."""

    def __init__(self, db_path: str | pathlib.Path | None = None) -> None:
        self.db_path = db_path or config.DB_PATH
        self._ready = False

    def _ensure(self) -> None:
        if not self._ready:
            init_db(self.db_path)
            self._ready = True

    def get(self, key: str, default=None):
        """Декодированное значение; default если ключа нет или JSON битый."""
        try:
            self._ensure()
            raw = kv_get(key, self.db_path)
        except (sqlite3.Error, OSError) as e:
            raise StorageError(f"read {key} failed: {e}") from e
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Corrupted value for {key}, using default")
            return default

    def set(self, key: str, value) -> None:
        try:
            self._ensure()
            kv_set(key, json.dumps(value, ensure_ascii=False), self.db_path)
        except (sqlite3.Error, OSError) as e:
            raise StorageError(f"write {key} failed: {e}") from e

    def delete(self, key: str) -> None:
        try:
            self._ensure()
            kv_delete(key, self.db_path)
        except (sqlite3.Error, OSError) as e:
            raise StorageError(f"delete {key} failed: {e}") from e

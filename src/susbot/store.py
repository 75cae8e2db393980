from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Any

import anyio
import msgspec

from .logging import get_logger
from .model import GroupProfile, UserProfile, now_ms

logger = get_logger(__name__)

_NOW_MS = "(CAST(strftime('%s', 'now') AS INTEGER) * 1000)"

_USER_COLUMNS: tuple[tuple[str, str], ...] = (
    ("telegram_id", "TEXT UNIQUE NOT NULL"),
    ("username", "TEXT"),
    ("first_name", "TEXT"),
    ("last_name", "TEXT"),
    ("created_at", f"INTEGER DEFAULT {_NOW_MS}"),
    ("last_interaction", f"INTEGER DEFAULT {_NOW_MS}"),
    ("command_count", "INTEGER DEFAULT 0"),
    ("wallet", "INTEGER DEFAULT 0"),
    ("bank", "INTEGER DEFAULT 0"),
    ("loan", "INTEGER DEFAULT 0"),
    ("last_daily_work", "INTEGER"),
    ("xp", "INTEGER DEFAULT 0"),
    ("current_xp", "INTEGER DEFAULT 0"),
    ("required_xp", "INTEGER DEFAULT 100"),
    ("level", "INTEGER DEFAULT 1"),
    ("rank", "INTEGER DEFAULT 0"),
    ("achievements", "TEXT DEFAULT '[]'"),
    ("inventory", "TEXT DEFAULT '[]'"),
    ("is_premium", "INTEGER DEFAULT 0"),
    ("premium_expires", "INTEGER"),
    ("ban", "INTEGER DEFAULT 0"),
    ("ban_reason", "TEXT"),
    ("language", "TEXT DEFAULT 'en'"),
    ("referrer", "TEXT"),
    ("referrals", "TEXT DEFAULT '[]'"),
    ("settings", "TEXT DEFAULT '{}'"),
    ("cooldowns", "TEXT DEFAULT '{}'"),
    ("last_active_group", "TEXT"),
)

_GROUP_COLUMNS: tuple[tuple[str, str], ...] = (
    ("group_id", "TEXT UNIQUE NOT NULL"),
    ("prefix", "TEXT"),
    ("created_at", f"INTEGER DEFAULT {_NOW_MS}"),
)

_JSON_FIELDS = frozenset({"achievements", "inventory", "referrals", "settings", "cooldowns"})
_BOOL_FIELDS = frozenset({"is_premium", "ban"})
_JSON_DEFAULTS: dict[str, Any] = {
    "achievements": [],
    "inventory": [],
    "referrals": [],
    "settings": {},
    "cooldowns": {},
}


class StoreError(RuntimeError):
    pass


def _create_table_sql(table: str, columns: tuple[tuple[str, str], ...]) -> str:
    body = ",\n  ".join(f"{name} {decl}" for name, decl in columns)
    return (
        f"CREATE TABLE IF NOT EXISTS {table} (\n"
        f"  id INTEGER PRIMARY KEY AUTOINCREMENT,\n  {body}\n)"
    )


def _additive_decl(decl: str) -> str:
    # ALTER TABLE ADD COLUMN rejects UNIQUE and non-constant defaults
    decl = decl.replace(" UNIQUE NOT NULL", "")
    if "DEFAULT (" in decl:
        decl = decl.split(" DEFAULT ", 1)[0]
    return decl


def _upsert_sql(table: str, key: str, columns: tuple[tuple[str, str], ...]) -> str:
    names = [name for name, _ in columns]
    placeholders = ", ".join("?" for _ in names)
    updates = ", ".join(f"{name} = excluded.{name}" for name in names if name != key)
    return (
        f"INSERT INTO {table} ({', '.join(names)}) VALUES ({placeholders}) "
        f"ON CONFLICT({key}) DO UPDATE SET {updates}"
    )


def _encode_user(profile: UserProfile) -> tuple[Any, ...]:
    values: list[Any] = []
    for name, _ in _USER_COLUMNS:
        value = getattr(profile, name)
        if name in _JSON_FIELDS:
            value = msgspec.json.encode(value).decode()
        elif name in _BOOL_FIELDS:
            value = 1 if value else 0
        values.append(value)
    return tuple(values)


_NULLABLE_USER_FIELDS = frozenset(
    {
        "id",
        "username",
        "first_name",
        "last_name",
        "last_daily_work",
        "premium_expires",
        "ban_reason",
        "referrer",
        "last_active_group",
    }
)


def _decode_user(row: sqlite3.Row) -> UserProfile:
    data: dict[str, Any] = {}
    for key in row.keys():
        value = row[key]
        if value is None and key not in _NULLABLE_USER_FIELDS:
            # left NULL by an additive migration; keep the struct default
            continue
        if key in _JSON_FIELDS:
            value = msgspec.json.decode(value) if value else _JSON_DEFAULTS[key].copy()
        elif key in _BOOL_FIELDS:
            value = bool(value)
        data[key] = value
    return msgspec.convert(data, UserProfile)


def _decode_group(row: sqlite3.Row) -> GroupProfile:
    prefix = row["prefix"]
    return GroupProfile(
        id=row["id"],
        group_id=row["group_id"],
        prefix=prefix if prefix else None,
        created_at=row["created_at"] if row["created_at"] is not None else now_ms(),
    )


class ProfileStore:
    """sqlite-backed store for user and group profiles.

    Tables are created on first open and missing columns are added in place;
    existing data is never rewritten by a schema change.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = str(path)
        if self._path != ":memory:":
            Path(self._path).expanduser().parent.mkdir(parents=True, exist_ok=True)
        self._lock = anyio.Lock()
        try:
            self._conn = sqlite3.connect(self._path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL;")
            self._ensure_schema()
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to open profile store {self._path}: {exc}") from exc
        logger.debug("store.opened", path=self._path)

    @property
    def path(self) -> str:
        return self._path

    def close(self) -> None:
        self._conn.close()

    def _ensure_schema(self) -> None:
        for table, columns in (("users", _USER_COLUMNS), ("groups", _GROUP_COLUMNS)):
            self._conn.execute(_create_table_sql(table, columns))
            existing = {
                row["name"] for row in self._conn.execute(f"PRAGMA table_info({table})")
            }
            for name, decl in columns:
                if name in existing:
                    continue
                self._conn.execute(
                    f"ALTER TABLE {table} ADD COLUMN {name} {_additive_decl(decl)}"
                )
                logger.info("store.column_added", table=table, column=name)
        self._conn.execute("CREATE INDEX IF NOT EXISTS idx_users_xp ON users(xp DESC)")
        self._conn.commit()

    def _query(self, sql: str, params: tuple[Any, ...] = ()) -> list[sqlite3.Row]:
        try:
            return self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise StoreError(f"Query failed: {exc}") from exc

    def _write(self, sql: str, params: tuple[Any, ...] = ()) -> None:
        try:
            with self._conn:
                self._conn.execute(sql, params)
        except sqlite3.Error as exc:
            raise StoreError(f"Write failed: {exc}") from exc

    def _load_user_locked(self, telegram_id: str) -> UserProfile | None:
        rows = self._query(
            "SELECT * FROM users WHERE telegram_id = ? LIMIT 1", (telegram_id,)
        )
        if not rows:
            return None
        try:
            return _decode_user(rows[0])
        except (msgspec.DecodeError, msgspec.ValidationError) as exc:
            raise StoreError(f"Malformed user row for {telegram_id}: {exc}") from exc

    def _load_group_locked(self, group_id: str) -> GroupProfile | None:
        rows = self._query("SELECT * FROM groups WHERE group_id = ? LIMIT 1", (group_id,))
        return _decode_group(rows[0]) if rows else None

    async def get_user(self, telegram_id: int | str) -> UserProfile | None:
        async with self._lock:
            return self._load_user_locked(str(telegram_id))

    async def save_user(self, profile: UserProfile) -> UserProfile:
        async with self._lock:
            self._write(
                _upsert_sql("users", "telegram_id", _USER_COLUMNS),
                _encode_user(profile),
            )
            if profile.id is None:
                rows = self._query(
                    "SELECT id FROM users WHERE telegram_id = ?", (profile.telegram_id,)
                )
                if rows:
                    profile.id = rows[0]["id"]
        return profile

    async def ranked_user_ids(self) -> list[str]:
        async with self._lock:
            rows = self._query("SELECT telegram_id FROM users ORDER BY xp DESC, id ASC")
        return [row["telegram_id"] for row in rows]

    async def rank_of(self, telegram_id: int | str) -> int:
        # full scan per call; fine for small populations only
        key = str(telegram_id)
        for position, candidate in enumerate(await self.ranked_user_ids(), start=1):
            if candidate == key:
                return position
        return 0

    async def set_rank(self, telegram_id: int | str, rank: int) -> None:
        async with self._lock:
            self._write(
                "UPDATE users SET rank = ? WHERE telegram_id = ?", (rank, str(telegram_id))
            )

    async def top_users(self, limit: int = 10) -> list[UserProfile]:
        async with self._lock:
            rows = self._query(
                "SELECT * FROM users ORDER BY xp DESC, id ASC LIMIT ?", (limit,)
            )
            try:
                return [_decode_user(row) for row in rows]
            except (msgspec.DecodeError, msgspec.ValidationError) as exc:
                raise StoreError(f"Malformed user row: {exc}") from exc

    async def count_users(self) -> int:
        async with self._lock:
            rows = self._query("SELECT COUNT(*) AS total FROM users")
        return int(rows[0]["total"]) if rows else 0

    async def get_group(self, group_id: int | str) -> GroupProfile | None:
        async with self._lock:
            return self._load_group_locked(str(group_id))

    async def ensure_group(self, group_id: int | str) -> GroupProfile:
        key = str(group_id)
        async with self._lock:
            group = self._load_group_locked(key)
            if group is not None:
                return group
            self._write(
                "INSERT OR IGNORE INTO groups (group_id, created_at) VALUES (?, ?)",
                (key, now_ms()),
            )
            group = self._load_group_locked(key)
        if group is None:
            raise StoreError(f"Failed to create group {key}")
        logger.info("store.group_created", group_id=key)
        return group

    async def set_group_prefix(
        self, group_id: int | str, prefix: str | None
    ) -> GroupProfile:
        key = str(group_id)
        await self.ensure_group(key)
        async with self._lock:
            self._write("UPDATE groups SET prefix = ? WHERE group_id = ?", (prefix, key))
            group = self._load_group_locked(key)
        if group is None:
            raise StoreError(f"Group {key} vanished during update")
        return group

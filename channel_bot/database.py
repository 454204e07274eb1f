"""SQLite database module for channel-bot.

Each public method is async and wraps a synchronous inner function via
asyncio.run_in_executor(None, _sync). A new connection is created per call
(WAL mode, 30s busy timeout, Row factory).

Per-channel data lives in tables sharded by the channel's numeric id
(CHANNEL_<id>, CHANNEL_<id>_MARKOV, ...). Table names are only ever built
from a validated integer; every value goes through a bound parameter.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from datetime import datetime
from enum import Enum

from .models import ChannelCommand, CommandKind, Hook, HookMatchType, Reminder
from .utils import db_timestamp, parse_timestamp


class ChannelTable(Enum):
    LOG = ""
    MARKOV = "_MARKOV"
    OFFLINERS = "_OFFLINERS"
    COMMANDS = "_COMMANDS"


def channel_table(kind: ChannelTable, channel_id: int) -> str:
    """Return the per-channel table name for ``channel_id``.

    Raises ValueError for anything that is not a positive integer.
    """
    if isinstance(channel_id, bool) or not isinstance(channel_id, int) or channel_id <= 0:
        raise ValueError(f"invalid channel id: {channel_id!r}")
    return f"CHANNEL_{channel_id}{kind.value}"


EXPLANATIONS: dict[str, str] = {
    "E1": "the markov seed word has never been seen followed by another word in this channel",
    "E2": "no logged messages from that user in this channel",
    "E3": "offline time is only counted while the channel is not live",
}


class BotDatabase:
    """SQLite-backed persistence for the chat bot."""

    def __init__(self, db_path: str, logger: logging.Logger) -> None:
        self._db_path = db_path
        self._logger = logger

    def _get_connection(self) -> sqlite3.Connection:
        """Create a new SQLite connection with standard settings."""
        conn = sqlite3.connect(self._db_path, timeout=30)
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA busy_timeout=30000")
        conn.row_factory = sqlite3.Row
        return conn

    # ══════════════════════════════════════════════════════════
    #  Initialization
    # ══════════════════════════════════════════════════════════

    async def initialize(self) -> None:
        """Create all global tables and seed explanations. Idempotent."""
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._create_tables)

    def _create_tables(self) -> None:
        conn = self._get_connection()
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS user_reminders (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    from_user_id INTEGER NOT NULL,
                    for_user_id INTEGER NOT NULL,
                    raise_timestamp TEXT NOT NULL,
                    message TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS user_aliases (
                    owner_id INTEGER NOT NULL,
                    alias TEXT NOT NULL,
                    alias_cmd TEXT NOT NULL,
                    UNIQUE(owner_id, alias)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS command_history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    sender_id INTEGER NOT NULL,
                    sender_name TEXT NOT NULL,
                    command TEXT NOT NULL,
                    args TEXT NOT NULL,
                    execution_time_s REAL NOT NULL,
                    output TEXT,
                    timestamp TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS user_feedback (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    sender_id INTEGER NOT NULL,
                    sender_name TEXT NOT NULL,
                    message TEXT NOT NULL,
                    time TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS lurkers (
                    lurker_id INTEGER PRIMARY KEY,
                    timestamp TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS channel_hooks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    channel_id INTEGER NOT NULL,
                    trigger TEXT NOT NULL,
                    match_type TEXT NOT NULL,
                    response TEXT NOT NULL,
                    UNIQUE(channel_id, trigger)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS explanations (
                    code TEXT PRIMARY KEY,
                    message TEXT NOT NULL
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_reminders_for_user "
                "ON user_reminders(for_user_id)"
            )
            conn.executemany(
                "INSERT OR IGNORE INTO explanations (code, message) VALUES (?, ?)",
                list(EXPLANATIONS.items()),
            )
            conn.commit()
        finally:
            conn.close()

    async def create_channel_tables(self, channel_id: int) -> None:
        """Create the four sharded tables for one channel. Idempotent."""
        log = channel_table(ChannelTable.LOG, channel_id)
        markov = channel_table(ChannelTable.MARKOV, channel_id)
        offliners = channel_table(ChannelTable.OFFLINERS, channel_id)
        commands = channel_table(ChannelTable.COMMANDS, channel_id)
        loop = asyncio.get_running_loop()

        def _sync() -> None:
            conn = self._get_connection()
            try:
                conn.execute(f"""
                    CREATE TABLE IF NOT EXISTS {log} (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        sender_id INTEGER NOT NULL,
                        sender_nick TEXT NOT NULL,
                        badges TEXT,
                        timestamp TEXT NOT NULL,
                        message TEXT NOT NULL
                    )
                """)
                conn.execute(
                    f"CREATE INDEX IF NOT EXISTS idx_{log}_sender ON {log}(sender_id)"
                )
                conn.execute(f"""
                    CREATE TABLE IF NOT EXISTS {markov} (
                        word TEXT NOT NULL,
                        succ TEXT NOT NULL
                    )
                """)
                conn.execute(
                    f"CREATE INDEX IF NOT EXISTS idx_{markov}_word ON {markov}(word COLLATE NOCASE)"
                )
                conn.execute(f"""
                    CREATE TABLE IF NOT EXISTS {offliners} (
                        offliner_id INTEGER PRIMARY KEY,
                        time_s INTEGER NOT NULL DEFAULT 0
                    )
                """)
                conn.execute(f"""
                    CREATE TABLE IF NOT EXISTS {commands} (
                        name TEXT PRIMARY KEY,
                        type TEXT NOT NULL,
                        expression TEXT NOT NULL,
                        metadata INTEGER NOT NULL DEFAULT 0
                    )
                """)
                conn.commit()
            finally:
                conn.close()

        await loop.run_in_executor(None, _sync)

    # ══════════════════════════════════════════════════════════
    #  Chat log
    # ══════════════════════════════════════════════════════════

    async def log_message(
        self,
        channel_id: int,
        sender_id: int,
        sender_name: str,
        badges: list[str] | frozenset[str],
        timestamp: datetime,
        message: str,
    ) -> None:
        table = channel_table(ChannelTable.LOG, channel_id)
        loop = asyncio.get_running_loop()

        def _sync() -> None:
            conn = self._get_connection()
            try:
                conn.execute(
                    f"INSERT INTO {table} (sender_id, sender_nick, badges, timestamp, message) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (
                        sender_id,
                        sender_name,
                        "".join(f"{b}_" for b in sorted(badges)),
                        db_timestamp(timestamp),
                        message,
                    ),
                )
                conn.commit()
            finally:
                conn.close()

        await loop.run_in_executor(None, _sync)

    async def get_first_message(self, channel_id: int, sender_id: int) -> str | None:
        """Earliest logged message of a user in a channel."""
        table = channel_table(ChannelTable.LOG, channel_id)
        loop = asyncio.get_running_loop()

        def _sync() -> str | None:
            conn = self._get_connection()
            try:
                row = conn.execute(
                    f"SELECT message FROM {table} WHERE sender_id = ? ORDER BY id ASC LIMIT 1",
                    (sender_id,),
                ).fetchone()
                return row["message"] if row else None
            finally:
                conn.close()

        return await loop.run_in_executor(None, _sync)

    async def get_word_ratio(
        self, channel_id: int, user_id: int, word: str, prefix: str,
    ) -> float | None:
        """Fraction of a user's non-command messages that contain ``word``.

        Returns None when the user has no logged non-command messages.
        """
        table = channel_table(ChannelTable.LOG, channel_id)
        loop = asyncio.get_running_loop()

        def _sync() -> float | None:
            conn = self._get_connection()
            try:
                row = conn.execute(
                    f"""
                    SELECT
                        COUNT(*) AS total,
                        SUM(CASE WHEN instr(lower(message), lower(?)) > 0 THEN 1 ELSE 0 END) AS hits
                    FROM {table}
                    WHERE sender_id = ? AND substr(message, 1, 1) != ?
                    """,
                    (word, user_id, prefix),
                ).fetchone()
                if not row or not row["total"]:
                    return None
                return (row["hits"] or 0) / row["total"]
            finally:
                conn.close()

        return await loop.run_in_executor(None, _sync)

    async def get_top_chatters(
        self, channel_id: int, limit: int, since: datetime | None = None,
    ) -> list[tuple[str, int]]:
        """(name, message count) pairs, most active first."""
        table = channel_table(ChannelTable.LOG, channel_id)
        loop = asyncio.get_running_loop()

        def _sync() -> list[tuple[str, int]]:
            conn = self._get_connection()
            try:
                where = "WHERE timestamp >= ?" if since else ""
                params: tuple = (db_timestamp(since),) if since else ()
                rows = conn.execute(
                    f"""
                    SELECT sender_id, MAX(sender_nick) AS name, COUNT(*) AS cnt
                    FROM {table}
                    {where}
                    GROUP BY sender_id
                    ORDER BY cnt DESC
                    LIMIT ?
                    """,
                    (*params, limit),
                ).fetchall()
                return [(r["name"], r["cnt"]) for r in rows]
            finally:
                conn.close()

        return await loop.run_in_executor(None, _sync)

    # ══════════════════════════════════════════════════════════
    #  Markov adjacency
    # ══════════════════════════════════════════════════════════

    async def insert_markov_pairs(self, channel_id: int, pairs: list[tuple[str, str]]) -> int:
        """Append (word, succ) rows. Duplicates are kept; they are the weights."""
        if not pairs:
            return 0
        table = channel_table(ChannelTable.MARKOV, channel_id)
        loop = asyncio.get_running_loop()

        def _sync() -> int:
            conn = self._get_connection()
            try:
                conn.executemany(f"INSERT INTO {table} (word, succ) VALUES (?, ?)", pairs)
                conn.commit()
                return len(pairs)
            finally:
                conn.close()

        return await loop.run_in_executor(None, _sync)

    async def get_markov_successors(self, channel_id: int, word: str) -> list[str]:
        """All successor rows of ``word`` (case-insensitive), one entry per row."""
        table = channel_table(ChannelTable.MARKOV, channel_id)
        loop = asyncio.get_running_loop()

        def _sync() -> list[str]:
            conn = self._get_connection()
            try:
                rows = conn.execute(
                    f"SELECT succ FROM {table} WHERE word = ? COLLATE NOCASE",
                    (word,),
                ).fetchall()
                return [r["succ"] for r in rows]
            finally:
                conn.close()

        return await loop.run_in_executor(None, _sync)

    # ══════════════════════════════════════════════════════════
    #  Offline-time accrual
    # ══════════════════════════════════════════════════════════

    async def add_offline_time(self, channel_id: int, user_id: int, seconds: int = 60) -> None:
        """Insert the user at ``seconds`` or add ``seconds`` to their total."""
        table = channel_table(ChannelTable.OFFLINERS, channel_id)
        loop = asyncio.get_running_loop()

        def _sync() -> None:
            conn = self._get_connection()
            try:
                conn.execute(
                    f"""
                    INSERT INTO {table} (offliner_id, time_s) VALUES (?, ?)
                    ON CONFLICT(offliner_id) DO UPDATE SET time_s = time_s + excluded.time_s
                    """,
                    (user_id, seconds),
                )
                conn.commit()
            finally:
                conn.close()

        await loop.run_in_executor(None, _sync)

    async def get_offline_time(self, channel_id: int, user_id: int) -> int:
        """Accrued offline seconds, 0 if never seen."""
        table = channel_table(ChannelTable.OFFLINERS, channel_id)
        loop = asyncio.get_running_loop()

        def _sync() -> int:
            conn = self._get_connection()
            try:
                row = conn.execute(
                    f"SELECT time_s FROM {table} WHERE offliner_id = ?", (user_id,),
                ).fetchone()
                return row["time_s"] if row else 0
            finally:
                conn.close()

        return await loop.run_in_executor(None, _sync)

    # ══════════════════════════════════════════════════════════
    #  Channel commands
    # ══════════════════════════════════════════════════════════

    async def set_channel_command(
        self, channel_id: int, name: str, kind: CommandKind, expression: str,
    ) -> None:
        """Create or replace a custom command. Replacing resets its counter."""
        table = channel_table(ChannelTable.COMMANDS, channel_id)
        loop = asyncio.get_running_loop()

        def _sync() -> None:
            conn = self._get_connection()
            try:
                conn.execute(
                    f"INSERT OR REPLACE INTO {table} (name, type, expression, metadata) "
                    "VALUES (?, ?, ?, 0)",
                    (name, kind.value, expression),
                )
                conn.commit()
            finally:
                conn.close()

        await loop.run_in_executor(None, _sync)

    async def use_channel_command(self, channel_id: int, name: str) -> ChannelCommand | None:
        """Bump the usage counter, then read the command back.

        Two separate statements: concurrent uses of the same command may
        observe each other's increments.
        """
        table = channel_table(ChannelTable.COMMANDS, channel_id)
        loop = asyncio.get_running_loop()

        def _sync() -> ChannelCommand | None:
            conn = self._get_connection()
            try:
                conn.execute(f"UPDATE {table} SET metadata = metadata + 1 WHERE name = ?", (name,))
                conn.commit()
                row = conn.execute(
                    f"SELECT name, type, expression, metadata FROM {table} WHERE name = ?",
                    (name,),
                ).fetchone()
                if not row:
                    return None
                return ChannelCommand(
                    name=row["name"],
                    kind=CommandKind(row["type"]),
                    expression=row["expression"],
                    usage_count=row["metadata"],
                )
            finally:
                conn.close()

        return await loop.run_in_executor(None, _sync)

    async def remove_channel_command(self, channel_id: int, name: str) -> int:
        table = channel_table(ChannelTable.COMMANDS, channel_id)
        loop = asyncio.get_running_loop()

        def _sync() -> int:
            conn = self._get_connection()
            try:
                cursor = conn.execute(f"DELETE FROM {table} WHERE name = ?", (name,))
                conn.commit()
                return cursor.rowcount
            finally:
                conn.close()

        return await loop.run_in_executor(None, _sync)

    # ══════════════════════════════════════════════════════════
    #  Aliases
    # ══════════════════════════════════════════════════════════

    async def set_alias(self, owner_id: int, alias: str, alias_cmd: str) -> None:
        loop = asyncio.get_running_loop()

        def _sync() -> None:
            conn = self._get_connection()
            try:
                conn.execute(
                    "INSERT OR REPLACE INTO user_aliases (owner_id, alias, alias_cmd) VALUES (?, ?, ?)",
                    (owner_id, alias, alias_cmd),
                )
                conn.commit()
            finally:
                conn.close()

        await loop.run_in_executor(None, _sync)

    async def get_alias(self, owner_id: int, alias: str) -> str | None:
        loop = asyncio.get_running_loop()

        def _sync() -> str | None:
            conn = self._get_connection()
            try:
                row = conn.execute(
                    "SELECT alias_cmd FROM user_aliases WHERE owner_id = ? AND alias = ?",
                    (owner_id, alias),
                ).fetchone()
                return row["alias_cmd"] if row else None
            finally:
                conn.close()

        return await loop.run_in_executor(None, _sync)

    async def remove_alias(self, owner_id: int, alias: str) -> int:
        loop = asyncio.get_running_loop()

        def _sync() -> int:
            conn = self._get_connection()
            try:
                cursor = conn.execute(
                    "DELETE FROM user_aliases WHERE owner_id = ? AND alias = ?",
                    (owner_id, alias),
                )
                conn.commit()
                return cursor.rowcount
            finally:
                conn.close()

        return await loop.run_in_executor(None, _sync)

    # ══════════════════════════════════════════════════════════
    #  Reminders
    # ══════════════════════════════════════════════════════════

    async def insert_reminder(
        self, from_user_id: int, for_user_id: int, raise_timestamp: datetime, message: str,
    ) -> int:
        loop = asyncio.get_running_loop()

        def _sync() -> int:
            conn = self._get_connection()
            try:
                cursor = conn.execute(
                    "INSERT INTO user_reminders (from_user_id, for_user_id, raise_timestamp, message) "
                    "VALUES (?, ?, ?, ?)",
                    (from_user_id, for_user_id, db_timestamp(raise_timestamp), message),
                )
                conn.commit()
                return cursor.lastrowid
            finally:
                conn.close()

        return await loop.run_in_executor(None, _sync)

    async def pop_due_reminders(self, for_user_id: int, now: datetime) -> list[Reminder]:
        """Return and delete every reminder for the user that is due at ``now``."""
        loop = asyncio.get_running_loop()

        def _sync() -> list[Reminder]:
            conn = self._get_connection()
            try:
                rows = conn.execute(
                    "SELECT * FROM user_reminders WHERE for_user_id = ? AND raise_timestamp <= ? "
                    "ORDER BY raise_timestamp, id",
                    (for_user_id, db_timestamp(now)),
                ).fetchall()
                if not rows:
                    return []
                conn.executemany(
                    "DELETE FROM user_reminders WHERE id = ?",
                    [(r["id"],) for r in rows],
                )
                conn.commit()
                return [
                    Reminder(
                        id=r["id"],
                        from_user_id=r["from_user_id"],
                        for_user_id=r["for_user_id"],
                        raise_timestamp=parse_timestamp(r["raise_timestamp"]),
                        message=r["message"],
                    )
                    for r in rows
                ]
            finally:
                conn.close()

        return await loop.run_in_executor(None, _sync)

    async def clear_sent_reminders(self, from_user_id: int) -> int:
        loop = asyncio.get_running_loop()

        def _sync() -> int:
            conn = self._get_connection()
            try:
                cursor = conn.execute(
                    "DELETE FROM user_reminders WHERE from_user_id = ?", (from_user_id,),
                )
                conn.commit()
                return cursor.rowcount
            finally:
                conn.close()

        return await loop.run_in_executor(None, _sync)

    # ══════════════════════════════════════════════════════════
    #  Lurkers
    # ══════════════════════════════════════════════════════════

    async def set_lurker(self, user_id: int, since: datetime) -> None:
        loop = asyncio.get_running_loop()

        def _sync() -> None:
            conn = self._get_connection()
            try:
                conn.execute(
                    "INSERT OR REPLACE INTO lurkers (lurker_id, timestamp) VALUES (?, ?)",
                    (user_id, db_timestamp(since)),
                )
                conn.commit()
            finally:
                conn.close()

        await loop.run_in_executor(None, _sync)

    async def pop_lurker(self, user_id: int) -> datetime | None:
        """If the user is lurking, clear the flag and return when they started."""
        loop = asyncio.get_running_loop()

        def _sync() -> datetime | None:
            conn = self._get_connection()
            try:
                row = conn.execute(
                    "SELECT timestamp FROM lurkers WHERE lurker_id = ?", (user_id,),
                ).fetchone()
                if not row:
                    return None
                conn.execute("DELETE FROM lurkers WHERE lurker_id = ?", (user_id,))
                conn.commit()
                return parse_timestamp(row["timestamp"])
            finally:
                conn.close()

        return await loop.run_in_executor(None, _sync)

    # ══════════════════════════════════════════════════════════
    #  Hooks
    # ══════════════════════════════════════════════════════════

    async def save_hook(self, channel_id: int, hook: Hook) -> None:
        loop = asyncio.get_running_loop()

        def _sync() -> None:
            conn = self._get_connection()
            try:
                conn.execute(
                    "INSERT OR REPLACE INTO channel_hooks (channel_id, trigger, match_type, response) "
                    "VALUES (?, ?, ?, ?)",
                    (channel_id, hook.trigger, hook.match_type.value, hook.response),
                )
                conn.commit()
            finally:
                conn.close()

        await loop.run_in_executor(None, _sync)

    async def delete_hook(self, channel_id: int, trigger: str) -> int:
        loop = asyncio.get_running_loop()

        def _sync() -> int:
            conn = self._get_connection()
            try:
                cursor = conn.execute(
                    "DELETE FROM channel_hooks WHERE channel_id = ? AND trigger = ?",
                    (channel_id, trigger),
                )
                conn.commit()
                return cursor.rowcount
            finally:
                conn.close()

        return await loop.run_in_executor(None, _sync)

    async def get_hooks(self, channel_id: int) -> list[Hook]:
        """Hooks of a channel in registration order."""
        loop = asyncio.get_running_loop()

        def _sync() -> list[Hook]:
            conn = self._get_connection()
            try:
                rows = conn.execute(
                    "SELECT trigger, match_type, response FROM channel_hooks "
                    "WHERE channel_id = ? ORDER BY id",
                    (channel_id,),
                ).fetchall()
                return [
                    Hook(r["trigger"], HookMatchType(r["match_type"]), r["response"])
                    for r in rows
                ]
            finally:
                conn.close()

        return await loop.run_in_executor(None, _sync)

    # ══════════════════════════════════════════════════════════
    #  Misc: history, feedback, explanations
    # ══════════════════════════════════════════════════════════

    async def log_command(
        self,
        sender_id: int,
        sender_name: str,
        command: str,
        args: list[str],
        elapsed_s: float,
        output: str,
        timestamp: datetime,
    ) -> None:
        loop = asyncio.get_running_loop()

        def _sync() -> None:
            conn = self._get_connection()
            try:
                conn.execute(
                    "INSERT INTO command_history "
                    "(sender_id, sender_name, command, args, execution_time_s, output, timestamp) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (
                        sender_id,
                        sender_name,
                        command,
                        json.dumps(args),
                        elapsed_s,
                        output,
                        db_timestamp(timestamp),
                    ),
                )
                conn.commit()
            finally:
                conn.close()

        await loop.run_in_executor(None, _sync)

    async def save_suggestion(
        self, sender_id: int, sender_name: str, text: str, at: datetime,
    ) -> None:
        loop = asyncio.get_running_loop()

        def _sync() -> None:
            conn = self._get_connection()
            try:
                conn.execute(
                    "INSERT INTO user_feedback (sender_id, sender_name, message, time) "
                    "VALUES (?, ?, ?, ?)",
                    (sender_id, sender_name, text, db_timestamp(at)),
                )
                conn.commit()
            finally:
                conn.close()

        await loop.run_in_executor(None, _sync)

    async def get_explanation(self, code: str) -> str | None:
        loop = asyncio.get_running_loop()

        def _sync() -> str | None:
            conn = self._get_connection()
            try:
                row = conn.execute(
                    "SELECT message FROM explanations WHERE code = ?", (code.upper(),),
                ).fetchone()
                return row["message"] if row else None
            finally:
                conn.close()

        return await loop.run_in_executor(None, _sync)

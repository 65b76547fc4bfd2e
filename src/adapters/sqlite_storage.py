"""SQLite storage adapter.

Implements the core PairStore, MessageStore and AvatarCache ports using a
simple SQLite database.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from typing import Optional

from core.models import MessageRecord, Pair


class SQLiteStorage:
    """Thin SQLite wrapper that satisfies the storage port contracts."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Create tables if they do not exist.

        Tables:
        - pairs: linked QQ room / Telegram chat pairs
        - messages: correlation rows between forwarded messages
        - avatar_cache: last avatar hash uploaded per pair
        """

        with self._connect() as conn:
            # pairs is the durable link table. Both ids are unique so a room
            # or chat can never be linked twice.
            # Fields:
            # - id: auto-increment primary key referenced by avatar_cache
            # - qq_room_id: negative for groups, positive for friends
            # - tg_chat_id: marked Telegram peer id, rewritten on migration
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS pairs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    qq_room_id INTEGER NOT NULL UNIQUE,
                    tg_chat_id INTEGER NOT NULL UNIQUE,
                    created_at TIMESTAMP NOT NULL
                )
                """
            )
            # messages maps a Telegram message to the QQ message it mirrors.
            # Rows are deleted when either side is deleted or recalled.
            # Fields:
            # - tg_chat_id, tg_msg_id: primary key
            # - qq_room_id, seq, rand: lookup key for QQ recall events
            # - time: send time, used to recall friend messages
            # - pktnum: packet counter, used to recall group messages
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS messages (
                    tg_chat_id INTEGER NOT NULL,
                    tg_msg_id INTEGER NOT NULL,
                    qq_room_id INTEGER NOT NULL,
                    seq INTEGER NOT NULL,
                    rand INTEGER NOT NULL,
                    time INTEGER NOT NULL DEFAULT 0,
                    pktnum INTEGER NOT NULL DEFAULT 0,
                    PRIMARY KEY (tg_chat_id, tg_msg_id)
                )
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS messages_qq_key
                ON messages (qq_room_id, seq, rand)
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS avatar_cache (
                    pair_id INTEGER PRIMARY KEY,
                    hash TEXT NOT NULL
                )
                """
            )

    # Pairs

    def list_pairs(self) -> list[Pair]:
        with self._connect() as conn:
            rows = conn.execute("SELECT id, qq_room_id, tg_chat_id FROM pairs").fetchall()
        return [Pair(id=row["id"], qq_room_id=row["qq_room_id"], tg_chat_id=row["tg_chat_id"]) for row in rows]

    def insert_pair(self, qq_room_id: int, tg_chat_id: int) -> Pair:
        created_at = datetime.now(timezone.utc)
        with self._connect() as conn:
            cur = conn.execute(
                "INSERT INTO pairs (qq_room_id, tg_chat_id, created_at) VALUES (?, ?, ?)",
                (qq_room_id, tg_chat_id, created_at.isoformat()),
            )
            pair_id = cur.lastrowid
        return Pair(id=int(pair_id), qq_room_id=qq_room_id, tg_chat_id=tg_chat_id)

    def update_pair_chat(self, pair_id: int, tg_chat_id: int) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE pairs SET tg_chat_id = ? WHERE id = ?",
                (tg_chat_id, pair_id),
            )

    # Messages

    @staticmethod
    def _record_from_row(row: sqlite3.Row) -> MessageRecord:
        return MessageRecord(
            tg_chat_id=row["tg_chat_id"],
            tg_msg_id=row["tg_msg_id"],
            qq_room_id=row["qq_room_id"],
            seq=row["seq"],
            rand=row["rand"],
            time=row["time"],
            pktnum=row["pktnum"],
        )

    def save_message(self, record: MessageRecord) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO messages (
                    tg_chat_id,
                    tg_msg_id,
                    qq_room_id,
                    seq,
                    rand,
                    time,
                    pktnum
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.tg_chat_id,
                    record.tg_msg_id,
                    record.qq_room_id,
                    record.seq,
                    record.rand,
                    record.time,
                    record.pktnum,
                ),
            )

    def pop_by_tg(self, tg_chat_id: int, tg_msg_id: int) -> Optional[MessageRecord]:
        """Delete and return the record for a Telegram message, if any."""

        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM messages WHERE tg_chat_id = ? AND tg_msg_id = ?",
                (tg_chat_id, tg_msg_id),
            ).fetchone()
            if row is None:
                return None
            conn.execute(
                "DELETE FROM messages WHERE tg_chat_id = ? AND tg_msg_id = ?",
                (tg_chat_id, tg_msg_id),
            )
        return self._record_from_row(row)

    def pop_by_qq(self, qq_room_id: int, seq: int, rand: int) -> Optional[MessageRecord]:
        """Delete and return the record matching a QQ recall, if any."""

        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT * FROM messages
                WHERE qq_room_id = ? AND seq = ? AND rand = ?
                LIMIT 1
                """,
                (qq_room_id, seq, rand),
            ).fetchone()
            if row is None:
                return None
            conn.execute(
                "DELETE FROM messages WHERE tg_chat_id = ? AND tg_msg_id = ?",
                (row["tg_chat_id"], row["tg_msg_id"]),
            )
        return self._record_from_row(row)

    # Avatar cache

    def save_avatar_hash(self, pair_id: int, avatar_hash: str) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO avatar_cache (pair_id, hash) VALUES (?, ?)
                ON CONFLICT(pair_id) DO UPDATE SET hash = excluded.hash
                """,
                (pair_id, avatar_hash),
            )

    def get_avatar_hash(self, pair_id: int) -> Optional[str]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT hash FROM avatar_cache WHERE pair_id = ?",
                (pair_id,),
            ).fetchone()
        return row["hash"] if row else None

"""Durable SQLite-backed FIFO of outgoing publishes.

Rows are written before a message is handed to the broker and deleted once
the broker connection reports the publish complete. Whatever is left in the
file when the process stops is replayed, oldest first, on the next connect.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from signalk_mqtt.exceptions import SignalKMqttStoreError
from signalk_mqtt.models.publish import PublishTarget, StoredMessage

_logger = logging.getLogger(__name__)


class OutgoingStore:
    """Ordered outgoing-message queue that survives process restarts."""

    def __init__(self, db_path: str | Path, *, max_messages: int | None = None) -> None:
        if max_messages is not None and max_messages <= 0:
            raise ValueError("max_messages must be > 0")

        self._db_path = Path(db_path)
        self._max_messages = max_messages
        self._lock = threading.RLock()
        self._evicted = 0

        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(
                str(self._db_path),
                isolation_level=None,
                check_same_thread=False,
            )
        except (OSError, sqlite3.Error) as exc:
            raise SignalKMqttStoreError(
                f"Cannot open outgoing store: {exc}",
                path=str(self._db_path),
            ) from exc
        self._conn.row_factory = sqlite3.Row
        self._closed = False
        self._initialize_schema()

    def _initialize_schema(self) -> None:
        with self._lock:
            self._conn.execute("PRAGMA journal_mode=WAL;")
            self._conn.execute("PRAGMA synchronous=FULL;")
            self._conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS outgoing (
                  seq INTEGER PRIMARY KEY AUTOINCREMENT,
                  topic TEXT NOT NULL,
                  payload TEXT NOT NULL,
                  qos INTEGER NOT NULL,
                  retain INTEGER NOT NULL,
                  enqueued_at REAL NOT NULL
                );
                """
            )

    @property
    def path(self) -> Path:
        return self._db_path

    @property
    def evicted_count(self) -> int:
        """Messages dropped by the ``max_messages`` bound since open."""
        return self._evicted

    def _execute(self, sql: str, params: tuple[Any, ...] = ()) -> sqlite3.Cursor:
        if self._closed:
            raise SignalKMqttStoreError("Outgoing store is closed", path=str(self._db_path))
        try:
            return self._conn.execute(sql, params)
        except sqlite3.Error as exc:
            raise SignalKMqttStoreError(f"Outgoing store error: {exc}", path=str(self._db_path)) from exc

    def append(self, target: PublishTarget) -> int:
        """Persist *target* and return its sequence number."""
        return self.append_many([target])[0]

    def append_many(self, targets: Sequence[PublishTarget]) -> list[int]:
        """Persist *targets* in a single transaction, returning their sequence numbers."""
        with self._lock:
            self._execute("BEGIN IMMEDIATE;")
            try:
                seqs: list[int] = []
                for target in targets:
                    cur = self._execute(
                        "INSERT INTO outgoing(topic, payload, qos, retain, enqueued_at) VALUES (?, ?, ?, ?, ?)",
                        (target.topic, target.payload, target.qos, int(target.retain), time.time()),
                    )
                    assert cur.lastrowid is not None  # noqa: S101
                    seqs.append(cur.lastrowid)
                if self._max_messages is not None:
                    self._evict_to_capacity()
                self._execute("COMMIT;")
            except Exception:
                self._conn.execute("ROLLBACK;")
                raise
            return seqs

    def _evict_to_capacity(self) -> None:
        assert self._max_messages is not None  # noqa: S101
        overflow = self.count() - self._max_messages
        if overflow <= 0:
            return
        self._execute(
            "DELETE FROM outgoing WHERE seq IN (SELECT seq FROM outgoing ORDER BY seq ASC LIMIT ?)",
            (overflow,),
        )
        self._evicted += overflow
        _logger.warning("Outgoing store full, evicted %d oldest message(s)", overflow)

    def pending(self, limit: int | None = None) -> list[StoredMessage]:
        """Return stored messages in enqueue order."""
        with self._lock:
            if limit is None:
                rows = self._execute("SELECT * FROM outgoing ORDER BY seq ASC").fetchall()
            else:
                rows = self._execute("SELECT * FROM outgoing ORDER BY seq ASC LIMIT ?", (limit,)).fetchall()
        return [
            StoredMessage(
                seq=row["seq"],
                topic=row["topic"],
                payload=row["payload"],
                qos=row["qos"],
                retain=bool(row["retain"]),
                enqueued_at=row["enqueued_at"],
            )
            for row in rows
        ]

    def remove(self, seq: int) -> bool:
        """Delete a delivered message. Returns False if it was already gone."""
        with self._lock:
            cur = self._execute("DELETE FROM outgoing WHERE seq = ?", (seq,))
            return cur.rowcount > 0

    def count(self) -> int:
        with self._lock:
            row = self._execute("SELECT COUNT(*) FROM outgoing").fetchone()
        return int(row[0])

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._conn.close()
        _logger.debug("Outgoing store closed path=%s", self._db_path)

    def __enter__(self) -> OutgoingStore:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

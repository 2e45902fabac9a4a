"""SQLite-backed spool handing tailed lines to the shipping transport."""

import logging
import sqlite3
import threading
import time
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .exceptions import SpoolClosedError, SpoolError
from .models import ROTATION_SENTINEL

logger = logging.getLogger(__name__)

SpoolRecord = Dict[str, object]


class LineSpool:
    """
    Durable FIFO of tailed lines awaiting shipment.

    Dequeued rows move to 'in_flight' and only disappear when acked, so a
    transport that crashes mid-shipment gets them back through
    ``requeue_unacked``. Delivery downstream is therefore at-least-once.
    """

    def __init__(self, db_path: Path, table_name: str = "lines"):
        """
        Initialize the spool.

        Args:
            db_path: Path to the SQLite database file
            table_name: Name of the table holding spooled lines
        """
        self.db_path = Path(db_path)
        self.table_name = table_name
        self._lock = threading.Lock()
        self._local = threading.local()
        self._closed = False
        self._connections: List[sqlite3.Connection] = []

        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a thread-local database connection."""
        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = sqlite3.connect(
                str(self.db_path),
                check_same_thread=False,
                isolation_level=None,
            )
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            self._local.conn = conn
            self._connections.append(conn)
        return conn

    def _init_db(self) -> None:
        conn = self._get_connection()
        conn.execute(f"""
            CREATE TABLE IF NOT EXISTS {self.table_name} (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                path TEXT NOT NULL,
                line TEXT NOT NULL,
                rotation INTEGER NOT NULL DEFAULT 0,
                status TEXT NOT NULL DEFAULT 'pending',
                spooled_at REAL NOT NULL
            )
        """)
        conn.execute(f"""
            CREATE INDEX IF NOT EXISTS idx_{self.table_name}_status
            ON {self.table_name}(status)
        """)

    def _check_open(self) -> None:
        if self._closed:
            raise SpoolClosedError(f"Spool {self.db_path} is closed")

    def enqueue(self, path: str, line: str) -> int:
        """
        Spool one line.

        Args:
            path: Log file the line came from
            line: Line content; the empty sentinel marks a rotation

        Returns:
            Row ID of the spooled line
        """
        self._check_open()
        with self._lock:
            cursor = self._get_connection().execute(
                f"INSERT INTO {self.table_name} (path, line, rotation, spooled_at) VALUES (?, ?, ?, ?)",
                (path, line, int(line == ROTATION_SENTINEL), time.time()),
            )
            return cursor.lastrowid

    def enqueue_batch(self, path: str, lines: List[str]) -> List[int]:
        """
        Spool several lines of one file atomically.

        Returns:
            Row IDs in line order
        """
        self._check_open()
        if not lines:
            return []
        now = time.time()
        with self._lock:
            conn = self._get_connection()
            conn.execute("BEGIN")
            try:
                ids = []
                for line in lines:
                    cursor = conn.execute(
                        f"INSERT INTO {self.table_name} (path, line, rotation, spooled_at) VALUES (?, ?, ?, ?)",
                        (path, line, int(line == ROTATION_SENTINEL), now),
                    )
                    ids.append(cursor.lastrowid)
                conn.execute("COMMIT")
                return ids
            except sqlite3.Error as e:
                conn.execute("ROLLBACK")
                raise SpoolError(f"Failed to spool {len(lines)} line(s) for {path}: {e}") from e

    def dequeue(self, batch_size: int = 100) -> List[Tuple[int, SpoolRecord]]:
        """
        Take the oldest pending lines and mark them in flight.

        Args:
            batch_size: Maximum number of lines to take

        Returns:
            List of (id, record) tuples, record keys: path, line, rotation
        """
        self._check_open()
        with self._lock:
            conn = self._get_connection()
            conn.execute("BEGIN")
            try:
                rows = conn.execute(
                    f"SELECT id, path, line, rotation FROM {self.table_name} "
                    f"WHERE status = 'pending' ORDER BY id LIMIT ?",
                    (batch_size,),
                ).fetchall()
                if rows:
                    ids = [row[0] for row in rows]
                    placeholders = ",".join("?" * len(ids))
                    conn.execute(
                        f"UPDATE {self.table_name} SET status = 'in_flight' WHERE id IN ({placeholders})",
                        ids,
                    )
                conn.execute("COMMIT")
            except sqlite3.Error as e:
                conn.execute("ROLLBACK")
                raise SpoolError(f"Failed to dequeue from {self.db_path}: {e}") from e
        return [
            (row[0], {"path": row[1], "line": row[2], "rotation": bool(row[3])})
            for row in rows
        ]

    def ack(self, ids: List[int]) -> None:
        """Delete lines the transport shipped successfully."""
        self._check_open()
        if not ids:
            return
        with self._lock:
            placeholders = ",".join("?" * len(ids))
            self._get_connection().execute(
                f"DELETE FROM {self.table_name} WHERE id IN ({placeholders})",
                ids,
            )

    def nack(self, ids: List[int]) -> None:
        """Return in-flight lines to the pending state."""
        self._check_open()
        if not ids:
            return
        with self._lock:
            placeholders = ",".join("?" * len(ids))
            self._get_connection().execute(
                f"UPDATE {self.table_name} SET status = 'pending' WHERE id IN ({placeholders})",
                ids,
            )

    def requeue_unacked(self) -> int:
        """
        Return every in-flight line to pending (crash recovery).

        Returns:
            Number of lines requeued
        """
        self._check_open()
        with self._lock:
            cursor = self._get_connection().execute(
                f"UPDATE {self.table_name} SET status = 'pending' WHERE status = 'in_flight'"
            )
            return cursor.rowcount

    def size(self) -> int:
        """Number of pending lines."""
        self._check_open()
        with self._lock:
            cursor = self._get_connection().execute(
                f"SELECT COUNT(*) FROM {self.table_name} WHERE status = 'pending'"
            )
            return cursor.fetchone()[0]

    def close(self) -> None:
        """Close the spool and every connection it opened."""
        if self._closed:
            return
        self._closed = True
        for conn in self._connections:
            conn.close()
        self._connections.clear()
        self._local = threading.local()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class SpoolSink:
    """LineSink writing every line of one file into a LineSpool."""

    def __init__(self, spool: LineSpool, path: str):
        self.spool = spool
        self.path = path

    def process(self, line: str) -> None:
        self.spool.enqueue(self.path, line)


class PrintSink:
    """LineSink writing lines to a text stream, rotations as a marker line."""

    def __init__(self, path: str, stream=None):
        self.path = path
        self.stream = stream

    def process(self, line: str) -> None:
        if line == ROTATION_SENTINEL:
            print(f"--- rotated: {self.path} ---", file=self.stream, flush=True)
        else:
            print(line, file=self.stream, flush=True)


def open_spool(db_path: Optional[Path]) -> Optional[LineSpool]:
    """Open a spool at ``db_path``, creating parent directories, or None."""
    if db_path is None:
        return None
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    spool = LineSpool(db_path)
    requeued = spool.requeue_unacked()
    if requeued:
        logger.info(f"Requeued {requeued} unacknowledged line(s) in {db_path}")
    return spool

"""SQLite backed record of boss squad joins.

The store is the only state shared between processes: the event channel
and a batch runner may open the same file.  WAL journaling lets readers and
the single writer work side by side, and the connection timeout bounds how
long an operation waits for a lock before failing.
"""

from __future__ import annotations

import contextlib
import logging
import os
import sqlite3
from datetime import datetime, timezone
from typing import Iterator, Optional

from .config import JOIN_WINDOW_HOURS, STORE_TIMEOUT
from .errors import DurableStoreError

logger = logging.getLogger(__name__)

TABLE_DEFINITION = (
    """
    CREATE TABLE IF NOT EXISTS bossJoins (
        joinTime TEXT,
        fightId TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS index_joinTime ON bossJoins(joinTime)",
)


class JoinGate:
    """Answers whether a boss squad was joined inside the trailing window."""

    def __init__(
        self,
        path: str,
        *,
        window_hours: int = JOIN_WINDOW_HOURS,
        timeout: float = STORE_TIMEOUT,
    ) -> None:
        self.path = path
        self.window_hours = window_hours
        self.timeout = timeout
        self._initialise()

    def count_recent_joins(self, now: Optional[datetime] = None) -> int:
        """Number of joins recorded within ``window_hours`` of ``now``.

        Without ``now`` the store's own clock decides the window boundary.
        """

        modifier = f"-{self.window_hours} hours"
        if now is None:
            query = "SELECT COUNT(*) FROM bossJoins WHERE joinTime >= datetime('now', ?)"
            params: tuple = (modifier,)
        else:
            query = "SELECT COUNT(*) FROM bossJoins WHERE joinTime >= datetime(?, ?)"
            params = (_utc_text(now), modifier)
        with self._connection() as conn:
            (count,) = conn.execute(query, params).fetchone()
        return int(count)

    def record_join(self, fight_id: str, at: Optional[datetime] = None) -> None:
        """Append a join row; returns only once the row is committed."""

        at = at or datetime.now(timezone.utc)
        with self._connection() as conn:
            with conn:
                conn.execute(
                    "INSERT INTO bossJoins (joinTime, fightId) VALUES (datetime(?), ?)",
                    (_utc_text(at), str(fight_id)),
                )
        logger.debug("Recorded boss join %s at %s", fight_id, at.isoformat())

    def _initialise(self) -> None:
        parent = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(parent, exist_ok=True)
        with self._connection() as conn:
            (mode,) = conn.execute("PRAGMA journal_mode = wal").fetchone()
            if str(mode).lower() != "wal":
                logger.error("Could not set WAL mode: %r", mode)
            with conn:
                for definition in TABLE_DEFINITION:
                    conn.execute(definition)

    @contextlib.contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self.path, timeout=self.timeout)
        except sqlite3.Error as exc:
            raise DurableStoreError(f"Cannot open {self.path}: {exc}") from exc
        try:
            conn.execute("PRAGMA synchronous = FULL")
            conn.execute("PRAGMA temp_store = MEMORY")
            yield conn
        except sqlite3.Error as exc:
            raise DurableStoreError(f"Join store {self.path} failed: {exc}") from exc
        finally:
            conn.close()


def _utc_text(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


__all__ = ["JoinGate", "TABLE_DEFINITION"]

"""
Repository Layer for the Incentive Tracker
==========================================

Two interchangeable stores behind one interface:

- SupabaseRepository: the live hosted backend (tables `incentives` and
  `contributions`), with the realtime change feed served by a
  RealtimeListener running the async client on its own event loop
- DemoRepository: local SQLite fallback used when no backend keys are
  configured; seeded with demo data and notifying in-process subscribers

Backend failures are translated into StoreError carrying the backend's
message so the session layer can roll back and surface it as-is.
"""

import asyncio
import logging
import os
import sqlite3
import threading
from typing import Any, Awaitable, Callable, Dict, List, Optional

from exceptions import StoreError
from models import (
    CONTRIBUTION_COLUMNS,
    CONTRIBUTIONS_TABLE,
    INCENTIVE_COLUMNS,
    INCENTIVES_TABLE,
    ChangeEvent,
    Contribution,
    Incentive,
    utc_now,
)

logger = logging.getLogger(__name__)

ChangeHandler = Callable[[ChangeEvent], None]


def _error_message(exc: Exception) -> str:
    # postgrest APIError carries the backend text in .message
    return getattr(exc, "message", None) or str(exc) or exc.__class__.__name__


class IncentiveRepository:
    """Interface shared by the live and demo stores."""

    demo_mode = False

    def get_all_incentives(self) -> List[Incentive]:
        raise NotImplementedError

    def get_all_contributions(self) -> List[Contribution]:
        raise NotImplementedError

    def insert_contribution(self, incentive_id: Any, amount: float, note: Optional[str] = None) -> Contribution:
        raise NotImplementedError

    def delete_contribution(self, contribution_id: Any) -> None:
        raise NotImplementedError

    def insert_incentive(self, name: str, target: float) -> Incentive:
        raise NotImplementedError

    def subscribe(self, handler: ChangeHandler):
        """Register handler for change events; returns a token for unsubscribe()."""
        raise NotImplementedError

    def unsubscribe(self, token) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass


# ============================================================================
# Live backend
# ============================================================================

class SupabaseRepository(IncentiveRepository):
    """
    Repository backed by an injected supabase client.

    Queries go through the sync client; the change feed goes through an
    optional RealtimeListener wrapping the async client.
    """

    def __init__(self, client, realtime: Optional["RealtimeListener"] = None, channel_name: str = "incentive_changes"):
        self.client = client
        self.realtime = realtime
        self.channel_name = channel_name

    def _execute(self, operation: str, table: str, query) -> List[Dict[str, Any]]:
        try:
            response = query.execute()
        except Exception as e:
            message = _error_message(e)
            logger.error(f"Supabase {operation} on {table} failed: {message}")
            raise StoreError(message, operation=operation, table=table) from e
        return response.data or []

    def get_all_incentives(self) -> List[Incentive]:
        """Get all incentives, oldest first."""
        query = (
            self.client.table(INCENTIVES_TABLE)
            .select(INCENTIVE_COLUMNS)
            .order("created_at", desc=False)
        )
        rows = self._execute("select", INCENTIVES_TABLE, query)
        return [Incentive.from_row(row) for row in rows]

    def get_all_contributions(self) -> List[Contribution]:
        """Get all contributions (full table read)."""
        query = self.client.table(CONTRIBUTIONS_TABLE).select(CONTRIBUTION_COLUMNS)
        rows = self._execute("select", CONTRIBUTIONS_TABLE, query)
        return [Contribution.from_row(row) for row in rows]

    def insert_contribution(self, incentive_id: Any, amount: float, note: Optional[str] = None) -> Contribution:
        """Insert a contribution and return the stored row."""
        payload = {"incentive_id": incentive_id, "amount": amount, "note": note}
        query = self.client.table(CONTRIBUTIONS_TABLE).insert(payload)
        rows = self._execute("insert", CONTRIBUTIONS_TABLE, query)
        if not rows:
            raise StoreError("Insert returned no row", operation="insert", table=CONTRIBUTIONS_TABLE)
        return Contribution.from_row(rows[0])

    def delete_contribution(self, contribution_id: Any) -> None:
        query = self.client.table(CONTRIBUTIONS_TABLE).delete().eq("id", contribution_id)
        self._execute("delete", CONTRIBUTIONS_TABLE, query)

    def insert_incentive(self, name: str, target: float) -> Incentive:
        """Insert an incentive and return the stored row."""
        query = self.client.table(INCENTIVES_TABLE).insert({"name": name, "target": target})
        rows = self._execute("insert", INCENTIVES_TABLE, query)
        if not rows:
            raise StoreError("Insert returned no row", operation="insert", table=INCENTIVES_TABLE)
        return Incentive.from_row(rows[0])

    def subscribe(self, handler: ChangeHandler):
        """
        Listen for contribution inserts/deletes and incentive inserts.

        Returns the realtime channel, or None when this repository was
        built without a RealtimeListener (reads and writes only).

        Raises:
            StoreError: If the channel cannot be opened
        """
        if self.realtime is None:
            logger.warning("No realtime listener configured; push updates disabled")
            return None

        def _callback(payload):
            event = ChangeEvent.from_payload(payload)
            if event is not None:
                handler(event)

        return self.realtime.subscribe(self.channel_name, _callback)

    def unsubscribe(self, token) -> None:
        if token is None or self.realtime is None:
            return
        self.realtime.unsubscribe(token)

    def close(self) -> None:
        if self.realtime is not None:
            self.realtime.close()


class RealtimeListener:
    """
    Runs a supabase async client on its own event loop thread.

    The async client is the only one that can open realtime channels, and
    its subscribe/remove_channel calls are coroutines. Each public method
    schedules the coroutine on the loop and waits for the result, so
    callers stay synchronous. Change callbacks fire on the loop thread.
    """

    def __init__(self, client_factory: Callable[[], Awaitable[Any]], timeout: float = 10.0):
        # client_factory: coroutine function returning an AsyncClient
        self.client_factory = client_factory
        self.timeout = timeout
        self.client = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def loop(self) -> Optional[asyncio.AbstractEventLoop]:
        return self._loop

    def _ensure_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.new_event_loop()
            self._thread = threading.Thread(
                target=self._loop.run_forever, name="incentive-realtime", daemon=True
            )
            self._thread.start()
        return self._loop

    def _run(self, coro, operation: str):
        future = asyncio.run_coroutine_threadsafe(coro, self._ensure_loop())
        try:
            return future.result(self.timeout)
        except Exception as e:
            future.cancel()
            message = _error_message(e)
            logger.error(f"Realtime {operation} failed: {message}")
            raise StoreError(message, operation=operation, table=CONTRIBUTIONS_TABLE) from e

    async def _subscribe(self, channel_name: str, callback):
        if self.client is None:
            self.client = await self.client_factory()
        channel = (
            self.client.channel(channel_name)
            .on_postgres_changes("INSERT", schema="public", table=CONTRIBUTIONS_TABLE, callback=callback)
            .on_postgres_changes("DELETE", schema="public", table=CONTRIBUTIONS_TABLE, callback=callback)
            .on_postgres_changes("INSERT", schema="public", table=INCENTIVES_TABLE, callback=callback)
        )
        await channel.subscribe()
        return channel

    def subscribe(self, channel_name: str, callback):
        """Open channel_name and route postgres changes to callback."""
        channel = self._run(self._subscribe(channel_name, callback), "subscribe")
        logger.info(f"Subscribed to realtime channel {channel_name}")
        return channel

    def unsubscribe(self, channel) -> None:
        if self.client is None:
            return
        self._run(self.client.remove_channel(channel), "unsubscribe")
        logger.info("Removed realtime channel")

    def close(self) -> None:
        """Stop the event loop thread."""
        if self._loop is None:
            return
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(self.timeout)
        self._loop.close()
        self._loop = None
        self._thread = None


# ============================================================================
# Demo backend
# ============================================================================

class DemoRepository(IncentiveRepository):
    """SQLite-backed store for demo mode."""

    demo_mode = True

    def __init__(self, db_path: str):
        self.db_path = db_path
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._handlers: Dict[int, ChangeHandler] = {}
        self._next_token = 1

    def close(self):
        """Close database connection."""
        self.conn.close()

    def init_db(self) -> None:
        """Create tables if missing."""
        try:
            self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS incentives (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                target REAL NOT NULL,
                created_at TEXT NOT NULL
            );
            CREATE TABLE IF NOT EXISTS contributions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                incentive_id INTEGER NOT NULL REFERENCES incentives(id),
                amount REAL NOT NULL,
                note TEXT,
                created_at TEXT NOT NULL
            );
            """)
            self.conn.commit()
        except sqlite3.Error as e:
            raise StoreError(str(e), operation="init") from e

    def seed_data_if_empty(self) -> None:
        """Seed demo data if no incentives exist yet."""
        from demo_data import seed_demo_store

        row = self.conn.execute("SELECT COUNT(*) AS c FROM incentives").fetchone()
        if row["c"] > 0:
            logger.info("Demo store already has data, skipping seed")
            return
        logger.info("Seeding demo data...")
        seed_demo_store(self)
        logger.info("Demo data seeding complete")

    def reset_demo(self) -> None:
        """Delete the demo file and start over from seed data."""
        logger.warning("Resetting demo store...")
        self.conn.close()
        if os.path.exists(self.db_path):
            os.remove(self.db_path)
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.init_db()
        self.seed_data_if_empty()

    def _query(self, operation: str, table: str, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        try:
            return self.conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            logger.error(f"Demo {operation} on {table} failed: {e}")
            raise StoreError(str(e), operation=operation, table=table) from e

    def _write(self, operation: str, table: str, sql: str, params: tuple = ()) -> int:
        try:
            cursor = self.conn.execute(sql, params)
            self.conn.commit()
            return cursor.lastrowid
        except sqlite3.Error as e:
            self.conn.rollback()
            logger.error(f"Demo {operation} on {table} failed: {e}")
            raise StoreError(str(e), operation=operation, table=table) from e

    def get_all_incentives(self) -> List[Incentive]:
        """Get all incentives, oldest first."""
        rows = self._query(
            "select", INCENTIVES_TABLE,
            f"SELECT {INCENTIVE_COLUMNS} FROM incentives ORDER BY created_at ASC, id ASC"
        )
        return [Incentive.from_row(dict(row)) for row in rows]

    def get_all_contributions(self) -> List[Contribution]:
        """Get all contributions."""
        rows = self._query("select", CONTRIBUTIONS_TABLE, f"SELECT {CONTRIBUTION_COLUMNS} FROM contributions")
        return [Contribution.from_row(dict(row)) for row in rows]

    def _get_contribution_row(self, contribution_id: Any) -> Optional[Dict[str, Any]]:
        rows = self._query(
            "select", CONTRIBUTIONS_TABLE,
            f"SELECT {CONTRIBUTION_COLUMNS} FROM contributions WHERE id = ?", (contribution_id,)
        )
        return dict(rows[0]) if rows else None

    def insert_contribution(self, incentive_id: Any, amount: float, note: Optional[str] = None,
                            created_at: Optional[str] = None, notify: bool = True) -> Contribution:
        """Insert a contribution and notify subscribers."""
        exists = self._query("select", INCENTIVES_TABLE, "SELECT 1 FROM incentives WHERE id = ?", (incentive_id,))
        if not exists:
            raise StoreError(
                f"Incentive not found: {incentive_id}", operation="insert", table=CONTRIBUTIONS_TABLE
            )
        new_id = self._write(
            "insert", CONTRIBUTIONS_TABLE,
            "INSERT INTO contributions (incentive_id, amount, note, created_at) VALUES (?, ?, ?, ?)",
            (incentive_id, amount, note, created_at or utc_now().isoformat()),
        )
        row = self._get_contribution_row(new_id)
        if notify:
            self._notify("INSERT", CONTRIBUTIONS_TABLE, new=row)
        return Contribution.from_row(row)

    def delete_contribution(self, contribution_id: Any) -> None:
        """Delete a contribution and notify subscribers."""
        row = self._get_contribution_row(contribution_id)
        if row is None:
            return
        self._write("delete", CONTRIBUTIONS_TABLE, "DELETE FROM contributions WHERE id = ?", (contribution_id,))
        self._notify("DELETE", CONTRIBUTIONS_TABLE, old=row)

    def insert_incentive(self, name: str, target: float, created_at: Optional[str] = None,
                         notify: bool = True) -> Incentive:
        """Insert an incentive and notify subscribers."""
        new_id = self._write(
            "insert", INCENTIVES_TABLE,
            "INSERT INTO incentives (name, target, created_at) VALUES (?, ?, ?)",
            (name, target, created_at or utc_now().isoformat()),
        )
        rows = self._query(
            "select", INCENTIVES_TABLE, f"SELECT {INCENTIVE_COLUMNS} FROM incentives WHERE id = ?", (new_id,)
        )
        row = dict(rows[0])
        if notify:
            self._notify("INSERT", INCENTIVES_TABLE, new=row)
        return Incentive.from_row(row)

    def subscribe(self, handler: ChangeHandler) -> int:
        token = self._next_token
        self._next_token += 1
        self._handlers[token] = handler
        return token

    def unsubscribe(self, token) -> None:
        self._handlers.pop(token, None)

    def _notify(self, event_type: str, table: str, new: Optional[dict] = None, old: Optional[dict] = None) -> None:
        event = ChangeEvent.from_payload({"eventType": event_type, "table": table, "new": new, "old": old})
        for handler in list(self._handlers.values()):
            handler(event)

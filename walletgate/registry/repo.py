from __future__ import annotations

import asyncio
import logging
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, Protocol

from walletgate.registry.models import RegistrationRecord, StoreError

logger = logging.getLogger(__name__)


class RegistryStore(Protocol):
    async def get(self, wallet: str) -> Optional[RegistrationRecord]: ...
    async def reserve(self, wallet: str) -> bool: ...
    async def put(self, wallet: str, invite_url: str) -> bool: ...
    async def release(self, wallet: str) -> None: ...


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class InMemoryRegistryStore:
    """
    Simple in-memory store for local dev/tests.
    Same insert-if-absent contract as the SQLite store.
    """

    def __init__(self) -> None:
        self._by_wallet: Dict[str, RegistrationRecord] = {}
        self._lock = asyncio.Lock()

    async def get(self, wallet: str) -> Optional[RegistrationRecord]:
        async with self._lock:
            return self._by_wallet.get(wallet)

    async def reserve(self, wallet: str) -> bool:
        async with self._lock:
            if wallet in self._by_wallet:
                return False
            self._by_wallet[wallet] = RegistrationRecord(wallet=wallet, invite_url=None, issued_at=None)
            return True

    async def put(self, wallet: str, invite_url: str) -> bool:
        async with self._lock:
            existing = self._by_wallet.get(wallet)
            if existing is not None and not existing.reserved_only:
                return False
            self._by_wallet[wallet] = RegistrationRecord(
                wallet=wallet,
                invite_url=invite_url,
                issued_at=_utc_now(),
            )
            return True

    async def release(self, wallet: str) -> None:
        async with self._lock:
            existing = self._by_wallet.get(wallet)
            if existing is not None and existing.reserved_only:
                del self._by_wallet[wallet]


class SqliteRegistryStore:
    """
    Durable wallet -> invite mapping in a local SQLite file.

    One connection, guarded by a lock, shared by every request. Blocking calls
    run on a worker thread. Writes are single statements, so insert-if-absent
    is atomic without an explicit transaction.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def open(self) -> None:
        """Open the store, creating the file and table on first run."""
        if self._conn is not None:
            return
        created = not self._path.exists()
        try:
            conn = sqlite3.connect(
                str(self._path),
                timeout=30,
                isolation_level=None,  # autocommit
                check_same_thread=False,
            )
            conn.row_factory = sqlite3.Row
            conn.execute("""
                CREATE TABLE IF NOT EXISTS registrations (
                    wallet TEXT PRIMARY KEY,
                    invite_url TEXT NULL,
                    issued_at TEXT NULL
                )
            """)
            # Only this process writes the file, so a reservation seen at open
            # belongs to a request that died before recording its invite.
            orphaned = [
                row["wallet"]
                for row in conn.execute("SELECT wallet FROM registrations WHERE invite_url IS NULL")
            ]
            conn.execute("DELETE FROM registrations WHERE invite_url IS NULL")
        except sqlite3.Error as e:
            raise StoreError(f"could not open registry store at {self._path}: {e}") from e
        self._conn = conn
        for wallet in orphaned:
            logger.warning("[STORE] dropped orphaned reservation wallet=%s", wallet)
        if created:
            logger.info("[STORE] created registry store path=%s", self._path)
        else:
            logger.debug("[STORE] opened registry store path=%s", self._path)

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
                logger.debug("[STORE] closed registry store path=%s", self._path)

    def _execute(self, sql: str, params: tuple) -> sqlite3.Cursor:
        if self._conn is None:
            raise StoreError("registry store is not open")
        try:
            return self._conn.execute(sql, params)
        except sqlite3.Error as e:
            raise StoreError(f"registry store query failed: {e}") from e

    def _get(self, wallet: str) -> Optional[RegistrationRecord]:
        with self._lock:
            row = self._execute(
                "SELECT wallet, invite_url, issued_at FROM registrations WHERE wallet = ?",
                (wallet,),
            ).fetchone()
        if row is None:
            return None
        return RegistrationRecord(
            wallet=row["wallet"],
            invite_url=row["invite_url"],
            issued_at=row["issued_at"],
        )

    def _reserve(self, wallet: str) -> bool:
        with self._lock:
            cur = self._execute(
                "INSERT OR IGNORE INTO registrations (wallet, invite_url, issued_at) VALUES (?, NULL, NULL)",
                (wallet,),
            )
            return cur.rowcount == 1

    def _put(self, wallet: str, invite_url: str) -> bool:
        # Fills a pending reservation; an issued row is left untouched.
        with self._lock:
            cur = self._execute(
                """
                INSERT INTO registrations (wallet, invite_url, issued_at)
                VALUES (?, ?, ?)
                ON CONFLICT (wallet) DO UPDATE SET
                    invite_url = excluded.invite_url,
                    issued_at = excluded.issued_at
                WHERE registrations.invite_url IS NULL
                """,
                (wallet, invite_url, _utc_now()),
            )
            return cur.rowcount == 1

    def _release(self, wallet: str) -> None:
        with self._lock:
            self._execute(
                "DELETE FROM registrations WHERE wallet = ? AND invite_url IS NULL",
                (wallet,),
            )

    async def get(self, wallet: str) -> Optional[RegistrationRecord]:
        return await asyncio.to_thread(self._get, wallet)

    async def reserve(self, wallet: str) -> bool:
        return await asyncio.to_thread(self._reserve, wallet)

    async def put(self, wallet: str, invite_url: str) -> bool:
        return await asyncio.to_thread(self._put, wallet, invite_url)

    async def release(self, wallet: str) -> None:
        await asyncio.to_thread(self._release, wallet)

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from sqlite3 import Cursor
from typing import Any, Dict, Optional, Sequence, Tuple
from urllib.parse import urlparse

from ambit.base.interface import BaseInterface, Fetch
from ambit.exception import AmbitError

try:
    import aiosqlite

    AIOSQLITE_ENABLED = True
except ModuleNotFoundError:
    AIOSQLITE_ENABLED = False


class SQLitePool(BaseInterface):
    """Interface for connecting to a SQLite database

    SQLite is served by a single connection, so it is handed to one task at
    a time. A unit of work must therefore not open a second, independent
    operation on the same pool while it holds the connection.
    """

    scheme = "sqlite"
    POSITIONAL_SUB = "?"
    BEGIN_READ_ONLY = "BEGIN"

    def __init__(
        self,
        db_path: str,
        min_size: int = 1,
        max_size: Optional[int] = None,
    ):
        if db_path.startswith(f"{self.scheme}:"):
            db_path = urlparse(db_path).path
            # sqlite:///relative.db and sqlite:////absolute.db
            db_path = db_path[1:] if db_path.startswith("/") else db_path
        self._db_path = db_path or ":memory:"
        self._conn = None
        self._lock: Optional[asyncio.Lock] = None
        super().__init__(min_size=min_size, max_size=max_size)

    def __str__(self) -> str:
        return f"<{self.__class__.__name__} {self._db_path}>"

    def _populate_connection_args(self): ...

    def _populate_dsn(self):
        self._dsn = f"{self.scheme}:///{self._db_path}"
        self._full_dsn = self._dsn

    def _setup_pool(self):
        if not AIOSQLITE_ENABLED:
            raise AmbitError(
                "SQLite driver not found. Try reinstalling ambit: "
                "pip install ambit[sqlite]"
            )

    @property
    def db_path(self) -> str:
        return self._db_path

    async def open(self):
        """Open connections to the pool"""
        if self._conn is not None:
            return
        self._conn = await aiosqlite.connect(
            self._db_path, isolation_level=None
        )
        self._conn.row_factory = self._dict_factory

    async def close(self):
        """Close connections to the pool"""
        if self._conn is None:
            return
        await self._conn.close()
        self._conn = None

    @asynccontextmanager
    async def connection(self, timeout: Optional[float] = None):
        """Obtain a connection to the database

        Args:
            timeout (float, optional): Time to wait for the connection to
                be released by another task. Defaults to `None`.

        Returns:
            AsyncIterator[Connection]: Iterator that will yield a connection

        Yields:
            Iterator[AsyncIterator[Connection]]: A database connection
        """
        if self._lock is None:
            self._lock = asyncio.Lock()
        await self._acquire_lock(timeout)
        try:
            if self._conn is None:
                await self.open()
            yield self._conn
        finally:
            self._lock.release()

    async def _acquire_lock(self, timeout: Optional[float]) -> None:
        if timeout is None:
            await self._lock.acquire()
            return
        acquire = asyncio.ensure_future(self._lock.acquire())
        try:
            await asyncio.wait_for(asyncio.shield(acquire), timeout)
        except BaseException:
            # The lock can still be granted after the wait gave up
            acquire.add_done_callback(self._release_abandoned)
            acquire.cancel()
            raise

    def _release_abandoned(self, acquire: asyncio.Future) -> None:
        if not acquire.cancelled() and acquire.exception() is None:
            self._lock.release()

    async def _run_sql(
        self,
        conn: Any,
        query: str,
        args: Sequence[Any],
        fetch: Fetch,
        prepare: bool = False,
    ) -> Any:
        cursor = await conn.execute(query, tuple(args))
        try:
            if fetch is Fetch.NONE:
                return cursor.rowcount
            if fetch is Fetch.ONE:
                return await cursor.fetchone()
            return list(await cursor.fetchall())
        finally:
            await cursor.close()

    async def _begin(self, conn: Any, read_only: bool) -> None:
        await super()._begin(conn, read_only)
        if read_only:
            await self._run_sql(conn, "PRAGMA query_only = ON", (), Fetch.NONE)

    async def _commit(self, conn: Any) -> None:
        try:
            await super()._commit(conn)
        except Exception:
            # A COMMIT failing on a deferred constraint leaves the
            # transaction open
            if conn.in_transaction:
                await super()._rollback(conn)
            raise
        finally:
            await self._reset_query_only(conn)

    async def _rollback(self, conn: Any) -> None:
        try:
            if conn.in_transaction:
                await super()._rollback(conn)
        finally:
            await self._reset_query_only(conn)

    async def _reset_query_only(self, conn: Any) -> None:
        await self._run_sql(conn, "PRAGMA query_only = OFF", (), Fetch.NONE)

    @staticmethod
    def _dict_factory(cursor: Cursor, row: Tuple[Any, ...]) -> Dict[str, Any]:
        return {val[0]: row[idx] for idx, val in enumerate(cursor.description)}

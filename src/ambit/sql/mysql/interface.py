from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional, Sequence

from ambit.base.interface import BaseInterface, Fetch
from ambit.exception import AmbitError

try:
    from asyncmy import Connection, create_pool
    from asyncmy.cursors import DictCursor

    MYSQL_ENABLED = True
except ModuleNotFoundError:
    MYSQL_ENABLED = False


class MysqlPool(BaseInterface):
    """Interface for connecting to a MySQL database"""

    scheme = "mysql"
    default_port = 3306
    BEGIN = "START TRANSACTION READ WRITE"
    BEGIN_READ_ONLY = "START TRANSACTION READ ONLY"

    def _setup_pool(self):
        if not MYSQL_ENABLED:
            raise AmbitError(
                "MySQL driver not found. Try reinstalling ambit: "
                "pip install ambit[mysql]"
            )
        self._pool = None
        self._open_lock: Optional[asyncio.Lock] = None

    async def open(self):
        """Open connections to the pool"""
        if self._open_lock is None:
            self._open_lock = asyncio.Lock()
        async with self._open_lock:
            if self._pool is not None:
                return
            self._pool = await create_pool(
                user=self.user,
                password=self.password,
                host=self.host,
                port=self.port,
                db=self.db,
                minsize=self.min_size,
                maxsize=self.max_size or 10,
                autocommit=True,
            )

    async def close(self):
        """Close connections to the pool"""
        if self._pool is None:
            return
        self._pool.close()
        await self._pool.wait_closed()
        self._pool = None

    @asynccontextmanager
    async def connection(
        self, timeout: Optional[float] = None
    ) -> AsyncIterator[Connection]:
        """Obtain a connection to the database

        Args:
            timeout (float, optional): _Not implemented_. Defaults to `None`.

        Returns:
            AsyncIterator[Connection]: Iterator that will yield a connection

        Yields:
            Iterator[AsyncIterator[Connection]]: A database connection
        """
        if self._pool is None:
            await self.open()
        async with self._pool.acquire() as conn:
            yield conn

    async def _run_sql(
        self,
        conn: Any,
        query: str,
        args: Sequence[Any],
        fetch: Fetch,
        prepare: bool = False,
    ) -> Any:
        async with conn.cursor(cursor=DictCursor) as cursor:
            await cursor.execute(query, list(args) if args else None)
            if fetch is Fetch.NONE:
                return cursor.rowcount
            if fetch is Fetch.ONE:
                return await cursor.fetchone()
            return list(await cursor.fetchall())

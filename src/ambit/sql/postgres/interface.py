from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional, Sequence

from ambit.base.interface import BaseInterface, Fetch
from ambit.exception import AmbitError

try:
    from psycopg import AsyncConnection
    from psycopg.rows import dict_row
    from psycopg_pool import AsyncConnectionPool

    POSTGRES_ENABLED = True
except ModuleNotFoundError:
    POSTGRES_ENABLED = False


class PostgresPool(BaseInterface):
    """Interface for connecting to a Postgres database"""

    scheme = "postgres"
    aliases = ("postgresql",)
    default_port = 5432

    def _setup_pool(self):
        if not POSTGRES_ENABLED:
            raise AmbitError(
                "Postgres driver not found. Try reinstalling ambit: "
                "pip install ambit[postgres]"
            )
        self._pool = AsyncConnectionPool(
            self.full_dsn,
            min_size=self.min_size,
            max_size=self.max_size,
            kwargs={"autocommit": True},
            open=False,
        )
        self._opened = False

    async def open(self):
        """Open connections to the pool"""
        await self._pool.open()
        self._opened = True

    async def close(self):
        """Close connections to the pool"""
        await self._pool.close()
        self._opened = False

    @asynccontextmanager
    async def connection(
        self, timeout: Optional[float] = None
    ) -> AsyncIterator[AsyncConnection]:
        """Obtain a connection to the database

        Args:
            timeout (float, optional): Time before an error is raised on
                failure to connect. Defaults to `None`.

        Returns:
            AsyncIterator[Connection]: Iterator that will yield a connection

        Yields:
            Iterator[AsyncIterator[Connection]]: A database connection
        """
        if not self._opened:
            await self.open()
        async with self._pool.connection(timeout=timeout) as conn:
            yield conn

    async def _run_sql(
        self,
        conn: Any,
        query: str,
        args: Sequence[Any],
        fetch: Fetch,
        prepare: bool = False,
    ) -> Any:
        cursor = await conn.execute(
            query, list(args) if args else None, prepare=prepare or None
        )
        if fetch is Fetch.NONE:
            return cursor.rowcount
        cursor.row_factory = dict_row
        if fetch is Fetch.ONE:
            return await cursor.fetchone()
        return await cursor.fetchall()

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Sequence

import pytest

from ambit import Client
from ambit.base.interface import BaseInterface, Fetch


class FakeConnection:
    def __init__(self, pool: "FakePool", number: int) -> None:
        self.pool = pool
        self.number = number

    def __repr__(self) -> str:
        return f"<FakeConnection {self.pool.name}#{self.number}>"


class FakePool(BaseInterface):
    """In-memory interface recording every statement it is asked to run

    ``results`` maps a query to the rows it returns, and ``failures`` maps a
    query to the exception raised when it runs.
    """

    scheme = "fake"

    def __init__(self, name: str, **kwargs: Any) -> None:
        self.name = name
        self.log: List[str] = []
        self.calls: List[tuple] = []
        self.results: Dict[str, Any] = {}
        self.failures: Dict[str, BaseException] = {}
        self.delays: Dict[str, float] = {}
        self.acquired = 0
        self.released = 0
        self.opened = False
        self.closed = False
        self.close_error: Optional[Exception] = None
        self.acquire_error: Optional[Exception] = None
        super().__init__(dsn=f"fake://user@{name}:1/db", **kwargs)

    def __repr__(self) -> str:
        return f"<FakePool {self.name}>"

    def _setup_pool(self): ...

    async def open(self):
        self.opened = True

    async def close(self):
        self.closed = True
        if self.close_error:
            raise self.close_error

    @asynccontextmanager
    async def connection(self, timeout: Optional[float] = None):
        if self.acquire_error:
            raise self.acquire_error
        self.acquired += 1
        try:
            yield FakeConnection(self, self.acquired)
        finally:
            self.released += 1

    async def _run_sql(
        self,
        conn: Any,
        query: str,
        args: Sequence[Any],
        fetch: Fetch,
        prepare: bool = False,
    ) -> Any:
        self.log.append(query)
        self.calls.append((conn, query, tuple(args), prepare))
        if query in self.delays:
            await asyncio.sleep(self.delays[query])
        if query in self.failures:
            raise self.failures[query]
        rows = self.results.get(query, [])
        if fetch is Fetch.NONE:
            return len(rows)
        if fetch is Fetch.ONE:
            return rows[0] if rows else None
        return list(rows)


@pytest.fixture
def primary():
    return FakePool("primary")


@pytest.fixture
def replica():
    return FakePool("replica")


@pytest.fixture
def client(primary, replica):
    return Client(primary, [replica])


@pytest.fixture
def make_pool():
    return FakePool

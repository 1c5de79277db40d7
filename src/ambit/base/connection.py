from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Dict, List, Optional, TypeVar
from uuid import uuid4

from ambit.convert import convert_sql_params
from ambit.exception import RecordNotFound, TransactionError

from .interface import Fetch

if TYPE_CHECKING:
    from .interface import BaseInterface

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def wait_until(awaitable: Awaitable[T], deadline: Optional[float]) -> T:
    """Await something, giving up at a ``time.monotonic()`` deadline"""
    if deadline is None:
        return await awaitable
    remaining = deadline - time.monotonic()
    if remaining <= 0:
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise asyncio.TimeoutError("Deadline exceeded")
    return await asyncio.wait_for(awaitable, remaining)


class TransactionState(Enum):
    """Transaction state machine states"""

    PENDING = "pending"  # Created but not started
    ACTIVE = "active"  # Transaction has begun
    COMMITTED = "committed"  # Transaction committed successfully
    ROLLED_BACK = "rolled_back"  # Transaction was rolled back


class Statement:
    """A query bound to a connection handle, reusable with new arguments"""

    __slots__ = ("handle", "sql")

    def __init__(self, handle: Connection, query: str) -> None:
        self.handle = handle
        self.sql = query

    def __repr__(self) -> str:
        return f"Statement(sql={self.sql[:20]}...)"

    async def execute(self, *args: Any) -> int:
        return await self.handle._run(self.sql, args, Fetch.NONE, True)

    async def query(self, *args: Any) -> List[Dict[str, Any]]:
        return await self.handle._run(self.sql, args, Fetch.ALL, True)

    async def query_row(self, *args: Any) -> Dict[str, Any]:
        return await self.handle._row(self.sql, args, True)


class Connection:
    """A single database connection taken from a pool

    Statements run in autocommit mode. Queries may use ``$1``-style
    placeholders, which are translated to the marker of the driver.
    """

    def __init__(
        self,
        interface: BaseInterface,
        raw: Any,
        deadline: Optional[float] = None,
    ) -> None:
        self.interface = interface
        self.raw = raw
        self.deadline = deadline

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.interface}>"

    async def execute(self, query: str, *args: Any) -> int:
        """Run a statement and return the number of affected rows"""
        return await self._run(query, args, Fetch.NONE)

    async def query(self, query: str, *args: Any) -> List[Dict[str, Any]]:
        """Run a query and return every row as a dictionary"""
        return await self._run(query, args, Fetch.ALL)

    async def query_row(self, query: str, *args: Any) -> Dict[str, Any]:
        """Run a query and return its first row

        Raises:
            RecordNotFound: If the query did not return any row
        """
        return await self._row(query, args)

    def prepare(self, query: str) -> Statement:
        """Bind a query to this handle so it can be run repeatedly"""
        self._check_usable()
        return Statement(self, query)

    def _check_usable(self) -> None: ...

    async def _run(
        self, query: str, args: Any, fetch: Fetch, prepare: bool = False
    ) -> Any:
        self._check_usable()
        query, values = convert_sql_params(
            query, args, self.interface.POSITIONAL_SUB
        )
        logger.debug("[SQL] %s | params: %s", " ".join(query.split()), values)
        return await wait_until(
            self.interface._run_sql(self.raw, query, values, fetch, prepare),
            self.deadline,
        )

    async def _row(
        self, query: str, args: Any, prepare: bool = False
    ) -> Dict[str, Any]:
        row = await self._run(query, args, Fetch.ONE, prepare)
        if not row:
            raise RecordNotFound(
                f"Query did not find any record using {tuple(args)}"
            )
        return row


class Transaction(Connection):
    """A connection with an open transaction

    Only the execution engine begins and finalizes a transaction. Once it is
    committed or rolled back, the handle refuses any further use.
    """

    def __init__(
        self,
        interface: BaseInterface,
        raw: Any,
        deadline: Optional[float] = None,
        read_only: bool = False,
    ) -> None:
        super().__init__(interface, raw, deadline)
        self.read_only = read_only
        self.transaction_id = f"txn_{uuid4().hex[:8]}"
        self._state = TransactionState.PENDING

    def __repr__(self) -> str:
        return (
            f"<{self.__class__.__name__} {self.transaction_id} "
            f"{self._state.value} {self.interface}>"
        )

    @property
    def state(self) -> TransactionState:
        return self._state

    @property
    def is_active(self) -> bool:
        """Check if transaction is active"""
        return self._state is TransactionState.ACTIVE

    def _check_usable(self) -> None:
        if self._state in (
            TransactionState.COMMITTED,
            TransactionState.ROLLED_BACK,
        ):
            raise TransactionError(
                f"Transaction {self.transaction_id} already completed"
            )

    async def begin(self) -> None:
        if self._state is not TransactionState.PENDING:
            raise TransactionError(
                f"Transaction {self.transaction_id} already begun"
            )
        logger.debug(
            "Beginning transaction %s (read_only=%s) on %s",
            self.transaction_id,
            self.read_only,
            self.interface,
        )
        await wait_until(
            self.interface._begin(self.raw, self.read_only), self.deadline
        )
        self._state = TransactionState.ACTIVE

    async def commit(self) -> None:
        self._check_usable()
        logger.debug("Committing transaction %s", self.transaction_id)
        try:
            await wait_until(self.interface._commit(self.raw), self.deadline)
        except BaseException:
            # No durable effect is assumed after a failed commit
            self._state = TransactionState.ROLLED_BACK
            raise
        self._state = TransactionState.COMMITTED

    async def rollback(self) -> None:
        self._check_usable()
        logger.debug("Rolling back transaction %s", self.transaction_id)
        try:
            # Not bounded by the deadline
            await self.interface._rollback(self.raw)
        finally:
            self._state = TransactionState.ROLLED_BACK

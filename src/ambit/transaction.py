"""
Transactional execution engine.

Runs a unit of work (``async def work(ctx, conn)``) either inside the
transaction already carried by the context, or inside a new one that begins
before the unit of work and is committed or rolled back before returning.
Nested executions therefore share one transaction, and only the outermost
one decides its fate.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import AsyncExitStack
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, TypeVar

from ambit.base.connection import Connection, Transaction
from ambit.base.interface import BaseInterface
from ambit.context import (
    Context,
    background,
    get_transaction,
    set_transaction,
)
from ambit.exception import (
    AcquireFailed,
    AlreadyInTransaction,
    BeginFailed,
    CommitFailed,
    RollbackFailed,
    UnitOfWorkFailed,
)
from ambit.options import (
    TransactionOption,
    TransactionOptions,
    resolve_options,
)

if TYPE_CHECKING:
    from ambit.client import Client

logger = logging.getLogger(__name__)

T = TypeVar("T")
UnitOfWork = Callable[[Context, Connection], Awaitable[T]]


async def run_in_transaction(
    ctx: Optional[Context],
    client: Client,
    unit_of_work: UnitOfWork[T],
    *options: Optional[TransactionOption],
) -> T:
    """Run a unit of work inside a transaction

    If ``ctx`` already carries a transaction, the unit of work joins it and
    nothing is begun, committed or rolled back here. Otherwise a transaction
    is begun on the pool chosen by the client, installed into a derived
    context, and committed when the unit of work returns or rolled back when
    it raises.

    Example:

    ```python
    async def transfer(ctx, conn):
        await conn.execute("UPDATE account SET balance = balance - $1", 10)
        await audit(ctx)  # joins the same transaction

    await run_in_transaction(background(), client, transfer)
    ```

    Args:
        ctx (Context, optional): The context of the calling chain
        client (Client): Client owning the pools
        unit_of_work (UnitOfWork): Coroutine function receiving the derived
            context and the transaction handle
        options (TransactionOption): Option functions such as
            ``with_read_only()``

    Raises:
        BeginFailed: If no connection could be acquired or the transaction
            could not be begun
        UnitOfWorkFailed: If the unit of work raised; the transaction has
            been rolled back
        CommitFailed: If the commit failed; no rollback is attempted

    Returns:
        T: Whatever the unit of work returned
    """
    ctx = ctx or background()
    resolved = resolve_options(*options)
    ambient = get_transaction(ctx)
    if ambient is not None:
        logger.debug("Joining transaction %s", ambient.transaction_id)
        return await unit_of_work(ctx, ambient)
    return await _run_new_transaction(ctx, client, unit_of_work, resolved)


async def run_in_new_transaction(
    ctx: Optional[Context],
    client: Client,
    unit_of_work: UnitOfWork[T],
    *options: Optional[TransactionOption],
) -> T:
    """Like ``run_in_transaction``, but refuse to join an open transaction

    Raises:
        AlreadyInTransaction: If ``ctx`` already carries a transaction
    """
    ctx = ctx or background()
    resolved = resolve_options(*options)
    ambient = get_transaction(ctx)
    if ambient is not None:
        raise AlreadyInTransaction(
            f"{AlreadyInTransaction.stage}: {ambient.transaction_id}"
        )
    return await _run_new_transaction(ctx, client, unit_of_work, resolved)


async def run_in_single_operation(
    ctx: Optional[Context],
    client: Client,
    unit_of_work: UnitOfWork[T],
    *options: Optional[TransactionOption],
) -> T:
    """Run a unit of work on a plain connection, without a transaction

    The connection is chosen exactly as for a transaction, so read-only work
    is still routed to a replica. An open transaction in ``ctx`` is joined
    as ``run_in_transaction`` would.

    Raises:
        AcquireFailed: If no connection could be acquired
        UnitOfWorkFailed: If the unit of work raised
    """
    ctx = ctx or background()
    resolved = resolve_options(*options)
    ambient = get_transaction(ctx)
    if ambient is not None:
        logger.debug("Joining transaction %s", ambient.transaction_id)
        return await unit_of_work(ctx, ambient)

    pool = client.select(resolved)
    async with AsyncExitStack() as stack:
        try:
            raw = await _acquire(stack, pool, ctx)
        except Exception as e:
            raise AcquireFailed.wrap(e) from e
        conn = Connection(pool, raw, ctx.deadline)
        try:
            return await unit_of_work(ctx, conn)
        except Exception as e:
            raise UnitOfWorkFailed.wrap(e) from e


async def _run_new_transaction(
    ctx: Context,
    client: Client,
    unit_of_work: UnitOfWork[T],
    options: TransactionOptions,
) -> T:
    pool = client.select(options)
    async with AsyncExitStack() as stack:
        try:
            raw = await _acquire(stack, pool, ctx)
        except Exception as e:
            logger.debug("Could not acquire a connection on %s: %s", pool, e)
            raise BeginFailed.wrap(e) from e

        txn = Transaction(pool, raw, ctx.deadline, options.read_only)
        try:
            await txn.begin()
        except Exception as e:
            logger.debug("Could not begin transaction on %s: %s", pool, e)
            # BEGIN may have run before the failure
            error = BeginFailed.wrap(e)
            error.rollback_error = await _rollback(txn)
            raise error from e
        except BaseException:
            await _rollback(txn)
            raise

        try:
            result = await unit_of_work(set_transaction(ctx, txn), txn)
        except Exception as e:
            error = UnitOfWorkFailed.wrap(e)
            error.rollback_error = await _rollback(txn)
            raise error from e
        except BaseException:
            await _rollback(txn)
            raise

        try:
            await txn.commit()
        except Exception as e:
            logger.error(
                "Commit failed for %s: %s", txn.transaction_id, e
            )
            raise CommitFailed.wrap(e) from e

        logger.debug("Transaction %s committed", txn.transaction_id)
        return result


async def _acquire(
    stack: AsyncExitStack, pool: BaseInterface, ctx: Context
) -> Any:
    timeout = ctx.remaining()
    if timeout is not None and timeout <= 0:
        raise asyncio.TimeoutError("Deadline exceeded")
    return await stack.enter_async_context(pool.connection(timeout=timeout))


async def _rollback(txn: Transaction) -> Optional[RollbackFailed]:
    try:
        await txn.rollback()
    except Exception as e:
        logger.critical(
            "CRITICAL: Rollback failed for %s: %s", txn.transaction_id, e
        )
        error = RollbackFailed.wrap(e)
        error.__cause__ = e
        return error
    logger.debug("Transaction %s rolled back", txn.transaction_id)
    return None

"""
Ambient transaction context.

A ``Context`` is passed explicitly down every call chain that may touch the
database. It carries the transaction opened by the outermost execution, so
nested calls can find and join it instead of opening their own, and an
optional deadline that bounds every driver call. Contexts are immutable:
deriving one never changes the parent, which keeps concurrent branches
isolated from each other.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, replace
from typing import Any, Optional

from ambit.base.connection import Transaction


@dataclass(frozen=True)
class Context:
    transaction: Any = None
    deadline: Optional[float] = None

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or ``None`` without one"""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())


_BACKGROUND = Context()


def background() -> Context:
    """An empty context, the root of every call chain"""
    return _BACKGROUND


def with_deadline(ctx: Optional[Context], deadline: float) -> Context:
    """Derive a context that expires at a ``time.monotonic()`` instant

    The derived deadline never extends one inherited from the parent.
    """
    ctx = ctx or background()
    if ctx.deadline is not None and ctx.deadline <= deadline:
        return ctx
    return replace(ctx, deadline=deadline)


def with_timeout(ctx: Optional[Context], seconds: float) -> Context:
    return with_deadline(ctx, time.monotonic() + seconds)


def get_transaction(ctx: Optional[Context]) -> Optional[Transaction]:
    if ctx is None:
        return None
    value = ctx.transaction
    if not isinstance(value, Transaction):
        return None
    return value


def set_transaction(
    ctx: Optional[Context], txn: Optional[Transaction]
) -> Context:
    """Derive a context carrying a transaction

    Set-once: if the context already carries a transaction it is returned
    unchanged, as it is when ``txn`` is ``None``.
    """
    ctx = ctx or background()
    if get_transaction(ctx) is not None or txn is None:
        return ctx
    return replace(ctx, transaction=txn)

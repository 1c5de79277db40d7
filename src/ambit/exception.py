from __future__ import annotations

from typing import Optional


class AmbitError(Exception):
    """Base class for all errors raised by ambit"""


class RecordNotFound(AmbitError):
    """A single-row query did not find any record"""


class TransactionError(AmbitError):
    """Base exception for transaction errors

    Each subclass carries a ``stage`` tag naming the step of the transaction
    protocol that failed, so callers can branch on the type (or the tag)
    instead of parsing messages. The underlying failure is always available
    as ``__cause__``.
    """

    stage: str = "transaction failed"

    def __init__(
        self,
        message: str = "",
        rollback_error: Optional[RollbackFailed] = None,
    ) -> None:
        super().__init__(message or self.stage)
        self.rollback_error = rollback_error

    @classmethod
    def wrap(cls, error: BaseException) -> TransactionError:
        return cls(f"{cls.stage}: {error}")

    def __str__(self) -> str:
        message = super().__str__()
        if self.rollback_error is not None:
            message += f" ({self.rollback_error})"
        return message


class BeginFailed(TransactionError):
    stage = "begin failed"


class CommitFailed(TransactionError):
    stage = "commit failed"


class UnitOfWorkFailed(TransactionError):
    stage = "unit of work failed"


class RollbackFailed(TransactionError):
    stage = "rollback failed"


class AcquireFailed(TransactionError):
    """Raised when a plain connection could not be taken from a pool"""

    stage = "acquire failed"


class AlreadyInTransaction(TransactionError):
    """Raised by the strict runner when a transaction is already open"""

    stage = "already in a transaction"


def is_not_found(error: Optional[BaseException]) -> bool:
    """Check whether an error was caused by a query that returned no rows

    The whole exception chain is inspected, so a ``RecordNotFound`` wrapped
    in a ``UnitOfWorkFailed`` is still recognized.

    Args:
        error (BaseException, optional): The error to classify

    Returns:
        bool: Whether any error in the chain is a ``RecordNotFound``
    """
    seen = set()
    while error is not None and id(error) not in seen:
        if isinstance(error, RecordNotFound):
            return True
        seen.add(id(error))
        error = error.__cause__ or error.__context__
    return False

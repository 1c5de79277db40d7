from .connection import Connection, Statement, Transaction, TransactionState
from .interface import BaseInterface, Fetch

__all__ = (
    "BaseInterface",
    "Connection",
    "Fetch",
    "Statement",
    "Transaction",
    "TransactionState",
)

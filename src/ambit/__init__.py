from importlib.metadata import version

from .base.connection import (
    Connection,
    Statement,
    Transaction,
    TransactionState,
)
from .base.interface import BaseInterface
from .client import Client
from .context import (
    Context,
    background,
    get_transaction,
    set_transaction,
    with_deadline,
    with_timeout,
)
from .exception import (
    AcquireFailed,
    AlreadyInTransaction,
    AmbitError,
    BeginFailed,
    CommitFailed,
    RecordNotFound,
    RollbackFailed,
    TransactionError,
    UnitOfWorkFailed,
    is_not_found,
)
from .options import (
    OptionsBuilder,
    TransactionOptions,
    resolve_options,
    with_read_only,
    with_use_primary,
)
from .replica import (
    FirstReplicaSelector,
    RandomSelector,
    ReplicaSelector,
    RoundRobinSelector,
)
from .sql.mysql.interface import MysqlPool
from .sql.postgres.interface import PostgresPool
from .sql.sqlite.interface import SQLitePool
from .transaction import (
    run_in_new_transaction,
    run_in_single_operation,
    run_in_transaction,
)

__version__ = version("ambit")

__all__ = (
    "AcquireFailed",
    "AlreadyInTransaction",
    "AmbitError",
    "BaseInterface",
    "BeginFailed",
    "Client",
    "CommitFailed",
    "Connection",
    "Context",
    "FirstReplicaSelector",
    "MysqlPool",
    "OptionsBuilder",
    "PostgresPool",
    "RandomSelector",
    "RecordNotFound",
    "ReplicaSelector",
    "RollbackFailed",
    "RoundRobinSelector",
    "SQLitePool",
    "Statement",
    "Transaction",
    "TransactionError",
    "TransactionOptions",
    "TransactionState",
    "UnitOfWorkFailed",
    "background",
    "get_transaction",
    "is_not_found",
    "resolve_options",
    "run_in_new_transaction",
    "run_in_single_operation",
    "run_in_transaction",
    "set_transaction",
    "with_deadline",
    "with_read_only",
    "with_timeout",
    "with_use_primary",
)

from importlib.metadata import version

from .base.interface import BaseInterface
from .exception import QuayError
from .quay import Quay
from .sql.mysql.executor import MysqlExecutor
from .sql.mysql.interface import MysqlPool
from .stream import CursorRowSource, RowSource, stream_query
from .transaction import (
    TransactionContext,
    TransactionError,
    TransactionExecutor,
    TransactionState,
)

__version__ = version("quay")

__all__ = (
    "BaseInterface",
    "CursorRowSource",
    "MysqlExecutor",
    "MysqlPool",
    "Quay",
    "QuayError",
    "RowSource",
    "TransactionContext",
    "TransactionError",
    "TransactionExecutor",
    "TransactionState",
    "stream_query",
)

from .executor import MysqlExecutor
from .interface import MysqlPool, build_conversions

__all__ = ("MysqlExecutor", "MysqlPool", "build_conversions")

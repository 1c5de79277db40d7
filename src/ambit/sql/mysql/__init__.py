from .interface import MysqlPool

__all__ = ("MysqlPool",)

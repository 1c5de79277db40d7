from .interface import SQLitePool

__all__ = ("SQLitePool",)

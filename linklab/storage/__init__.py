"""
Click storage module.

Strategy Pattern over the append-only click log.
"""

from .strategies import ClickStoreStrategy, SqlAlchemyClickStore

__all__ = [
    "ClickStoreStrategy",
    "SqlAlchemyClickStore",
]

"""
Database models for LinkLab.

Links and their click events share one database: the click-limit gate
counts click rows for a link on every redirect.
"""

from .link import Link
from .click import ClickEvent

__all__ = ["Link", "ClickEvent"]

"""
Database access for the Products service.
"""

from .connection import Database

__all__ = ["Database"]

"""
Table Storage Module
"""
from .store import TableStore, Zone

__all__ = [
    "TableStore",
    "Zone",
]

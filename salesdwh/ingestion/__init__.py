"""
Data Ingestion Module
"""
from .raw_loader import LoadResult, RawLoader, create_raw_loader
from .sources import SOURCE_TABLES, SourceEntity, SourceSystem, SourceTable, get_source_table

__all__ = [
    "LoadResult",
    "RawLoader",
    "create_raw_loader",
    "SOURCE_TABLES",
    "SourceEntity",
    "SourceSystem",
    "SourceTable",
    "get_source_table",
]

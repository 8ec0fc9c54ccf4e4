"""
Data Transformation Module
"""
from .cleaners import CleaningStats, DataCleaner
from .transformers import (
    BUSINESS_KEYS,
    CleanEntity,
    CleanTable,
    CleansingTransformer,
    create_transformer,
)

__all__ = [
    "CleaningStats",
    "DataCleaner",
    "BUSINESS_KEYS",
    "CleanEntity",
    "CleanTable",
    "CleansingTransformer",
    "create_transformer",
]

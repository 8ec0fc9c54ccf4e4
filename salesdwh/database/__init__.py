"""
Database Module
"""
from .connection import close_database, init_database
from .models import Base, DimCustomer, DimProduct, FactSales
from .publisher import WarehousePublisher

__all__ = [
    "init_database",
    "close_database",
    "Base",
    "DimCustomer",
    "DimProduct",
    "FactSales",
    "WarehousePublisher",
]

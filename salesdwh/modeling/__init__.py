"""
Dimensional Modeling Module
"""
from .dimensions import (
    assign_surrogate_keys,
    build_customer_dim,
    build_product_dim,
    reconcile_attributes,
)
from .facts import SalesFact, build_sales_fact
from .modeler import DimensionalModeler, ModelResult, create_modeler

__all__ = [
    "assign_surrogate_keys",
    "build_customer_dim",
    "build_product_dim",
    "reconcile_attributes",
    "SalesFact",
    "build_sales_fact",
    "DimensionalModeler",
    "ModelResult",
    "create_modeler",
]

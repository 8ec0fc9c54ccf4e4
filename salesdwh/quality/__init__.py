"""
Data Quality Module
"""
from .validators import (
    DataValidator,
    ValidationCheck,
    ValidationResult,
    ValidationSeverity,
    ValidationStatus,
    create_customer_dim_validator,
    create_product_dim_validator,
    create_sales_fact_validator,
)

__all__ = [
    "DataValidator",
    "ValidationCheck",
    "ValidationResult",
    "ValidationSeverity",
    "ValidationStatus",
    "create_customer_dim_validator",
    "create_product_dim_validator",
    "create_sales_fact_validator",
]

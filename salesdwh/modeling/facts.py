"""
Sales Fact Assembly
"""

from dataclasses import dataclass, field
from typing import Dict

import polars as pl
import structlog

from salesdwh.errors import ErrorKind

logger = structlog.get_logger(__name__)

SALES_FACT_COLUMNS = [
    "order_number",
    "product_key",
    "customer_key",
    "product_number",
    "customer_id",
    "order_date",
    "ship_date",
    "due_date",
    "sales_amount",
    "quantity",
    "price",
]

MISSING_CUSTOMER = "missing_customer"
MISSING_PRODUCT = "missing_product"

# How many orphaned sale keys are logged
ORPHAN_SAMPLE = 10


@dataclass
class SalesFact:
    """Assembled fact table and the sales left out of it"""
    frame: pl.DataFrame
    orphan_count: int = 0
    orphans_by_reason: Dict[str, int] = field(default_factory=dict)


def build_sales_fact(
    sales: pl.DataFrame,
    customer_dim: pl.DataFrame,
    product_dim: pl.DataFrame,
) -> SalesFact:
    """
    Resolve clean sales to dimension surrogate keys.

    A sale whose customer id or product number has no dimension row is an
    orphan: it is excluded, counted under every reason that applies and
    logged. Orphans never fail the build.
    """
    customer_keys = customer_dim.select("customer_id", "customer_key")
    product_keys = product_dim.select("product_number", "product_key")

    resolved = sales.join(customer_keys, on="customer_id", how="left").join(
        product_keys, on="product_number", how="left"
    )

    no_customer = pl.col("customer_key").is_null()
    no_product = pl.col("product_key").is_null()
    orphans = resolved.filter(no_customer | no_product)

    orphans_by_reason = {
        MISSING_CUSTOMER: orphans.filter(no_customer).height,
        MISSING_PRODUCT: orphans.filter(no_product).height,
    }

    if orphans.height:
        logger.warning(
            "Orphaned sales excluded from fact table",
            error_code=ErrorKind.ORPHAN_REFERENCE.value,
            orphan_count=orphans.height,
            orphans_by_reason=orphans_by_reason,
            sample=orphans.select("order_number", "product_number", "customer_id")
            .head(ORPHAN_SAMPLE)
            .to_dicts(),
        )

    fact = (
        resolved.filter(~(no_customer | no_product))
        .rename({"amount": "sales_amount"})
        .sort(["order_number", "product_number"])
        .select(SALES_FACT_COLUMNS)
    )

    return SalesFact(
        frame=fact,
        orphan_count=orphans.height,
        orphans_by_reason=orphans_by_reason,
    )

"""
Conformed Dimensions

Builds the customer and product dimensions from clean tables:

- Customer: CRM customers enriched with ERP demographics and location
- Product: active CRM products enriched with the ERP category list
- Surrogate keys numbered from 1 in business key order
"""

from typing import Sequence, Union

import polars as pl
import structlog

from salesdwh.transformation.rules import NOT_AVAILABLE, UNKNOWN

logger = structlog.get_logger(__name__)

# Attributes both CRM and ERP carry for a customer; CRM wins unless unknown
CONFLICTING_ATTRIBUTES = ("gender",)
SUPPLEMENTARY_SUFFIX = "_supplementary"

CUSTOMER_DIM_COLUMNS = [
    "customer_key",
    "customer_id",
    "customer_number",
    "first_name",
    "last_name",
    "country",
    "marital_status",
    "gender",
    "birth_date",
    "create_date",
]

PRODUCT_DIM_COLUMNS = [
    "product_key",
    "product_id",
    "product_number",
    "product_name",
    "category_id",
    "category",
    "subcategory",
    "maintenance",
    "cost",
    "product_line",
    "start_date",
]


def assign_surrogate_keys(
    df: pl.DataFrame,
    key_column: str,
    business_key: Union[str, Sequence[str]],
) -> pl.DataFrame:
    """
    Number rows 1..n in ascending business key order.

    The numbering depends only on the set of business keys, never on the
    order rows arrived in, so rebuilding from the same input yields the same
    keys.
    """
    return (
        df.sort(business_key)
        .with_row_index(key_column, offset=1)
        .with_columns(pl.col(key_column).cast(pl.Int64))
    )


def reconcile_attributes(
    df: pl.DataFrame,
    attributes: Sequence[str] = CONFLICTING_ATTRIBUTES,
) -> pl.DataFrame:
    """
    Resolve attributes present in both a primary and a supplementary source.

    For each attribute the primary value is used unless it is null or
    Unknown; then the supplementary value; then Unknown. The
    ``<attribute>_supplementary`` columns are dropped.
    """
    resolved = []
    for attribute in attributes:
        primary = pl.col(attribute)
        supplementary = pl.col(f"{attribute}{SUPPLEMENTARY_SUFFIX}")
        resolved.append(
            pl.when(primary.is_not_null() & (primary != UNKNOWN))
            .then(primary)
            .when(supplementary.is_not_null())
            .then(supplementary)
            .otherwise(pl.lit(UNKNOWN))
            .alias(attribute)
        )
    return df.with_columns(resolved).drop(
        [f"{a}{SUPPLEMENTARY_SUFFIX}" for a in attributes]
    )


def build_customer_dim(
    customers: pl.DataFrame,
    erp_customers: pl.DataFrame,
    erp_locations: pl.DataFrame,
) -> pl.DataFrame:
    """
    Build dim_customers.

    Every clean customer yields exactly one row; ERP data only enriches. A
    customer without an ERP location gets country "n/a".
    """
    demographics = erp_customers.select(
        "customer_number",
        "birth_date",
        pl.col("gender").alias(f"gender{SUPPLEMENTARY_SUFFIX}"),
    )
    locations = erp_locations.select("customer_number", "country")

    dim = (
        customers.join(demographics, on="customer_number", how="left")
        .join(locations, on="customer_number", how="left")
        .with_columns(pl.col("country").fill_null(NOT_AVAILABLE))
    )
    dim = reconcile_attributes(dim)
    dim = assign_surrogate_keys(dim, "customer_key", "customer_id")

    logger.debug(
        "Customer dimension built",
        rows=dim.height,
        without_erp_demographics=dim["birth_date"].null_count(),
    )
    return dim.select(CUSTOMER_DIM_COLUMNS)


def build_product_dim(
    products: pl.DataFrame,
    erp_categories: pl.DataFrame,
) -> pl.DataFrame:
    """
    Build dim_products from active products.

    Products whose category is not in the ERP list keep their row with
    category descriptions "n/a".
    """
    categories = erp_categories.select("category_id", "category", "subcategory", "maintenance")

    dim = products.join(categories, on="category_id", how="left").with_columns(
        pl.col("category").fill_null(NOT_AVAILABLE),
        pl.col("subcategory").fill_null(NOT_AVAILABLE),
        pl.col("maintenance").fill_null(NOT_AVAILABLE),
    )
    dim = assign_surrogate_keys(dim, "product_key", "product_number")

    logger.debug("Product dimension built", rows=dim.height)
    return dim.select(PRODUCT_DIM_COLUMNS)

"""
Data Cleaning Module

Per-entity cleansing rules turning staging tables into clean tables with
exactly one row per business key:

- Customers: latest record per customer id, coded attributes mapped
- Products: category / item split, only the currently active version kept
- Sales: date sequence repair, price and amount reconciliation
- ERP customers, locations and categories: key alignment and normalization
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple

import polars as pl
import structlog

from .rules import (
    GENDER_CODES,
    MARITAL_STATUS_CODES,
    PRODUCT_LINE_CODES,
    is_blank,
    map_codes,
    normalize_country,
    parse_date,
    strip_prefixes,
    to_float,
    to_int,
    trim_strings,
)

logger = structlog.get_logger(__name__)

SOURCE_ROW = "_source_row"

# Stored amounts within this distance of quantity * price count as consistent
AMOUNT_TOLERANCE = 1e-6

# How many offending raw keys are kept for diagnostics
REJECTED_KEY_SAMPLE = 10


@dataclass
class CleaningStats:
    """Statistics from cleaning one entity"""
    input_rows: int
    output_rows: int = 0
    rejected_rows: int = 0
    duplicates_removed: int = 0
    repairs: Dict[str, int] = field(default_factory=dict)
    rejected_keys: List[Optional[str]] = field(default_factory=list)


class DataCleaner:
    """
    Cleansing rules for the CRM and ERP entities.

    Every clean_* method takes the staging frame of one extract and returns
    the clean frame plus statistics. Rows whose business key cannot be
    determined are dropped and reported in the statistics; every other
    defect is repaired in place.

    Example:
        cleaner = DataCleaner(reference_date=date(2024, 1, 1))
        customers, stats = cleaner.clean_customers(staging_df)
    """

    def __init__(
        self,
        reference_date: Optional[date] = None,
        customer_prefixes: Sequence[str] = ("NAS",),
    ):
        self.reference_date = reference_date or date.today()
        self.customer_prefixes = tuple(customer_prefixes)

    def _reject_missing_keys(
        self,
        df: pl.DataFrame,
        key_columns: List[str],
        raw_column: str,
        stats: CleaningStats,
    ) -> pl.DataFrame:
        """Drop rows with a null or blank business key and record them"""
        invalid = pl.any_horizontal(
            [
                is_blank(c) if df.schema[c] == pl.Utf8 else pl.col(c).is_null()
                for c in key_columns
            ]
        )
        rejected = df.filter(invalid)
        stats.rejected_rows = rejected.height
        stats.rejected_keys = (
            rejected[raw_column].cast(pl.Utf8).head(REJECTED_KEY_SAMPLE).to_list()
        )
        return df.filter(~invalid)

    def _latest_per_key(
        self,
        df: pl.DataFrame,
        keys: List[str],
        recency: List[str],
        stats: CleaningStats,
    ) -> pl.DataFrame:
        """
        Keep one row per business key: the one with the greatest recency.

        Null recency values rank lowest; remaining ties go to the row that
        appears later in the extract.
        """
        before = df.height
        survivors = (
            df.with_row_index(SOURCE_ROW)
            .group_by(keys)
            .agg(pl.all().sort_by(recency + [SOURCE_ROW], nulls_last=False).last())
            .drop(SOURCE_ROW)
            .sort(keys)
        )
        stats.duplicates_removed = before - survivors.height
        return survivors.select(df.columns)

    def _first_per_key(
        self,
        df: pl.DataFrame,
        keys: List[str],
        stats: CleaningStats,
    ) -> pl.DataFrame:
        """Keep the first row of the extract for every business key"""
        before = df.height
        survivors = (
            df.with_row_index(SOURCE_ROW)
            .group_by(keys)
            .agg(pl.all().sort_by(SOURCE_ROW).first())
            .drop(SOURCE_ROW)
            .sort(keys)
        )
        stats.duplicates_removed = before - survivors.height
        return survivors.select(df.columns)

    def _finish(self, name: str, df: pl.DataFrame, stats: CleaningStats) -> Tuple[pl.DataFrame, CleaningStats]:
        stats.output_rows = df.height
        logger.debug(
            "Entity cleaned",
            entity=name,
            input_rows=stats.input_rows,
            output_rows=stats.output_rows,
            rejected_rows=stats.rejected_rows,
            duplicates_removed=stats.duplicates_removed,
            **stats.repairs,
        )
        return df, stats

    def clean_customers(self, df: pl.DataFrame) -> Tuple[pl.DataFrame, CleaningStats]:
        """
        Clean CRM customers.

        One row survives per customer id: the most recently created one.
        Marital status and gender codes map to {Married, Single, Unknown} and
        {Male, Female, Unknown}.
        """
        stats = CleaningStats(input_rows=df.height)
        df = trim_strings(df)

        df = df.with_columns(to_int("cst_id").alias("customer_id"))
        df = self._reject_missing_keys(df, ["customer_id"], "cst_id", stats)

        df = df.select(
            pl.col("customer_id"),
            pl.col("cst_key").alias("customer_number"),
            pl.col("cst_firstname").alias("first_name"),
            pl.col("cst_lastname").alias("last_name"),
            map_codes("cst_marital_status", MARITAL_STATUS_CODES).alias("marital_status"),
            map_codes("cst_gndr", GENDER_CODES).alias("gender"),
            parse_date("cst_create_date").alias("create_date"),
        )

        df = self._latest_per_key(df, ["customer_id"], ["create_date"], stats)
        return self._finish("customers", df, stats)

    def clean_products(self, df: pl.DataFrame) -> Tuple[pl.DataFrame, CleaningStats]:
        """
        Clean CRM products.

        The product key encodes category and item: "CO-RF-FR-R92B-58" is
        category "CO_RF" (spelled as in the ERP category list) and item
        "FR-R92B-58". Rows carrying an end date are superseded versions and
        are dropped; the item's active version is kept.
        """
        stats = CleaningStats(input_rows=df.height)
        df = trim_strings(df)

        segments = pl.col("prd_key").str.splitn("-", 3)
        df = df.with_columns(
            pl.concat_str(
                [segments.struct.field("field_0"), segments.struct.field("field_1")],
                separator="_",
            ).alias("category_id"),
            segments.struct.field("field_2").alias("product_number"),
        )
        df = self._reject_missing_keys(df, ["product_number"], "prd_key", stats)

        active = is_blank("prd_end_dt")
        stats.repairs["historical_versions"] = df.filter(~active).height
        df = df.filter(active)

        df = df.select(
            to_int("prd_id").alias("product_id"),
            pl.col("product_number"),
            pl.col("category_id"),
            pl.col("prd_nm").alias("product_name"),
            to_float("prd_cost").fill_null(0.0).alias("cost"),
            map_codes("prd_line", PRODUCT_LINE_CODES).alias("product_line"),
            parse_date("prd_start_dt").alias("start_date"),
        )

        df = self._latest_per_key(df, ["product_number"], ["start_date"], stats)
        return self._finish("products", df, stats)

    def _repair_date_sequence(self, df: pl.DataFrame) -> pl.DataFrame:
        """
        Enforce order date <= ship date <= due date.

        Only checked when all three dates are present. The order date is
        never changed: a ship date before it is nulled, and a due date before
        the order date or before a kept ship date is nulled.
        """
        order = pl.col("order_date")
        ship = pl.col("ship_date")
        due = pl.col("due_date")

        complete = order.is_not_null() & ship.is_not_null() & due.is_not_null()
        ship_invalid = complete & (order > ship)
        due_invalid = complete & ((order > due) | (~ship_invalid & (ship > due)))

        return df.with_columns(
            pl.when(ship_invalid).then(None).otherwise(ship).alias("ship_date"),
            pl.when(due_invalid).then(None).otherwise(due).alias("due_date"),
            (ship_invalid | due_invalid).alias("dates_repaired"),
        )

    def _reconcile_amounts(self, df: pl.DataFrame) -> pl.DataFrame:
        """
        Make price and amount agree with quantity.

        - price is kept when positive, otherwise derived as amount / quantity
          when both are positive, otherwise left null (price_unresolved)
        - amount becomes quantity * price whenever price is known; the row is
          marked amount_recomputed when the stored amount was null,
          non-positive, inconsistent, or the row's dates were repaired
        - with an unknown price a positive stored amount is kept
        """
        quantity = pl.col("quantity")
        price = pl.col("price")
        amount = pl.col("amount")

        price_valid = price.is_not_null() & (price > 0)
        amount_valid = amount.is_not_null() & (amount > 0)
        quantity_valid = quantity.is_not_null() & (quantity > 0)

        df = df.with_columns(
            pl.when(price_valid)
            .then(price)
            .when(amount_valid & quantity_valid)
            .then(amount / quantity)
            .otherwise(None)
            .cast(pl.Float64)
            .alias("price"),
            (~price_valid & amount_valid & quantity_valid).alias("_price_derived"),
        )

        expected = quantity * pl.col("price")
        resolved = pl.col("price").is_not_null() & quantity.is_not_null()
        stale = (
            ~amount_valid
            | ((amount - expected).abs() > AMOUNT_TOLERANCE)
            | pl.col("dates_repaired")
        )

        return df.with_columns(
            pl.when(resolved)
            .then(expected)
            .when(amount_valid)
            .then(amount)
            .otherwise(None)
            .cast(pl.Float64)
            .alias("amount"),
            (resolved & stale).fill_null(False).alias("amount_recomputed"),
            pl.col("price").is_null().alias("price_unresolved"),
        )

    def clean_sales(self, df: pl.DataFrame) -> Tuple[pl.DataFrame, CleaningStats]:
        """
        Clean CRM sales order lines.

        A sale is identified by order number and product number. Bad dates
        are nulled rather than dropped, and amount = quantity * price holds
        for every row whose price could be determined.
        """
        stats = CleaningStats(input_rows=df.height)
        df = trim_strings(df)

        df = df.with_columns(
            pl.concat_str(
                [pl.col("sls_ord_num").fill_null(""), pl.col("sls_prd_key").fill_null("")],
                separator="/",
            ).alias("_raw_key")
        )
        df = self._reject_missing_keys(df, ["sls_ord_num", "sls_prd_key"], "_raw_key", stats)

        df = df.select(
            pl.col("sls_ord_num").alias("order_number"),
            pl.col("sls_prd_key").alias("product_number"),
            to_int("sls_cust_id").alias("customer_id"),
            parse_date("sls_order_dt").alias("order_date"),
            parse_date("sls_ship_dt").alias("ship_date"),
            parse_date("sls_due_dt").alias("due_date"),
            to_int("sls_quantity").alias("quantity"),
            to_float("sls_price").alias("price"),
            to_float("sls_sales").alias("amount"),
        )
        df = self._first_per_key(df, ["order_number", "product_number"], stats)

        df = self._repair_date_sequence(df)
        df = self._reconcile_amounts(df)

        stats.repairs["dates_repaired"] = int(df["dates_repaired"].sum())
        stats.repairs["prices_derived"] = int(df["_price_derived"].sum())
        stats.repairs["prices_unresolved"] = int(df["price_unresolved"].sum())
        stats.repairs["amounts_recomputed"] = int(df["amount_recomputed"].sum())

        df = df.drop("_price_derived")
        return self._finish("sales", df, stats)

    def clean_erp_customers(self, df: pl.DataFrame) -> Tuple[pl.DataFrame, CleaningStats]:
        """
        Clean ERP customers.

        ERP ids carry source-system prefixes ("NASAW00011000"); stripping them
        yields the CRM customer number ("AW00011000"). Birth dates after the
        reference date are impossible and become null.
        """
        stats = CleaningStats(input_rows=df.height)
        df = trim_strings(df)

        df = df.with_columns(strip_prefixes("CID", self.customer_prefixes).alias("customer_number"))
        df = self._reject_missing_keys(df, ["customer_number"], "CID", stats)

        birth_date = parse_date("BDATE")
        df = df.select(
            pl.col("customer_number"),
            birth_date.alias("birth_date"),
            map_codes("GEN", GENDER_CODES).alias("gender"),
        )

        in_future = pl.col("birth_date") > pl.lit(self.reference_date)
        stats.repairs["future_birth_dates"] = df.filter(in_future).height
        df = df.with_columns(
            pl.when(in_future).then(None).otherwise(pl.col("birth_date")).alias("birth_date")
        )

        df = self._first_per_key(df, ["customer_number"], stats)
        return self._finish("erp_customers", df, stats)

    def clean_erp_locations(self, df: pl.DataFrame) -> Tuple[pl.DataFrame, CleaningStats]:
        """Clean ERP customer locations: align ids, spell out countries"""
        stats = CleaningStats(input_rows=df.height)
        df = trim_strings(df)

        df = df.with_columns(
            pl.col("CID").str.replace_all("-", "", literal=True).alias("customer_number")
        )
        df = self._reject_missing_keys(df, ["customer_number"], "CID", stats)

        stats.repairs["countries_defaulted"] = df.filter(is_blank("CNTRY")).height
        df = df.select(
            pl.col("customer_number"),
            normalize_country("CNTRY").alias("country"),
        )

        df = self._first_per_key(df, ["customer_number"], stats)
        return self._finish("erp_locations", df, stats)

    def clean_erp_categories(self, df: pl.DataFrame) -> Tuple[pl.DataFrame, CleaningStats]:
        """Clean ERP product categories (lookup only, trimmed)"""
        stats = CleaningStats(input_rows=df.height)
        df = trim_strings(df)
        df = self._reject_missing_keys(df, ["ID"], "ID", stats)

        df = df.select(
            pl.col("ID").alias("category_id"),
            pl.col("CAT").alias("category"),
            pl.col("SUBCAT").alias("subcategory"),
            pl.col("MAINTENANCE").alias("maintenance"),
        )

        df = self._first_per_key(df, ["category_id"], stats)
        return self._finish("erp_categories", df, stats)

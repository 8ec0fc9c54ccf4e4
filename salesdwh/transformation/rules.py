"""
Cleansing Rule Building Blocks

Reusable polars expressions shared by the per-entity cleaners: trimming,
code-to-label mapping, tolerant date and number parsing, and the explicit
"Unknown" / "n/a" sentinels used wherever a value cannot be determined.
"""

from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple

import polars as pl

UNKNOWN = "Unknown"
NOT_AVAILABLE = "n/a"

# Accepted date renderings: ISO and the compact form used by the CRM sales extract
DATE_FORMATS: Tuple[str, ...] = ("%Y-%m-%d", "%Y%m%d")

MARITAL_STATUS_CODES: Dict[str, Tuple[str, ...]] = {
    "Married": ("M", "MARRIED"),
    "Single": ("S", "SINGLE"),
}

GENDER_CODES: Dict[str, Tuple[str, ...]] = {
    "Male": ("M", "MALE"),
    "Female": ("F", "FEMALE"),
}

PRODUCT_LINE_CODES: Dict[str, Tuple[str, ...]] = {
    "Mountain": ("M",),
    "Road": ("R",),
    "Other Sales": ("S",),
    "Touring": ("T",),
}

COUNTRY_NAMES: Dict[str, Tuple[str, ...]] = {
    "Germany": ("DE", "DEU"),
    "United States": ("US", "USA"),
    "United Kingdom": ("UK", "GB", "GBR"),
    "France": ("FR", "FRA"),
    "Canada": ("CA", "CAN"),
    "Australia": ("AU", "AUS"),
}


def trim_strings(
    df: pl.DataFrame,
    columns: Optional[List[str]] = None,
    blank_to_null: bool = True,
) -> pl.DataFrame:
    """Trim whitespace from string columns, turning empty strings into nulls"""
    string_cols = columns or [
        col for col, dtype in zip(df.columns, df.dtypes)
        if dtype == pl.Utf8
    ]

    for col in string_cols:
        if col in df.columns:
            trimmed = pl.col(col).str.strip_chars()
            if blank_to_null:
                trimmed = pl.when(trimmed == "").then(None).otherwise(trimmed)
            df = df.with_columns(trimmed.alias(col))

    return df


def is_blank(column: str) -> pl.Expr:
    """True where a text column is null or only whitespace"""
    return pl.col(column).is_null() | (pl.col(column).str.strip_chars() == "")


def map_codes(
    column: str,
    codes: Dict[str, Sequence[str]],
    default: str = UNKNOWN,
) -> pl.Expr:
    """
    Map coded values to labels, case-insensitively.

    Nulls and codes absent from the mapping become the default label.

    Args:
        column: Source column holding the codes
        codes: Label -> accepted codes
        default: Label for everything else
    """
    code = pl.col(column).str.strip_chars().str.to_uppercase()
    expr = None
    for label, aliases in codes.items():
        condition = code.is_in([a.upper() for a in aliases])
        if expr is None:
            expr = pl.when(condition).then(pl.lit(label))
        else:
            expr = expr.when(condition).then(pl.lit(label))

    if expr is None:
        return pl.lit(default).alias(column)
    return expr.otherwise(pl.lit(default)).alias(column)


def normalize_country(column: str) -> pl.Expr:
    """Expand country codes to full names; blanks become the n/a sentinel"""
    text = pl.col(column).str.strip_chars()
    code = text.str.to_uppercase()

    expr = pl.when(text.is_null() | (text == "")).then(pl.lit(NOT_AVAILABLE))
    for name, aliases in COUNTRY_NAMES.items():
        expr = expr.when(code.is_in(list(aliases))).then(pl.lit(name))
    return expr.otherwise(text).alias(column)


def _rendered_length(fmt: str) -> int:
    return len(date(2000, 12, 31).strftime(fmt))


def parse_date(column: str, formats: Sequence[str] = DATE_FORMATS) -> pl.Expr:
    """
    Parse a text column into a Date, trying each format in turn.

    A value only qualifies for a format when its length matches that format's
    rendering, so placeholders such as "0" or truncated values like "2010122"
    become null instead of being misread.
    """
    text = pl.col(column).str.strip_chars()
    candidates = [
        pl.when(text.str.len_chars() == _rendered_length(fmt))
        .then(text.str.to_date(fmt, strict=False))
        for fmt in formats
    ]
    return pl.coalesce(candidates).alias(column)


def to_int(column: str) -> pl.Expr:
    """Parse a text column as Int64; unparseable values become null"""
    return pl.col(column).str.strip_chars().cast(pl.Int64, strict=False).alias(column)


def to_float(column: str) -> pl.Expr:
    """Parse a text column as Float64; unparseable values become null"""
    return pl.col(column).str.strip_chars().cast(pl.Float64, strict=False).alias(column)


def strip_prefixes(column: str, prefixes: Sequence[str]) -> pl.Expr:
    """Remove the longest matching prefix from a text column"""
    value = pl.col(column)
    ordered = sorted({p for p in prefixes if p}, key=len, reverse=True)
    if not ordered:
        return value.alias(column)

    expr = None
    for prefix in ordered:
        condition = value.str.starts_with(prefix)
        stripped = value.str.slice(len(prefix))
        if expr is None:
            expr = pl.when(condition).then(stripped)
        else:
            expr = expr.when(condition).then(stripped)
    return expr.otherwise(value).alias(column)

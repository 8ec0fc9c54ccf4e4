"""
Data Validation Module

Rule-based checks run against assembled tables. The dimensional modeler uses
them to prove the star schema invariants before anything is published:

- Not-null and uniqueness of keys
- Range checks
- Referential integrity between facts and dimensions
- Custom business rules
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import polars as pl
import structlog

logger = structlog.get_logger(__name__)


class ValidationSeverity(str, Enum):
    """Severity levels for validation failures"""
    ERROR = "error"  # Critical - blocks pipeline
    WARNING = "warning"  # Non-critical - logged but continues
    INFO = "info"  # Informational only


class ValidationStatus(str, Enum):
    """Overall validation status"""
    PASSED = "passed"
    FAILED = "failed"
    PARTIAL = "partial"


@dataclass
class ValidationCheck:
    """Single validation check result"""
    name: str
    passed: bool
    severity: ValidationSeverity
    message: str
    details: Optional[Dict[str, Any]] = None
    failed_rows: int = 0
    total_rows: int = 0


@dataclass
class ValidationResult:
    """Complete validation suite result"""
    status: ValidationStatus
    total_checks: int
    passed_checks: int
    failed_checks: int
    warning_count: int
    checks: List[ValidationCheck] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    @property
    def success_rate(self) -> float:
        """Percentage of passed checks"""
        if self.total_checks == 0:
            return 100.0
        return (self.passed_checks / self.total_checks) * 100

    @property
    def errors(self) -> List[ValidationCheck]:
        """Failed checks with ERROR severity"""
        return [
            c for c in self.checks
            if not c.passed and c.severity == ValidationSeverity.ERROR
        ]


class DataValidator:
    """
    Data validator with a chainable check suite.

    Example:
        validator = DataValidator(name="dim_customers")
        validator.add_not_null_check("customer_key")
        validator.add_unique_check("customer_key")
        result = validator.validate(df)
    """

    def __init__(self, name: str = "dataset", strict_mode: bool = False):
        self.name = name
        self.strict_mode = strict_mode  # Fail on any warning
        self._checks: List[Callable[[pl.DataFrame], ValidationCheck]] = []

    def reset(self) -> None:
        """Reset validator state"""
        self._checks = []

    @staticmethod
    def _missing_column(name: str, column: str, severity: ValidationSeverity) -> ValidationCheck:
        return ValidationCheck(
            name=name,
            passed=False,
            severity=severity,
            message=f"Column '{column}' not found",
        )

    def add_not_null_check(
        self,
        column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for null values in column"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"not_null_{column}"
            if column not in df.columns:
                return self._missing_column(name, column, severity)

            null_count = df[column].null_count()
            total = len(df)
            passed = null_count == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {null_count} null values" if not passed else f"Column '{column}' has no null values",
                details={"null_count": null_count, "null_percentage": (null_count / total) * 100 if total > 0 else 0},
                failed_rows=null_count,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_unique_check(
        self,
        columns: Union[str, Sequence[str]],
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check that a column (or column combination) has no duplicates"""
        subset = [columns] if isinstance(columns, str) else list(columns)
        label = "_".join(subset)

        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"unique_{label}"
            missing = [c for c in subset if c not in df.columns]
            if missing:
                return self._missing_column(name, missing[0], severity)

            total = len(df)
            unique_count = df.select(subset).n_unique() if total else 0
            duplicate_count = total - unique_count
            passed = duplicate_count == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Columns {subset} have {duplicate_count} duplicate values" if not passed else f"Columns {subset} values are unique",
                details={"unique_count": unique_count, "duplicate_count": duplicate_count},
                failed_rows=duplicate_count,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_range_check(
        self,
        column: str,
        min_value: Optional[float] = None,
        max_value: Optional[float] = None,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for values within specified range"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"range_{column}"
            if column not in df.columns:
                return self._missing_column(name, column, severity)

            conditions = []
            if min_value is not None:
                conditions.append(pl.col(column) < min_value)
            if max_value is not None:
                conditions.append(pl.col(column) > max_value)

            if not conditions:
                return ValidationCheck(
                    name=name,
                    passed=True,
                    severity=severity,
                    message="No range specified",
                )

            out_of_range = df.filter(pl.any_horizontal(conditions)).height
            total = len(df)
            passed = out_of_range == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {out_of_range} values outside range [{min_value}, {max_value}]" if not passed else "All values in range",
                details={"min": min_value, "max": max_value, "out_of_range_count": out_of_range},
                failed_rows=out_of_range,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_referential_integrity_check(
        self,
        column: str,
        reference_df: pl.DataFrame,
        reference_column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check that every non-null value exists in a reference table"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"ref_integrity_{column}"
            if column not in df.columns:
                return self._missing_column(name, column, severity)

            reference = reference_df.select(
                pl.col(reference_column).alias(column)
            ).unique()
            orphans = (
                df.filter(pl.col(column).is_not_null())
                .join(reference, on=column, how="anti")
                .height
            )
            total = len(df)
            passed = orphans == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {orphans} orphan records" if not passed else "Referential integrity maintained",
                details={"orphan_count": orphans, "reference_column": reference_column},
                failed_rows=orphans,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_custom_check(
        self,
        name: str,
        violations: Callable[[pl.DataFrame], pl.Expr],
        message_on_fail: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """
        Add custom row-level check.

        Args:
            name: Check name
            violations: Builds an expression that is true for offending rows
            message_on_fail: Message reported when any row offends
        """
        def check(df: pl.DataFrame) -> ValidationCheck:
            failed = df.filter(violations(df).fill_null(False)).height
            passed = failed == 0
            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message="Check passed" if passed else f"{message_on_fail} ({failed} rows)",
                failed_rows=failed,
                total_rows=len(df),
            )

        self._checks.append(check)
        return self

    def validate(self, df: pl.DataFrame) -> ValidationResult:
        """
        Run all validation checks on DataFrame.

        Args:
            df: DataFrame to validate

        Returns:
            ValidationResult with all check results
        """
        started_at = datetime.utcnow()
        results = []

        logger.debug(f"Running {len(self._checks)} validation checks on {len(df)} rows", dataset=self.name)

        for check_func in self._checks:
            result = check_func(df)
            results.append(result)

            if not result.passed:
                logger.warning(
                    f"Validation failed: {result.name}",
                    dataset=self.name,
                    message=result.message,
                    severity=result.severity.value,
                )

        completed_at = datetime.utcnow()

        passed_checks = sum(1 for r in results if r.passed)
        failed_checks = sum(1 for r in results if not r.passed and r.severity == ValidationSeverity.ERROR)
        warning_count = sum(1 for r in results if not r.passed and r.severity == ValidationSeverity.WARNING)

        if failed_checks > 0:
            status = ValidationStatus.FAILED
        elif warning_count > 0 and self.strict_mode:
            status = ValidationStatus.FAILED
        elif warning_count > 0:
            status = ValidationStatus.PARTIAL
        else:
            status = ValidationStatus.PASSED

        validation_result = ValidationResult(
            status=status,
            total_checks=len(results),
            passed_checks=passed_checks,
            failed_checks=failed_checks,
            warning_count=warning_count,
            checks=results,
            started_at=started_at,
            completed_at=completed_at,
        )

        logger.info(
            f"Validation complete: {status.value}",
            dataset=self.name,
            passed=passed_checks,
            failed=failed_checks,
            warnings=warning_count,
        )

        return validation_result


# Pre-built validators for the star schema
def create_customer_dim_validator() -> DataValidator:
    """Create pre-configured validator for the customer dimension"""
    return (
        DataValidator(name="dim_customers")
        .add_not_null_check("customer_key")
        .add_unique_check("customer_key")
        .add_unique_check("customer_id")
        .add_range_check("customer_key", min_value=1)
        .add_not_null_check("gender")
        .add_not_null_check("marital_status")
        .add_not_null_check("country")
    )


def create_product_dim_validator() -> DataValidator:
    """Create pre-configured validator for the product dimension"""
    return (
        DataValidator(name="dim_products")
        .add_not_null_check("product_key")
        .add_unique_check("product_key")
        .add_unique_check("product_number")
        .add_range_check("product_key", min_value=1)
    )


def create_sales_fact_validator(
    customer_dim: pl.DataFrame,
    product_dim: pl.DataFrame,
) -> DataValidator:
    """Create validator proving the fact table references existing dimension rows"""
    return (
        DataValidator(name="fact_sales")
        .add_not_null_check("customer_key")
        .add_not_null_check("product_key")
        .add_unique_check(["order_number", "product_number"])
        .add_referential_integrity_check("customer_key", customer_dim, "customer_key")
        .add_referential_integrity_check("product_key", product_dim, "product_key")
        .add_custom_check(
            "sales_amount_consistent",
            lambda df: pl.col("price").is_not_null()
            & ((pl.col("sales_amount") - pl.col("quantity") * pl.col("price")).abs() > 1e-6),
            "Sales amount differs from quantity * price",
        )
    )

"""
Unit Tests - Data Quality
"""
import polars as pl

from salesdwh.quality import (
    DataValidator,
    ValidationSeverity,
    ValidationStatus,
    create_customer_dim_validator,
    create_sales_fact_validator,
)


class TestDataValidator:
    """Tests for DataValidator"""

    def test_not_null_check_passes(self):
        """Test not null check with valid data"""
        df = pl.DataFrame({"id": [1, 2, 3], "name": ["a", "b", "c"]})

        validator = DataValidator()
        validator.add_not_null_check("id")

        result = validator.validate(df)

        assert result.status == ValidationStatus.PASSED
        assert result.passed_checks == 1

    def test_not_null_check_fails(self):
        """Test not null check with null values"""
        df = pl.DataFrame({"id": [1, None, 3], "name": ["a", "b", "c"]})

        validator = DataValidator()
        validator.add_not_null_check("id")

        result = validator.validate(df)

        assert result.status == ValidationStatus.FAILED
        assert result.failed_checks == 1
        assert result.errors[0].failed_rows == 1

    def test_unique_check_fails(self):
        """Test unique check with duplicates"""
        df = pl.DataFrame({"id": [1, 2, 2, 3]})

        result = DataValidator().add_unique_check("id").validate(df)

        assert result.status == ValidationStatus.FAILED
        assert result.checks[0].details["duplicate_count"] == 1

    def test_composite_unique_check(self):
        """Test uniqueness over a column combination"""
        df = pl.DataFrame({"order": ["A", "A", "B"], "item": ["x", "y", "x"]})

        result = DataValidator().add_unique_check(["order", "item"]).validate(df)

        assert result.status == ValidationStatus.PASSED

    def test_range_check(self):
        """Test range validation"""
        df = pl.DataFrame({"key": [0, 1, 2]})

        result = DataValidator().add_range_check("key", min_value=1).validate(df)

        assert result.status == ValidationStatus.FAILED
        assert result.checks[0].failed_rows == 1

    def test_referential_integrity_check(self):
        """Test values missing from the reference table are counted"""
        dim = pl.DataFrame({"customer_key": [1, 2]})
        fact = pl.DataFrame({"customer_key": [1, 2, 3, None]})

        result = (
            DataValidator()
            .add_referential_integrity_check("customer_key", dim, "customer_key")
            .validate(fact)
        )

        assert result.status == ValidationStatus.FAILED
        assert result.checks[0].details["orphan_count"] == 1

    def test_missing_column_fails(self):
        """Test a check against an absent column"""
        result = DataValidator().add_not_null_check("nope").validate(pl.DataFrame({"id": [1]}))

        assert result.status == ValidationStatus.FAILED

    def test_warning_severity(self):
        """Test warning-level checks do not fail validation"""
        df = pl.DataFrame({"value": [1, None, 3]})

        validator = DataValidator()
        validator.add_not_null_check("value", severity=ValidationSeverity.WARNING)

        result = validator.validate(df)

        assert result.status == ValidationStatus.PARTIAL
        assert result.warning_count == 1

    def test_strict_mode_fails_on_warning(self):
        """Test strict mode treats warnings as failures"""
        df = pl.DataFrame({"value": [1, None, 3]})

        validator = DataValidator(strict_mode=True)
        validator.add_not_null_check("value", severity=ValidationSeverity.WARNING)

        assert validator.validate(df).status == ValidationStatus.FAILED


class TestPrebuiltValidators:
    """Tests for the star schema validators"""

    def test_customer_dim_validator_rejects_duplicate_keys(self):
        """Test surrogate keys must be unique"""
        dim = pl.DataFrame({
            "customer_key": [1, 1],
            "customer_id": [11000, 11001],
            "gender": ["Male", "Female"],
            "marital_status": ["Single", "Married"],
            "country": ["Germany", "n/a"],
        })

        result = create_customer_dim_validator().validate(dim)

        assert result.status == ValidationStatus.FAILED
        assert [c.name for c in result.errors] == ["unique_customer_key"]

    def test_sales_fact_validator_checks_amounts(self):
        """Test the amount invariant only applies to resolved prices"""
        customers = pl.DataFrame({"customer_key": [1]})
        products = pl.DataFrame({"product_key": [1]})
        fact = pl.DataFrame({
            "order_number": ["SO1", "SO2", "SO3"],
            "product_number": ["P", "P", "P"],
            "customer_key": [1, 1, 1],
            "product_key": [1, 1, 1],
            "quantity": [3, 2, 1],
            "price": [10.0, None, 5.0],
            "sales_amount": [30.0, 50.0, 6.0],
        })

        result = create_sales_fact_validator(customers, products).validate(fact)

        assert [c.name for c in result.errors] == ["sales_amount_consistent"]
        assert result.errors[0].failed_rows == 1

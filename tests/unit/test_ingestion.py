"""
Unit Tests - Raw Loader
"""
import polars as pl
import pytest

from salesdwh.errors import SchemaMismatch, SourceUnavailable
from salesdwh.ingestion import RawLoader, create_raw_loader, get_source_table
from salesdwh.ingestion.sources import SOURCE_TABLES
from salesdwh.storage import Zone


class TestSourceRegistry:
    """Tests for the extract registry"""

    def test_six_extracts_registered(self):
        """Test that every CRM and ERP extract is known"""
        assert {s.value for s in SOURCE_TABLES} == {
            "crm_cust_info",
            "crm_prd_info",
            "crm_sales_details",
            "erp_cust_az12",
            "erp_loc_a101",
            "erp_px_cat_g1v2",
        }

    def test_unknown_source_rejected(self):
        """Test lookup of an unregistered extract"""
        with pytest.raises(KeyError):
            get_source_table("crm_orders")


class TestRawLoader:
    """Tests for RawLoader"""

    def test_load_keeps_values_verbatim(self, test_settings, source_dir, store):
        """Test that fields are stored as untouched text"""
        loader = create_raw_loader(test_settings, store)

        result = loader.load("crm_cust_info")

        assert result.row_count == 5
        assert result.target_table == "crm_cust_info"
        assert result.file_hash

        df = store.read_table(Zone.STAGING, "crm_cust_info")
        assert df.columns == list(get_source_table("crm_cust_info").columns)
        assert all(dtype == pl.Utf8 for dtype in df.dtypes)
        assert df["cst_firstname"][0] == " Jon "
        assert df["cst_create_date"][0] == "2025-10-06"
        assert df["cst_id"][4] is None

    def test_missing_file(self, test_settings, store):
        """Test a missing extract is reported as unavailable"""
        loader = create_raw_loader(test_settings, store)

        with pytest.raises(SourceUnavailable) as exc_info:
            loader.load("crm_prd_info")

        assert exc_info.value.to_dict()["error_stage"] == "load"

    def test_filename_case_is_significant(self, test_settings, store, write_source):
        """Test that a differently cased file name does not match"""
        write_source(
            {"source_erp/cust_az12.csv": "CID,BDATE,GEN\nNASAW00011000,1971-10-06,Male\n"},
        )
        loader = create_raw_loader(test_settings, store)

        with pytest.raises(SourceUnavailable) as exc_info:
            loader.load("erp_cust_az12")

        assert exc_info.value.details["case_mismatches"] == ["cust_az12.csv"]

    def test_header_mismatch(self, test_settings, store, write_source):
        """Test a wrong header is a schema mismatch"""
        write_source({"source_erp/LOC_A101.csv": "CID,COUNTRY\nAW-00011000,Australia\n"})
        loader = create_raw_loader(test_settings, store)

        with pytest.raises(SchemaMismatch) as exc_info:
            loader.load("erp_loc_a101")

        assert exc_info.value.details["missing"] == ["CNTRY"]
        assert exc_info.value.details["unexpected"] == ["COUNTRY"]

    def test_empty_file_is_schema_mismatch(self, test_settings, store, write_source):
        """Test a file without header"""
        write_source({"source_erp/LOC_A101.csv": ""})
        loader = create_raw_loader(test_settings, store)

        with pytest.raises(SchemaMismatch):
            loader.load("erp_loc_a101")

    def test_extra_fields_are_schema_mismatch(self, test_settings, store, write_source):
        """Test a data line with more fields than the header"""
        write_source(
            {"source_erp/LOC_A101.csv": "CID,CNTRY\nAW-00011000,Australia,extra\n"},
        )
        loader = create_raw_loader(test_settings, store)

        with pytest.raises(SchemaMismatch):
            loader.load("erp_loc_a101")

    def test_short_row_is_schema_mismatch(self, test_settings, store, write_source):
        """Test a data line with fewer fields than the header"""
        write_source({"source_erp/LOC_A101.csv": "CID,CNTRY\nAW-1\nAW-2,DE\n\nAW-3\n"})
        loader = create_raw_loader(test_settings, store)

        with pytest.raises(SchemaMismatch) as exc_info:
            loader.load("erp_loc_a101")

        assert exc_info.value.details["expected_fields"] == 2
        assert exc_info.value.details["line_numbers"] == [2, 5]
        assert not store.table_exists(Zone.STAGING, "erp_loc_a101")

    def test_quoted_delimiters_are_one_field(self, test_settings, store, write_source):
        """Test delimiters inside quotes do not count as field separators"""
        write_source({"source_erp/LOC_A101.csv": 'CID,CNTRY\nAW-1,"Korea, Republic of"\n'})
        loader = create_raw_loader(test_settings, store)

        result = loader.load("erp_loc_a101")

        assert result.row_count == 1
        assert store.read_table(Zone.STAGING, "erp_loc_a101")["CNTRY"][0] == "Korea, Republic of"

    def test_header_tolerates_bom_and_padding(self, test_settings, store, write_source):
        """Test header names are compared trimmed"""
        write_source(
            {"source_erp/LOC_A101.csv": "\ufeffCID , CNTRY\nAW-00011000,Australia\n"},
        )
        loader = create_raw_loader(test_settings, store)

        loader.load("erp_loc_a101")

        assert store.read_table(Zone.STAGING, "erp_loc_a101").columns == ["CID", "CNTRY"]

    def test_failed_load_keeps_previous_table(self, test_settings, source_dir, store):
        """Test that a failing reload leaves the prior staging table intact"""
        loader = create_raw_loader(test_settings, store)
        loader.load("erp_loc_a101")

        (source_dir / "source_erp" / "LOC_A101.csv").write_text("WRONG,HEADER\n1,2\n")
        with pytest.raises(SchemaMismatch):
            loader.load("erp_loc_a101")

        assert store.read_table(Zone.STAGING, "erp_loc_a101").height == 3


class TestLoadAll:
    """Tests for loading every extract"""

    def test_load_all(self, test_settings, source_dir, store):
        """Test all six staging tables are produced"""
        results = create_raw_loader(test_settings, store).load_all()

        assert len(results) == 6
        assert results["crm_sales_details"].row_count == 7
        assert store.list_tables(Zone.STAGING) == sorted(results)

    def test_failure_does_not_block_other_extracts(self, test_settings, source_dir, store):
        """Test continue-on-error loads the remaining extracts, then fails"""
        (source_dir / "source_crm" / "prd_info.csv").unlink()
        loader = create_raw_loader(test_settings, store)

        with pytest.raises(SourceUnavailable) as exc_info:
            loader.load_all()

        assert exc_info.value.details["table"] == "crm_prd_info"
        assert store.table_exists(Zone.STAGING, "crm_sales_details")
        assert store.table_exists(Zone.STAGING, "erp_px_cat_g1v2")

    def test_stop_on_first_error(self, test_settings, source_dir, store):
        """Test sequential loading stops when continue-on-error is off"""
        (source_dir / "source_crm" / "prd_info.csv").unlink()
        loader = RawLoader(store, source_dir, continue_on_error=False)

        with pytest.raises(SourceUnavailable):
            loader.load_all()

        assert not store.table_exists(Zone.STAGING, "crm_sales_details")

    def test_parallel_load(self, source_dir, store):
        """Test thread-pool loading produces the same tables"""
        loader = RawLoader(store, source_dir, parallel=True, max_workers=3)

        results = loader.load_all()

        assert sorted(results) == store.list_tables(Zone.STAGING)
        assert results["crm_cust_info"].row_count == 5

    def test_parallel_stop_on_first_error(self, source_dir, store):
        """Test the thread pool also raises the first failure when continue-on-error is off"""
        (source_dir / "source_crm" / "cust_info.csv").unlink()
        loader = RawLoader(store, source_dir, continue_on_error=False, parallel=True, max_workers=1)

        with pytest.raises(SourceUnavailable) as exc_info:
            loader.load_all()

        assert exc_info.value.details["table"] == "crm_cust_info"

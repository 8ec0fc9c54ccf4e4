"""
Test Suite Configuration
"""
from datetime import date
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

import polars as pl
import pytest

from salesdwh.config import DataLakeSettings, PipelineSettings, Settings
from salesdwh.ingestion.sources import SOURCE_TABLES, SourceEntity
from salesdwh.storage import TableStore

REFERENCE_DATE = date(2024, 1, 1)

# Small but representative extracts: duplicates, historical product
# versions, inconsistent amounts, bad date sequences and orphaned sales.
SAMPLE_EXTRACTS: Dict[str, str] = {
    "source_crm/cust_info.csv": (
        "cst_id,cst_key,cst_firstname,cst_lastname,cst_marital_status,cst_gndr,cst_create_date\n"
        "11000,AW00011000, Jon ,Yang,M,M,2025-10-06\n"
        "11001,AW00011001,Eugene,Huang,M,M,2025-10-06\n"
        "11001,AW00011001,Eugene,Huang,S,,2025-10-07\n"
        "11002,AW00011002,Ruben,Torres,M,F,2025-10-06\n"
        ",AW00011003,Christy,Zhu,S,F,2025-10-06\n"
    ),
    "source_crm/prd_info.csv": (
        "prd_id,prd_key,prd_nm,prd_cost,prd_line,prd_start_dt,prd_end_dt\n"
        "210,CO-RF-FR-R92B-58,HL Road Frame - Black- 58,,R,2003-07-01,\n"
        "211,CO-RF-FR-R92R-58,HL Road Frame - Red- 58,1431,R ,2003-07-01,\n"
        "212,AC-HE-HL-U509-R,Sport-100 Helmet- Red,12,S,2011-07-01,2012-06-30\n"
        "213,AC-HE-HL-U509-R,Sport-100 Helmet- Red,13,S,2012-07-01,\n"
        "214,BI-XX-ZZ-9999,Prototype,5,X,2013-07-01,\n"
    ),
    "source_crm/sales_details.csv": (
        "sls_ord_num,sls_prd_key,sls_cust_id,sls_order_dt,sls_ship_dt,sls_due_dt,sls_sales,sls_quantity,sls_price\n"
        "SO43697,FR-R92R-58,11000,20101229,20110105,20110110,3578,1,3578\n"
        "SO43698,HL-U509-R,11001,20101229,20110105,20110110,999,3,10\n"
        "SO43699,FR-R92B-58,11002,20101229,20110105,20110110,100,5,\n"
        "SO43700,FR-R92B-58,99999,20101229,20110105,20110110,50,1,50\n"
        "SO43701,XX-NOPE-1,11000,20101229,20110105,20110110,50,1,50\n"
        "SO43702,HL-U509-R,11000,20110110,20110105,20110120,20,2,10\n"
        "SO43697,FR-R92R-58,11000,20101229,20110105,20110110,1,1,1\n"
    ),
    "source_erp/CUST_AZ12.csv": (
        "CID,BDATE,GEN\n"
        "NASAW00011000,1971-10-06,Male\n"
        "NASAW00011001,1976-05-10,Male\n"
        "AW00011002,2999-01-01,Female\n"
    ),
    "source_erp/LOC_A101.csv": (
        "CID,CNTRY\n"
        "AW-00011000,Australia\n"
        "AW-00011001,US\n"
        "AW-00011002,\n"
    ),
    "source_erp/PX_CAT_G1V2.csv": (
        "ID,CAT,SUBCAT,MAINTENANCE\n"
        "CO_RF,Components,Road Frames,Yes\n"
        "AC_HE,Accessories,Helmets,Yes\n"
    ),
}


def write_extracts(root: Path, extracts: Dict[str, str] = SAMPLE_EXTRACTS) -> Path:
    """Write extract files below a source root"""
    for relative_path, content in extracts.items():
        path = root / relative_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Create test settings rooted in a temporary data lake"""
    lake = tmp_path / "lake"
    return Settings(
        app_env="testing",
        debug=True,
        data_lake=DataLakeSettings(
            source_path=str(tmp_path / "source"),
            staging_path=str(lake / "staging"),
            clean_path=str(lake / "clean"),
            curated_path=str(lake / "curated"),
        ),
        pipeline=PipelineSettings(),
    )


@pytest.fixture
def source_dir(test_settings) -> Path:
    """Source root populated with the sample extracts"""
    return write_extracts(Path(test_settings.data_lake.source_path))


@pytest.fixture
def store(test_settings) -> TableStore:
    """Table store over the temporary data lake"""
    return TableStore.from_settings(test_settings)


@pytest.fixture
def make_staging() -> Callable[..., pl.DataFrame]:
    """Build a staging-shaped frame (all text columns) for one extract"""
    def _make(source_id: str, rows: Sequence[Sequence[Optional[str]]]) -> pl.DataFrame:
        columns: List[str] = list(SOURCE_TABLES[SourceEntity(source_id)].columns)
        return pl.DataFrame(
            [list(r) for r in rows],
            schema={c: pl.Utf8 for c in columns},
            orient="row",
        )
    return _make


@pytest.fixture
def write_source(test_settings) -> Callable[[Dict[str, str]], Path]:
    """Write (or overwrite) individual extracts below the source root"""
    root = Path(test_settings.data_lake.source_path)

    def _write(extracts: Dict[str, str]) -> Path:
        return write_extracts(root, extracts)
    return _write

"""
Source Extract Registry

Static mapping of every staging table to the extract file it is loaded from
and to the column layout the extract must carry. CRM files live under
``source_crm/``, ERP files under ``source_erp/``; the ERP system names its
files after internal codes (AZ12, A101, G1V2) and those codes are kept in the
staging table names.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Tuple, Union


class SourceSystem(str, Enum):
    """Operational systems delivering extracts"""
    CRM = "crm"
    ERP = "erp"


class SourceEntity(str, Enum):
    """Staging tables, one per extract"""
    CRM_CUSTOMERS = "crm_cust_info"
    CRM_PRODUCTS = "crm_prd_info"
    CRM_SALES = "crm_sales_details"
    ERP_CUSTOMERS = "erp_cust_az12"
    ERP_LOCATIONS = "erp_loc_a101"
    ERP_CATEGORIES = "erp_px_cat_g1v2"


@dataclass(frozen=True)
class SourceTable:
    """Where an extract lives and what it must look like"""
    entity: SourceEntity
    system: SourceSystem
    relative_path: str
    columns: Tuple[str, ...]

    @property
    def table_name(self) -> str:
        return self.entity.value

    def resolve(self, source_root: Union[str, Path]) -> Path:
        """Absolute location of the extract below the source root"""
        return Path(source_root) / self.relative_path


SOURCE_TABLES: Dict[SourceEntity, SourceTable] = {
    SourceEntity.CRM_CUSTOMERS: SourceTable(
        entity=SourceEntity.CRM_CUSTOMERS,
        system=SourceSystem.CRM,
        relative_path="source_crm/cust_info.csv",
        columns=(
            "cst_id",
            "cst_key",
            "cst_firstname",
            "cst_lastname",
            "cst_marital_status",
            "cst_gndr",
            "cst_create_date",
        ),
    ),
    SourceEntity.CRM_PRODUCTS: SourceTable(
        entity=SourceEntity.CRM_PRODUCTS,
        system=SourceSystem.CRM,
        relative_path="source_crm/prd_info.csv",
        columns=(
            "prd_id",
            "prd_key",
            "prd_nm",
            "prd_cost",
            "prd_line",
            "prd_start_dt",
            "prd_end_dt",
        ),
    ),
    SourceEntity.CRM_SALES: SourceTable(
        entity=SourceEntity.CRM_SALES,
        system=SourceSystem.CRM,
        relative_path="source_crm/sales_details.csv",
        columns=(
            "sls_ord_num",
            "sls_prd_key",
            "sls_cust_id",
            "sls_order_dt",
            "sls_ship_dt",
            "sls_due_dt",
            "sls_sales",
            "sls_quantity",
            "sls_price",
        ),
    ),
    SourceEntity.ERP_CUSTOMERS: SourceTable(
        entity=SourceEntity.ERP_CUSTOMERS,
        system=SourceSystem.ERP,
        relative_path="source_erp/CUST_AZ12.csv",
        columns=("CID", "BDATE", "GEN"),
    ),
    SourceEntity.ERP_LOCATIONS: SourceTable(
        entity=SourceEntity.ERP_LOCATIONS,
        system=SourceSystem.ERP,
        relative_path="source_erp/LOC_A101.csv",
        columns=("CID", "CNTRY"),
    ),
    SourceEntity.ERP_CATEGORIES: SourceTable(
        entity=SourceEntity.ERP_CATEGORIES,
        system=SourceSystem.ERP,
        relative_path="source_erp/PX_CAT_G1V2.csv",
        columns=("ID", "CAT", "SUBCAT", "MAINTENANCE"),
    ),
}


def get_source_table(source_id: Union[str, SourceEntity]) -> SourceTable:
    """
    Look up a source by id.

    Raises:
        KeyError: If the id does not name a configured extract
    """
    try:
        return SOURCE_TABLES[SourceEntity(source_id)]
    except ValueError:
        raise KeyError(f"Unknown source id: {source_id}") from None

"""
Cleansing Transformer

Reads staging tables, applies the per-entity cleansing rules and publishes
the clean tables as one snapshot.
"""

import time
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Callable, Dict, Iterable, Optional, Tuple, Union

import polars as pl
import structlog

from salesdwh.config import Settings, get_settings
from salesdwh.errors import PipelineError, Stage, ValidationError
from salesdwh.ingestion.sources import SourceEntity
from salesdwh.storage import TableStore, Zone
from .cleaners import CleaningStats, DataCleaner

logger = structlog.get_logger(__name__)


class CleanEntity(str, Enum):
    """Clean tables, one per cleansed entity"""
    CUSTOMERS = "customers"
    PRODUCTS = "products"
    SALES = "sales"
    ERP_CUSTOMERS = "erp_customers"
    ERP_LOCATIONS = "erp_locations"
    ERP_CATEGORIES = "erp_categories"


# Business key columns of every clean table
BUSINESS_KEYS: Dict[CleanEntity, Tuple[str, ...]] = {
    CleanEntity.CUSTOMERS: ("customer_id",),
    CleanEntity.PRODUCTS: ("product_number",),
    CleanEntity.SALES: ("order_number", "product_number"),
    CleanEntity.ERP_CUSTOMERS: ("customer_number",),
    CleanEntity.ERP_LOCATIONS: ("customer_number",),
    CleanEntity.ERP_CATEGORIES: ("category_id",),
}

STAGING_SOURCES: Dict[CleanEntity, SourceEntity] = {
    CleanEntity.CUSTOMERS: SourceEntity.CRM_CUSTOMERS,
    CleanEntity.PRODUCTS: SourceEntity.CRM_PRODUCTS,
    CleanEntity.SALES: SourceEntity.CRM_SALES,
    CleanEntity.ERP_CUSTOMERS: SourceEntity.ERP_CUSTOMERS,
    CleanEntity.ERP_LOCATIONS: SourceEntity.ERP_LOCATIONS,
    CleanEntity.ERP_CATEGORIES: SourceEntity.ERP_CATEGORIES,
}


@dataclass
class CleanTable:
    """A cleansed entity and how it got there"""
    entity: CleanEntity
    frame: pl.DataFrame
    input_rows: int
    output_rows: int
    rejected_rows: int
    duplicates_removed: int
    duration_ms: float
    repairs: Dict[str, int] = field(default_factory=dict)

    @property
    def business_key(self) -> Tuple[str, ...]:
        return BUSINESS_KEYS[self.entity]


class CleansingTransformer:
    """
    Turns staging tables into clean, business-key-addressable tables.

    Rows with an unusable business key are excluded and counted. In strict
    mode the first entity containing such a row aborts the stage with a
    ValidationError instead.

    Example:
        transformer = CleansingTransformer(store)
        customers = transformer.transform("customers")
        tables = transformer.transform_all()
    """

    def __init__(
        self,
        store: TableStore,
        cleaner: Optional[DataCleaner] = None,
        strict_business_keys: bool = False,
    ):
        self.store = store
        self.cleaner = cleaner or DataCleaner()
        self.strict_business_keys = strict_business_keys
        self._rules: Dict[CleanEntity, Callable[[pl.DataFrame], Tuple[pl.DataFrame, CleaningStats]]] = {
            CleanEntity.CUSTOMERS: self.cleaner.clean_customers,
            CleanEntity.PRODUCTS: self.cleaner.clean_products,
            CleanEntity.SALES: self.cleaner.clean_sales,
            CleanEntity.ERP_CUSTOMERS: self.cleaner.clean_erp_customers,
            CleanEntity.ERP_LOCATIONS: self.cleaner.clean_erp_locations,
            CleanEntity.ERP_CATEGORIES: self.cleaner.clean_erp_categories,
        }

    def _read_staging(self, entity: CleanEntity) -> pl.DataFrame:
        try:
            return self.store.read_table(Zone.STAGING, STAGING_SOURCES[entity].value)
        except PipelineError as e:
            e.stage = Stage.TRANSFORM
            raise

    def _report_rejections(self, entity: CleanEntity, stats: CleaningStats) -> None:
        if stats.rejected_rows == 0:
            return

        error = ValidationError(
            f"{stats.rejected_rows} {entity.value} rows have no usable business key",
            stage=Stage.TRANSFORM,
            entity=entity.value,
            business_key=list(BUSINESS_KEYS[entity]),
            rejected_rows=stats.rejected_rows,
            sample=stats.rejected_keys,
        )
        if self.strict_business_keys:
            logger.error("Unrepairable rows in strict mode", **error.to_dict())
            raise error

        logger.warning("Rows excluded from clean table", **error.to_dict())

    def transform(self, entity: Union[str, CleanEntity]) -> CleanTable:
        """
        Cleanse one entity from its staging table.

        Args:
            entity: Clean table name, e.g. "customers"

        Returns:
            CleanTable: Cleansed frame and statistics

        Raises:
            StageInputMissing: The staging table has not been loaded
            ValidationError: Unusable business keys while in strict mode
        """
        entity = CleanEntity(entity)
        start = time.perf_counter()

        raw = self._read_staging(entity)
        frame, stats = self._rules[entity](raw)
        self._report_rejections(entity, stats)

        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "Entity cleansed",
            stage=Stage.TRANSFORM.value,
            entity=entity.value,
            input_rows=stats.input_rows,
            output_rows=stats.output_rows,
            rejected_rows=stats.rejected_rows,
            duplicates_removed=stats.duplicates_removed,
            repairs=stats.repairs,
            duration_ms=round(duration_ms, 2),
        )

        return CleanTable(
            entity=entity,
            frame=frame,
            input_rows=stats.input_rows,
            output_rows=stats.output_rows,
            rejected_rows=stats.rejected_rows,
            duplicates_removed=stats.duplicates_removed,
            duration_ms=duration_ms,
            repairs=dict(stats.repairs),
        )

    def transform_all(
        self,
        entities: Optional[Iterable[Union[str, CleanEntity]]] = None,
        publish: bool = True,
    ) -> Dict[str, CleanTable]:
        """
        Cleanse every entity and publish them together.

        The clean zone only changes once all entities have been cleansed; a
        failure part-way leaves the previous clean snapshot visible.

        Returns:
            CleanTable per entity name
        """
        names = [CleanEntity(e) for e in (entities or CleanEntity)]
        tables = {entity.value: self.transform(entity) for entity in names}

        if publish:
            # Entities not rebuilt this time carry over from the visible snapshot
            snapshot = {
                name: self.store.read_table(Zone.CLEAN, name)
                for name in self.store.list_tables(Zone.CLEAN)
                if name not in tables
            }
            snapshot.update({name: table.frame for name, table in tables.items()})
            self.store.publish_snapshot(Zone.CLEAN, snapshot)

        logger.info(
            "Clean tables published" if publish else "Clean tables built",
            stage=Stage.TRANSFORM.value,
            entities=list(tables),
            total_rows=sum(t.output_rows for t in tables.values()),
            rejected_rows=sum(t.rejected_rows for t in tables.values()),
        )
        return tables


def create_transformer(
    settings: Optional[Settings] = None,
    store: Optional[TableStore] = None,
    reference_date: Optional[date] = None,
) -> CleansingTransformer:
    """Create a CleansingTransformer configured from settings"""
    settings = settings or get_settings()
    return CleansingTransformer(
        store=store or TableStore.from_settings(settings),
        cleaner=DataCleaner(
            reference_date=reference_date,
            customer_prefixes=settings.pipeline.erp_customer_prefixes,
        ),
        strict_business_keys=settings.pipeline.strict_business_keys,
    )

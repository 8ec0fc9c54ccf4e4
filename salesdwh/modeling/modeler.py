"""
Dimensional Modeler

Assembles the star schema (dim_customers, dim_products, fact_sales) from the
clean zone, proves its integrity and publishes it to the curated zone and,
optionally, the SQL warehouse.
"""

import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import polars as pl
import structlog
from sqlalchemy import Engine

from salesdwh.config import Settings, get_settings
from salesdwh.database import WarehousePublisher, init_database
from salesdwh.errors import PipelineError, ReferentialIntegrityViolation, Stage
from salesdwh.quality import (
    ValidationResult,
    ValidationStatus,
    create_customer_dim_validator,
    create_product_dim_validator,
    create_sales_fact_validator,
)
from salesdwh.storage import TableStore, Zone
from salesdwh.transformation import CleanEntity
from .dimensions import build_customer_dim, build_product_dim
from .facts import build_sales_fact

logger = structlog.get_logger(__name__)


@dataclass
class ModelResult:
    """The assembled star schema"""
    customer_dim: pl.DataFrame
    product_dim: pl.DataFrame
    sales_fact: pl.DataFrame
    orphan_count: int = 0
    orphans_by_reason: Dict[str, int] = field(default_factory=dict)
    duration_ms: float = 0.0

    @property
    def tables(self) -> Dict[str, pl.DataFrame]:
        return {
            "dim_customers": self.customer_dim,
            "dim_products": self.product_dim,
            "fact_sales": self.sales_fact,
        }

    @property
    def row_counts(self) -> Dict[str, int]:
        return {name: df.height for name, df in self.tables.items()}


class DimensionalModeler:
    """
    Builds and publishes the star schema.

    Example:
        modeler = DimensionalModeler(store)
        result = modeler.build()
        modeler.publish(result)
    """

    def __init__(
        self,
        store: TableStore,
        publisher: Optional[WarehousePublisher] = None,
    ):
        self.store = store
        self.publisher = publisher

    def _read_clean(self, entity: CleanEntity) -> pl.DataFrame:
        try:
            return self.store.read_table(Zone.CLEAN, entity.value)
        except PipelineError as e:
            e.stage = Stage.MODEL
            raise

    @staticmethod
    def _enforce(table: str, result: ValidationResult) -> None:
        if result.status != ValidationStatus.FAILED:
            return

        error = ReferentialIntegrityViolation(
            f"Integrity checks failed for {table}",
            stage=Stage.MODEL,
            table=table,
            failed_checks=[
                {"check": c.name, "message": c.message, "failed_rows": c.failed_rows}
                for c in result.errors
            ],
        )
        logger.error("Star schema rejected", **error.to_dict())
        raise error

    def validate(self, result: ModelResult) -> List[ValidationResult]:
        """
        Prove key uniqueness and referential integrity of an assembled star.

        Raises:
            ReferentialIntegrityViolation: If any check fails
        """
        outcomes = []
        for table, validator, df in (
            ("dim_customers", create_customer_dim_validator(), result.customer_dim),
            ("dim_products", create_product_dim_validator(), result.product_dim),
            (
                "fact_sales",
                create_sales_fact_validator(result.customer_dim, result.product_dim),
                result.sales_fact,
            ),
        ):
            outcome = validator.validate(df)
            self._enforce(table, outcome)
            outcomes.append(outcome)
        return outcomes

    def build(self) -> ModelResult:
        """
        Assemble the star schema from the visible clean snapshot.

        Returns:
            ModelResult: Dimensions, fact and orphan accounting

        Raises:
            StageInputMissing: The clean zone has not been produced
            ReferentialIntegrityViolation: The assembled star is inconsistent
        """
        start = time.perf_counter()

        customer_dim = build_customer_dim(
            self._read_clean(CleanEntity.CUSTOMERS),
            self._read_clean(CleanEntity.ERP_CUSTOMERS),
            self._read_clean(CleanEntity.ERP_LOCATIONS),
        )
        product_dim = build_product_dim(
            self._read_clean(CleanEntity.PRODUCTS),
            self._read_clean(CleanEntity.ERP_CATEGORIES),
        )
        fact = build_sales_fact(
            self._read_clean(CleanEntity.SALES),
            customer_dim,
            product_dim,
        )

        result = ModelResult(
            customer_dim=customer_dim,
            product_dim=product_dim,
            sales_fact=fact.frame,
            orphan_count=fact.orphan_count,
            orphans_by_reason=fact.orphans_by_reason,
        )
        self.validate(result)
        result.duration_ms = (time.perf_counter() - start) * 1000

        logger.info(
            "Star schema built",
            stage=Stage.MODEL.value,
            rows=result.row_counts,
            orphan_count=result.orphan_count,
            orphans_by_reason=result.orphans_by_reason,
            duration_ms=round(result.duration_ms, 2),
        )
        return result

    def publish(self, result: ModelResult) -> str:
        """
        Make a built star schema visible.

        The curated zone is swapped first; the SQL warehouse, when
        configured, is then replaced in a single transaction.

        Returns:
            Identifier of the curated snapshot
        """
        snapshot_id = self.store.publish_snapshot(Zone.CURATED, result.tables)
        if self.publisher is not None:
            self.publisher.publish(result.tables)
        return snapshot_id


def create_modeler(
    settings: Optional[Settings] = None,
    store: Optional[TableStore] = None,
    engine: Optional[Engine] = None,
) -> DimensionalModeler:
    """
    Create a DimensionalModeler configured from settings.

    A SQL publisher is attached when an engine is given or database
    publication is enabled.
    """
    settings = settings or get_settings()
    publisher = None
    if engine is not None or settings.pipeline.publish_to_database:
        publisher = WarehousePublisher(engine or init_database(settings))

    return DimensionalModeler(
        store=store or TableStore.from_settings(settings),
        publisher=publisher,
    )

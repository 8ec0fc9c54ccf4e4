"""
Warehouse Publisher

Replaces the SQL star schema with freshly built frames.
"""

import time
from typing import Dict

import polars as pl
import structlog
from sqlalchemy import Engine, delete, insert

from .models import DimCustomer, DimProduct, FactSales

logger = structlog.get_logger(__name__)

# Dimensions before facts on insert; reversed on delete
PUBLISH_ORDER = [
    ("dim_customers", DimCustomer),
    ("dim_products", DimProduct),
    ("fact_sales", FactSales),
]


class WarehousePublisher:
    """
    Full-refresh writer for the star tables.

    All three tables are emptied and refilled inside one transaction, so
    readers see either the previous star or the new one.

    Example:
        publisher = WarehousePublisher(init_database(settings))
        publisher.publish({"dim_customers": dim, ...})
    """

    def __init__(self, engine: Engine):
        self.engine = engine

    def publish(self, tables: Dict[str, pl.DataFrame]) -> Dict[str, int]:
        """
        Replace every star table.

        Args:
            tables: Frames keyed by table name; all three are required

        Returns:
            Rows inserted per table
        """
        missing = [name for name, _ in PUBLISH_ORDER if name not in tables]
        if missing:
            raise ValueError(f"Missing star tables: {missing}")

        start = time.perf_counter()
        inserted: Dict[str, int] = {}

        with self.engine.begin() as conn:
            for _, model in reversed(PUBLISH_ORDER):
                conn.execute(delete(model))

            for name, model in PUBLISH_ORDER:
                columns = [c.name for c in model.__table__.columns]
                rows = tables[name].select(columns).to_dicts()
                if rows:
                    conn.execute(insert(model), rows)
                inserted[name] = len(rows)

        logger.info(
            "Star schema published to database",
            dialect=self.engine.dialect.name,
            rows=inserted,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        return inserted

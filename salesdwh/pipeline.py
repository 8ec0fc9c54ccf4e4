"""
Pipeline Orchestration

Runs the three stages strictly in order, each one only after its
predecessor succeeded:

    load -> transform -> model

Every stage logs stage_started / stage_completed / stage_failed with the
run id, ISO timestamps and its duration. A failed stage aborts the run and
its error propagates to the caller.
"""

import time
import uuid
from contextlib import contextmanager
from datetime import date, datetime
from enum import Enum
from typing import Dict, Iterator, Optional, Sequence, Tuple

import structlog
from pydantic import BaseModel, Field
from sqlalchemy import Engine

from salesdwh.config import Settings, get_settings
from salesdwh.database import close_database
from salesdwh.errors import PipelineError, Stage
from salesdwh.ingestion import LoadResult, create_raw_loader
from salesdwh.modeling import ModelResult, create_modeler
from salesdwh.storage import TableStore
from salesdwh.transformation import CleanTable, create_transformer

logger = structlog.get_logger(__name__)


class PipelineStatus(str, Enum):
    """Outcome of a run that did not raise"""
    COMPLETED = "completed"
    COMPLETED_WITH_WARNINGS = "completed_with_warnings"  # rows rejected or orphaned


class PipelineResult(BaseModel):
    """Summary of one full refresh"""
    run_id: str
    status: PipelineStatus
    row_counts: Dict[str, int] = Field(default_factory=dict)
    rejected_rows: int = 0
    orphan_count: int = 0
    orphans_by_reason: Dict[str, int] = Field(default_factory=dict)
    curated_snapshot: Optional[str] = None
    duration_ms: float
    stage_durations_ms: Dict[str, float] = Field(default_factory=dict)
    started_at: datetime
    completed_at: datetime


@contextmanager
def stage_context(stage: Stage, timings: Optional[Dict[str, float]] = None) -> Iterator[None]:
    """
    Log the lifecycle of one stage and attribute its errors to it.

    Errors are logged with their diagnostic fields and re-raised unchanged,
    apart from filling in the stage when the raiser left it open.
    """
    started_at = datetime.utcnow()
    start = time.perf_counter()
    logger.info("stage_started", stage=stage.value, started_at=started_at.isoformat())

    try:
        yield
    except PipelineError as e:
        if e.stage is None:
            e.stage = stage
        logger.error(
            "stage_failed",
            stage=stage.value,
            started_at=started_at.isoformat(),
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
            **e.to_dict(),
        )
        raise
    except Exception as e:
        logger.exception(
            "stage_failed",
            stage=stage.value,
            started_at=started_at.isoformat(),
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
            error_code=type(e).__name__,
            error_message=str(e),
            error_stage=stage.value,
        )
        raise

    duration_ms = (time.perf_counter() - start) * 1000
    if timings is not None:
        timings[stage.value] = duration_ms
    logger.info(
        "stage_completed",
        stage=stage.value,
        started_at=started_at.isoformat(),
        completed_at=datetime.utcnow().isoformat(),
        duration_ms=round(duration_ms, 2),
    )


def load_stage(
    settings: Optional[Settings] = None,
    store: Optional[TableStore] = None,
    timings: Optional[Dict[str, float]] = None,
    source_ids: Optional[Sequence[str]] = None,
) -> Dict[str, LoadResult]:
    """Run the raw load: every extract (or the given ones) into its staging table"""
    with stage_context(Stage.LOAD, timings):
        return create_raw_loader(settings, store).load_all(source_ids)


def transform_stage(
    settings: Optional[Settings] = None,
    store: Optional[TableStore] = None,
    reference_date: Optional[date] = None,
    timings: Optional[Dict[str, float]] = None,
    entities: Optional[Sequence[str]] = None,
) -> Dict[str, CleanTable]:
    """Run the cleansing: staging tables into one clean snapshot"""
    with stage_context(Stage.TRANSFORM, timings):
        return create_transformer(settings, store, reference_date).transform_all(entities)


def model_stage(
    settings: Optional[Settings] = None,
    store: Optional[TableStore] = None,
    engine: Optional[Engine] = None,
    timings: Optional[Dict[str, float]] = None,
) -> Tuple[ModelResult, str]:
    """
    Run the modeling: build, validate and publish the star schema.

    Returns:
        (ModelResult, curated snapshot id)
    """
    with stage_context(Stage.MODEL, timings):
        modeler = create_modeler(settings, store, engine)
        result: ModelResult = modeler.build()
        snapshot_id = modeler.publish(result)
        return result, snapshot_id


def run_pipeline(
    settings: Optional[Settings] = None,
    store: Optional[TableStore] = None,
    reference_date: Optional[date] = None,
    engine: Optional[Engine] = None,
) -> PipelineResult:
    """
    Run a full refresh of the warehouse.

    Args:
        settings: Configuration (cached settings when omitted)
        store: Table store (built from settings when omitted)
        reference_date: "Today" for date plausibility rules
        engine: SQL engine to publish the star schema to

    Returns:
        PipelineResult: Row counts, orphan count and timings

    Raises:
        PipelineError: The first stage failure, annotated with its stage
    """
    settings = settings or get_settings()
    store = store or TableStore.from_settings(settings)
    run_id = uuid.uuid4().hex
    started_at = datetime.utcnow()
    start = time.perf_counter()
    timings: Dict[str, float] = {}

    with structlog.contextvars.bound_contextvars(run_id=run_id):
        logger.info("Pipeline run started", started_at=started_at.isoformat(), environment=settings.app_env)

        try:
            load_stage(settings, store, timings)
            clean_tables = transform_stage(settings, store, reference_date, timings)
            model, snapshot_id = model_stage(settings, store, engine, timings)
        except PipelineError as e:
            logger.error(
                "Pipeline run failed",
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
                **e.to_dict(),
            )
            raise
        finally:
            # Only disposes an engine opened from settings, never the caller's
            close_database()

        rejected = sum(t.rejected_rows for t in clean_tables.values())
        row_counts = {name: t.output_rows for name, t in clean_tables.items()}
        row_counts.update(model.row_counts)

        completed_at = datetime.utcnow()
        result = PipelineResult(
            run_id=run_id,
            status=(
                PipelineStatus.COMPLETED_WITH_WARNINGS
                if rejected or model.orphan_count
                else PipelineStatus.COMPLETED
            ),
            row_counts=row_counts,
            rejected_rows=rejected,
            orphan_count=model.orphan_count,
            orphans_by_reason=model.orphans_by_reason,
            curated_snapshot=snapshot_id,
            duration_ms=(time.perf_counter() - start) * 1000,
            stage_durations_ms=timings,
            started_at=started_at,
            completed_at=completed_at,
        )

        logger.info(
            "Pipeline run completed",
            status=result.status.value,
            row_counts=result.row_counts,
            orphan_count=result.orphan_count,
            duration_ms=round(result.duration_ms, 2),
            completed_at=completed_at.isoformat(),
        )
        return result

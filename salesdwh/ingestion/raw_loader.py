"""
Raw Loader

Copies each source extract into its staging table without interpreting it:
every field is kept as text and column order follows the extract. Only the
shape is checked: the header against the expected layout and each line
against the header's field count.

Supports:
- Case-sensitive file resolution
- Header and field-count validation
- Atomic replacement of staging tables
- Independent per-file loading, optionally on a thread pool
"""

import csv
import hashlib
import os
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

import polars as pl
import structlog
from pydantic import BaseModel

from salesdwh.config import Settings, get_settings
from salesdwh.errors import PipelineError, SchemaMismatch, SourceUnavailable, Stage
from salesdwh.ingestion.sources import SOURCE_TABLES, SourceEntity, SourceTable, get_source_table
from salesdwh.storage import TableStore, Zone

logger = structlog.get_logger(__name__)


class LoadResult(BaseModel):
    """Result of loading one extract into staging"""
    source_id: str
    file_path: str
    target_table: str
    row_count: int = 0
    duration_ms: float = 0
    started_at: datetime
    completed_at: Optional[datetime] = None
    file_hash: Optional[str] = None


class RawLoader:
    """
    Loads CRM and ERP extracts into the staging zone.

    A failed load never truncates anything: the previous staging table stays
    in place until a load of the same extract succeeds.

    Example:
        loader = RawLoader(store, source_path="data/source")
        result = loader.load("crm_cust_info")
        results = loader.load_all()
    """

    def __init__(
        self,
        store: TableStore,
        source_path: Union[str, Path],
        delimiter: str = ",",
        encoding: str = "utf8",
        continue_on_error: bool = True,
        parallel: bool = False,
        max_workers: int = 4,
    ):
        self.store = store
        self.source_path = Path(source_path)
        self.delimiter = delimiter
        self.encoding = encoding
        self.continue_on_error = continue_on_error
        self.parallel = parallel
        self.max_workers = max_workers

    def _compute_file_hash(self, file_path: Path) -> str:
        """Compute MD5 hash of the extract for traceability"""
        hash_md5 = hashlib.md5()
        with open(file_path, "rb") as f:
            for chunk in iter(lambda: f.read(4096), b""):
                hash_md5.update(chunk)
        return hash_md5.hexdigest()

    def _locate(self, source: SourceTable) -> Path:
        """Resolve the extract path, matching the file name case-sensitively"""
        path = source.resolve(self.source_path)
        directory = path.parent

        try:
            present = os.listdir(directory)
        except OSError as e:
            raise SourceUnavailable(
                f"Extract directory not readable: {directory}",
                stage=Stage.LOAD,
                table=source.table_name,
                path=str(path),
                reason=str(e),
            ) from e

        if path.name not in present:
            near_misses = [name for name in present if name.lower() == path.name.lower()]
            raise SourceUnavailable(
                f"Extract not found: {path}",
                stage=Stage.LOAD,
                table=source.table_name,
                path=str(path),
                case_mismatches=near_misses,
            )
        if not path.is_file():
            raise SourceUnavailable(
                f"Extract is not a regular file: {path}",
                stage=Stage.LOAD,
                table=source.table_name,
                path=str(path),
            )
        return path

    def _read_csv(self, path: Path) -> pl.DataFrame:
        """Read the extract with every column as text"""
        return pl.read_csv(
            path,
            separator=self.delimiter,
            has_header=True,
            infer_schema_length=0,
            encoding=self.encoding,
        )

    def _read_extract(self, path: Path, source: SourceTable) -> pl.DataFrame:
        """Read the extract and translate reader failures into pipeline errors"""
        try:
            df = self._read_csv(path)
        except pl.exceptions.NoDataError as e:
            raise SchemaMismatch(
                f"Extract has no header row: {path}",
                stage=Stage.LOAD,
                table=source.table_name,
                path=str(path),
                expected_columns=list(source.columns),
            ) from e
        except OSError as e:
            raise SourceUnavailable(
                f"Extract not readable: {path}",
                stage=Stage.LOAD,
                table=source.table_name,
                path=str(path),
                reason=str(e),
            ) from e
        except pl.exceptions.PolarsError as e:
            reason = str(e)
            if "utf-8" in reason.lower() or "utf8" in reason.lower():
                raise SourceUnavailable(
                    f"Extract is not valid {self.encoding}: {path}",
                    stage=Stage.LOAD,
                    table=source.table_name,
                    path=str(path),
                    reason=reason,
                ) from e
            raise SchemaMismatch(
                f"Extract rows disagree with its header: {path}",
                stage=Stage.LOAD,
                table=source.table_name,
                path=str(path),
                reason=reason,
            ) from e

        self._validate_header(df.columns, source, path)
        self._validate_field_counts(path, source)

        # Header names are compared trimmed; staging uses the canonical names
        df = df.rename(dict(zip(df.columns, source.columns)))

        # Blank lines are not records
        return df.filter(~pl.all_horizontal(pl.all().is_null()))

    def _validate_header(self, columns: List[str], source: SourceTable, path: Path) -> None:
        """Compare the extract header with the staging layout"""
        actual = [c.lstrip("\ufeff").strip() for c in columns]
        expected = list(source.columns)
        if actual == expected:
            return

        raise SchemaMismatch(
            f"Header of {path.name} does not match staging layout of {source.table_name}",
            stage=Stage.LOAD,
            table=source.table_name,
            path=str(path),
            expected_columns=expected,
            actual_columns=actual,
            missing=[c for c in expected if c not in actual],
            unexpected=[c for c in actual if c not in expected],
        )

    def _validate_field_counts(self, path: Path, source: SourceTable) -> None:
        """Every non-blank line must carry exactly as many fields as the header"""
        expected = len(source.columns)
        bad_lines: List[int] = []

        # Decoding problems were already reported by the reader
        with open(path, "r", encoding="utf-8", errors="replace", newline="") as f:
            reader = csv.reader(f, delimiter=self.delimiter)
            next(reader, None)
            for row in reader:
                if row and len(row) != expected:
                    bad_lines.append(reader.line_num)

        if bad_lines:
            raise SchemaMismatch(
                f"{len(bad_lines)} line(s) of {path.name} do not have {expected} fields",
                stage=Stage.LOAD,
                table=source.table_name,
                path=str(path),
                expected_fields=expected,
                line_numbers=bad_lines[:20],
            )

    def load(self, source_id: Union[str, SourceEntity]) -> LoadResult:
        """
        Replace one staging table with the current content of its extract.

        Args:
            source_id: Staging table / extract id, e.g. "crm_cust_info"

        Returns:
            LoadResult: Row count and timing of the load

        Raises:
            SourceUnavailable: The extract is missing or unreadable
            SchemaMismatch: The extract's shape disagrees with the staging layout
        """
        source = get_source_table(source_id)
        started_at = datetime.utcnow()
        start = time.perf_counter()
        log = logger.bind(stage=Stage.LOAD.value, table=source.table_name)

        log.info(
            "Replacing staging table",
            source_system=source.system.value,
            file=source.relative_path,
        )

        try:
            path = self._locate(source)
            file_hash = self._compute_file_hash(path)
            df = self._read_extract(path, source)
            self.store.write_table(Zone.STAGING, source.table_name, df)
        except PipelineError as e:
            log.error("Staging load failed", **e.to_dict())
            raise

        completed_at = datetime.utcnow()
        duration_ms = (time.perf_counter() - start) * 1000

        log.info(
            "Staging table loaded",
            rows=df.height,
            duration_ms=round(duration_ms, 2),
        )

        return LoadResult(
            source_id=source.table_name,
            file_path=str(path),
            target_table=source.table_name,
            row_count=df.height,
            duration_ms=duration_ms,
            started_at=started_at,
            completed_at=completed_at,
            file_hash=file_hash,
        )

    def load_all(
        self,
        source_ids: Optional[Iterable[Union[str, SourceEntity]]] = None,
    ) -> Dict[str, LoadResult]:
        """
        Load every configured extract (or the given subset).

        Extracts are independent of each other. When continue_on_error is set
        the remaining extracts are still loaded after a failure, and the first
        error is raised once all of them have been attempted. Otherwise the
        first failure is raised at once; on the thread pool, loads that have
        not started yet are cancelled.

        Returns:
            LoadResult per staging table, in registry order
        """
        ids = [SourceEntity(s).value for s in (source_ids or SOURCE_TABLES)]
        started_at = datetime.utcnow()
        start = time.perf_counter()

        logger.info(
            "Starting staging load",
            stage=Stage.LOAD.value,
            sources=ids,
            parallel=self.parallel,
            started_at=started_at.isoformat(),
        )

        results: Dict[str, LoadResult] = {}
        failures: List[PipelineError] = []

        if self.parallel:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                futures = [(sid, pool.submit(self.load, sid)) for sid in ids]
                for sid, future in futures:
                    try:
                        results[sid] = future.result()
                    except PipelineError as e:
                        if not self.continue_on_error:
                            # Loads already running finish; queued ones never start
                            for _, pending in futures:
                                pending.cancel()
                            raise
                        failures.append(e)
        else:
            for sid in ids:
                try:
                    results[sid] = self.load(sid)
                except PipelineError as e:
                    if not self.continue_on_error:
                        raise
                    failures.append(e)

        duration_ms = (time.perf_counter() - start) * 1000

        if failures:
            logger.error(
                "Staging load finished with failures",
                stage=Stage.LOAD.value,
                loaded=sorted(results),
                failed=[e.details.get("table") for e in failures],
                duration_ms=round(duration_ms, 2),
            )
            raise failures[0]

        logger.info(
            "Staging load completed",
            stage=Stage.LOAD.value,
            tables=len(results),
            total_rows=sum(r.row_count for r in results.values()),
            duration_ms=round(duration_ms, 2),
        )
        return results


def create_raw_loader(
    settings: Optional[Settings] = None,
    store: Optional[TableStore] = None,
) -> RawLoader:
    """Create a RawLoader configured from settings"""
    settings = settings or get_settings()
    return RawLoader(
        store=store or TableStore.from_settings(settings),
        source_path=settings.data_lake.source_path,
        delimiter=settings.data_lake.delimiter,
        encoding=settings.data_lake.encoding,
        continue_on_error=settings.pipeline.continue_on_load_error,
        parallel=settings.pipeline.parallel_loads,
        max_workers=settings.pipeline.max_load_workers,
    )

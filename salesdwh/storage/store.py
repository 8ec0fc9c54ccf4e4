"""
Parquet Table Store

Holds the tables produced by each pipeline stage, one parquet file per table,
grouped in three zones:

- staging: source-shaped raw tables, replaced one file at a time
- clean:   cleansed entities, replaced as a whole snapshot
- curated: the star schema, replaced as a whole snapshot

Nothing is ever truncated in place. A single table is written to a temporary
file and renamed over the previous one; a snapshot is written into a fresh
directory and becomes visible when the zone's CURRENT pointer file is
atomically replaced. Readers therefore see either the previous or the new
content, never a half-written one.
"""

import os
import shutil
import uuid
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Union

import polars as pl
import structlog

from salesdwh.config import Settings, get_settings
from salesdwh.errors import StageInputMissing

logger = structlog.get_logger(__name__)

CURRENT_POINTER = "CURRENT"
SNAPSHOT_DIR = "_snapshots"
TABLE_SUFFIX = ".parquet"


class Zone(str, Enum):
    """Storage zones, one per pipeline stage output"""
    STAGING = "staging"
    CLEAN = "clean"
    CURATED = "curated"


class TableStore:
    """
    File-backed store of named polars tables.

    Example:
        store = TableStore.from_settings()
        store.write_table(Zone.STAGING, "crm_cust_info", df)
        store.publish_snapshot(Zone.CURATED, {"dim_customers": dim})
        dim = store.read_table(Zone.CURATED, "dim_customers")
    """

    def __init__(
        self,
        staging_path: Union[str, Path],
        clean_path: Union[str, Path],
        curated_path: Union[str, Path],
    ):
        self._roots: Dict[Zone, Path] = {
            Zone.STAGING: Path(staging_path),
            Zone.CLEAN: Path(clean_path),
            Zone.CURATED: Path(curated_path),
        }

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "TableStore":
        """Create a store rooted at the configured data lake zones"""
        settings = settings or get_settings()
        return cls(
            staging_path=settings.data_lake.staging_path,
            clean_path=settings.data_lake.clean_path,
            curated_path=settings.data_lake.curated_path,
        )

    def zone_path(self, zone: Zone) -> Path:
        """Root directory of a zone, created on first use"""
        root = self._roots[Zone(zone)]
        root.mkdir(parents=True, exist_ok=True)
        return root

    def current_snapshot(self, zone: Zone) -> Optional[str]:
        """Identifier of the zone's visible snapshot, if it has one"""
        pointer = self.zone_path(zone) / CURRENT_POINTER
        if not pointer.exists():
            return None
        return pointer.read_text(encoding="utf-8").strip() or None

    def _visible_dir(self, zone: Zone) -> Path:
        root = self.zone_path(zone)
        snapshot = self.current_snapshot(zone)
        if snapshot is None:
            return root
        return root / SNAPSHOT_DIR / snapshot

    def table_path(self, zone: Zone, name: str) -> Path:
        """Path of the visible parquet file for a table"""
        return self._visible_dir(zone) / f"{name}{TABLE_SUFFIX}"

    def table_exists(self, zone: Zone, name: str) -> bool:
        return self.table_path(zone, name).is_file()

    def list_tables(self, zone: Zone) -> List[str]:
        """Names of all visible tables in a zone, sorted"""
        directory = self._visible_dir(zone)
        if not directory.is_dir():
            return []
        return sorted(
            p.name[: -len(TABLE_SUFFIX)]
            for p in directory.iterdir()
            if p.is_file() and p.name.endswith(TABLE_SUFFIX) and not p.name.startswith(".")
        )

    def read_table(self, zone: Zone, name: str) -> pl.DataFrame:
        """
        Read a visible table.

        Raises:
            StageInputMissing: If the table has never been written
        """
        path = self.table_path(zone, name)
        if not path.is_file():
            raise StageInputMissing(
                f"Table '{name}' not found in {Zone(zone).value} zone",
                zone=Zone(zone).value,
                table=name,
                path=str(path),
            )
        return pl.read_parquet(path)

    def write_table(self, zone: Zone, name: str, df: pl.DataFrame) -> Path:
        """
        Replace a single table in a zone that is not snapshot-managed.

        The frame is written to a hidden temporary file next to the target and
        renamed over it, so an interrupted write leaves the old table intact.
        """
        if self.current_snapshot(zone) is not None:
            raise ValueError(
                f"{Zone(zone).value} zone is snapshot-managed; use publish_snapshot()"
            )
        root = self.zone_path(zone)
        target = root / f"{name}{TABLE_SUFFIX}"
        tmp = root / f".{name}.{uuid.uuid4().hex}.tmp"
        try:
            df.write_parquet(tmp)
            os.replace(tmp, target)
        finally:
            tmp.unlink(missing_ok=True)

        logger.debug("Table replaced", zone=Zone(zone).value, table=name, rows=df.height)
        return target

    def publish_snapshot(self, zone: Zone, tables: Dict[str, pl.DataFrame]) -> str:
        """
        Atomically replace every table of a zone.

        All frames are written into a new snapshot directory first; the
        snapshot only becomes visible once the CURRENT pointer is swapped.
        Older snapshots are removed afterwards.

        Returns:
            Identifier of the published snapshot
        """
        root = self.zone_path(zone)
        snapshot_id = f"{datetime.utcnow():%Y%m%dT%H%M%S%f}-{uuid.uuid4().hex[:8]}"
        snapshot_dir = root / SNAPSHOT_DIR / snapshot_id
        snapshot_dir.mkdir(parents=True)

        try:
            for name, df in tables.items():
                df.write_parquet(snapshot_dir / f"{name}{TABLE_SUFFIX}")
        except Exception:
            shutil.rmtree(snapshot_dir, ignore_errors=True)
            raise

        pointer_tmp = root / f".{CURRENT_POINTER}.{uuid.uuid4().hex}.tmp"
        pointer_tmp.write_text(snapshot_id, encoding="utf-8")
        os.replace(pointer_tmp, root / CURRENT_POINTER)

        self._prune_snapshots(zone, keep=snapshot_id)

        logger.info(
            "Snapshot published",
            zone=Zone(zone).value,
            snapshot=snapshot_id,
            tables=sorted(tables),
        )
        return snapshot_id

    def _prune_snapshots(self, zone: Zone, keep: str) -> None:
        snapshots = self.zone_path(zone) / SNAPSHOT_DIR
        for entry in snapshots.iterdir():
            if entry.is_dir() and entry.name != keep:
                shutil.rmtree(entry, ignore_errors=True)

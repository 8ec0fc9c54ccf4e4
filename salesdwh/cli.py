"""
Command-line interface for the warehouse pipeline.

Usage:
    salesdwh run [--source-path DIR] [--reference-date YYYY-MM-DD]
    salesdwh load [--source crm_cust_info ...]
    salesdwh transform [--entity customers ...]
    salesdwh build
"""

import argparse
import json
import sys
from datetime import date
from typing import List, Optional

from salesdwh.config import Settings, get_settings
from salesdwh.config.logging import configure_logging
from salesdwh.errors import PipelineError
from salesdwh.ingestion import SOURCE_TABLES
from salesdwh.pipeline import load_stage, model_stage, run_pipeline, transform_stage
from salesdwh.transformation import CleanEntity


def _settings_from_args(args: argparse.Namespace) -> Settings:
    """Apply command-line overrides on top of environment settings"""
    settings = get_settings()
    if args.source_path:
        settings = settings.model_copy(
            update={
                "data_lake": settings.data_lake.model_copy(
                    update={"source_path": args.source_path}
                )
            }
        )
    return settings


def _emit(payload: dict) -> None:
    print(json.dumps(payload, indent=2, default=str))


def run_command(args: argparse.Namespace, settings: Settings) -> None:
    """Full refresh: load, transform, model"""
    result = run_pipeline(settings, reference_date=args.reference_date)
    _emit(result.model_dump(mode="json"))


def load_command(args: argparse.Namespace, settings: Settings) -> None:
    """Load extracts into staging"""
    results = load_stage(settings, source_ids=args.source)
    _emit({name: r.model_dump(mode="json") for name, r in results.items()})


def transform_command(args: argparse.Namespace, settings: Settings) -> None:
    """Cleanse staging tables into the clean zone"""
    tables = transform_stage(settings, reference_date=args.reference_date, entities=args.entity)
    _emit(
        {
            name: {
                "input_rows": t.input_rows,
                "output_rows": t.output_rows,
                "rejected_rows": t.rejected_rows,
                "duplicates_removed": t.duplicates_removed,
                "repairs": t.repairs,
            }
            for name, t in tables.items()
        }
    )


def build_command(args: argparse.Namespace, settings: Settings) -> None:
    """Assemble and publish the star schema from the clean zone"""
    result, snapshot_id = model_stage(settings)
    _emit(
        {
            "curated_snapshot": snapshot_id,
            "row_counts": result.row_counts,
            "orphan_count": result.orphan_count,
            "orphans_by_reason": result.orphans_by_reason,
        }
    )


COMMANDS = {
    "run": run_command,
    "load": load_command,
    "transform": transform_command,
    "build": build_command,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="salesdwh",
        description="CRM/ERP sales data warehouse pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Full refresh from the configured source folder
  salesdwh run

  # Reload only the CRM customer extract
  salesdwh load --source crm_cust_info

  # Cleanse with a fixed "today" for birth date plausibility
  salesdwh transform --reference-date 2024-01-01
        """
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override LOG_LEVEL (DEBUG, INFO, WARNING, ERROR)"
    )
    parser.add_argument(
        "--source-path",
        default=None,
        help="Override DATA_SOURCE_PATH, the root of the extract folders"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser("run", help="Run all stages")
    run_parser.add_argument(
        "--reference-date",
        type=date.fromisoformat,
        default=None,
        help="Date treated as today by plausibility rules (default: today)"
    )

    load_parser = subparsers.add_parser("load", help="Load extracts into staging")
    load_parser.add_argument(
        "--source",
        action="append",
        choices=[s.value for s in SOURCE_TABLES],
        help="Extract to load; repeatable (default: all)"
    )

    transform_parser = subparsers.add_parser("transform", help="Cleanse staging tables")
    transform_parser.add_argument(
        "--entity",
        action="append",
        choices=[e.value for e in CleanEntity],
        help="Entity to cleanse; repeatable (default: all)"
    )
    transform_parser.add_argument(
        "--reference-date",
        type=date.fromisoformat,
        default=None,
        help="Date treated as today by plausibility rules (default: today)"
    )

    subparsers.add_parser("build", help="Build and publish the star schema")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    settings = _settings_from_args(args)
    configure_logging(args.log_level, settings=settings)

    try:
        COMMANDS[args.command](args, settings)
    except PipelineError as e:
        print(json.dumps(e.to_dict(), indent=2, default=str), file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())

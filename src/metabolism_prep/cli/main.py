"""Command-line entry point for the metabolism input conditioning toolkit.

Two sub-commands are provided:

``prepare``
    Runs the full conditioning pipeline on a long-format records file and a
    site metadata JSON, writes the model input table (CSV or Parquet) and,
    optionally, a JSON summary with the specification record and the run
    diagnostics.

``intervals``
    Reports the native sampling interval inferred for each variable of a
    records file and the grid spacing the pipeline would select.
"""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Sequence

from metabolism_prep.config import load_prep_config
from metabolism_prep.exceptions import MetabolismPrepError
from metabolism_prep.io import (
    FilePressureSource,
    load_observation_records,
    load_site_metadata,
    write_prepared_table,
)
from metabolism_prep.io.schema_registry import VariableRegistry
from metabolism_prep.pipeline import prep_metabolism
from metabolism_prep.preprocessing import infer_variable_intervals, reconcile_intervals


def _build_logger(verbose: bool) -> logging.Logger:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s %(message)s")
    return logging.getLogger("metabolism_prep.cli")


def _handle_prepare(args: argparse.Namespace) -> int:
    logger = _build_logger(args.verbose)

    try:
        config = load_prep_config(args.config)
        records = load_observation_records(args.records)
        site = load_site_metadata(args.site)
        primary = FilePressureSource(args.pressure, name="pressure-file") if args.pressure else None
        result = prep_metabolism(records, site, config, pressure_source=primary)
    except (MetabolismPrepError, ValueError) as exc:
        logger.error("%s", exc)
        return 1

    output = write_prepared_table(result.data, args.output)
    logger.info("Wrote %d rows to %s", len(result.data), output)

    if args.summary is not None:
        summary = {
            "specs": result.specs.to_mapping(),
            "diagnostics": list(result.diagnostics.to_records()),
        }
        args.summary.parent.mkdir(parents=True, exist_ok=True)
        args.summary.write_text(json.dumps(summary, indent=2, default=str), encoding="utf-8")
        logger.info("Wrote run summary to %s", args.summary)

    if result.warnings:
        logger.info("Run completed with %d warning(s).", len(result.warnings))
    return 0


def _handle_intervals(args: argparse.Namespace) -> int:
    logger = _build_logger(args.verbose)

    try:
        records = load_observation_records(args.records)
        estimates = infer_variable_intervals(records)
        decision = reconcile_intervals(estimates, args.interval)
    except (MetabolismPrepError, ValueError) as exc:
        logger.error("%s", exc)
        return 1

    registry = VariableRegistry()
    payload = {
        "variables": {
            name: {
                "unit": registry.unit_for(name),
                "interval_minutes": estimate.interval_minutes,
                "gap_count": estimate.gap_count,
                "irregular": estimate.irregular,
                "samples": estimate.sample_count,
            }
            for name, estimate in estimates.items()
        },
        "selected_interval": decision.label,
        "source": decision.source,
        "notes": list(decision.notes),
    }
    print(json.dumps(payload, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="metabolism-prep")
    subparsers = parser.add_subparsers(dest="command", required=True)

    prepare = subparsers.add_parser(
        "prepare",
        help="Condition raw sensor records into a metabolism model input table.",
    )
    prepare.add_argument("--records", type=Path, required=True, help="Long-format records (CSV or Parquet).")
    prepare.add_argument("--site", type=Path, required=True, help="Site metadata JSON with lat/lon.")
    prepare.add_argument(
        "--config",
        type=Path,
        default=Path("config/prep_metabolism.json"),
        help="Preparation options JSON (defaults are used when the file is absent).",
    )
    prepare.add_argument(
        "--pressure",
        type=Path,
        help="Optional CSV/Parquet with DateTime_UTC and AirPres_kPa used as pressure source.",
    )
    prepare.add_argument("--output", type=Path, required=True, help="Destination CSV or Parquet file.")
    prepare.add_argument("--summary", type=Path, help="Optional JSON file receiving specs and diagnostics.")
    prepare.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    prepare.set_defaults(func=_handle_prepare)

    intervals = subparsers.add_parser(
        "intervals",
        help="Report the sampling interval inferred for each variable.",
    )
    intervals.add_argument("--records", type=Path, required=True, help="Long-format records (CSV or Parquet).")
    intervals.add_argument("--interval", help='Optional requested interval, e.g. "15 min".')
    intervals.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    intervals.set_defaults(func=_handle_intervals)

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())

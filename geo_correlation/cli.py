"""CLI entrypoint for the geographic correlation engine."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from geo_correlation.common.config_loader import load_config
from geo_correlation.common.constants import BOUNDARY_LEVELS, BOUNDARY_SCOPES, EXIT_HARD_FAIL, EXIT_NO_MATCH, EXIT_SUCCESS
from geo_correlation.common.errors import CorrelationError
from geo_correlation.common.fs import read_json, write_json
from geo_correlation.common.ids import generate_run_id
from geo_correlation.common.logging import build_logger, log_event
from geo_correlation.common.models import ColumnRelationship, index_to_dict
from geo_correlation.engine import CorrelationEngine

COMMANDS = ("index", "query", "resolve", "detect-boundary", "search-boundaries")


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("command", choices=COMMANDS)
    parser.add_argument("--config", default="./config/correlation.yml")
    parser.add_argument("--overlay-config", default=None)
    parser.add_argument("--run-id", default=None)
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--log-file", default=None)
    parser.add_argument("--output", default=None, help="index: write the full index as JSON here")
    parser.add_argument("--department", default=None)
    parser.add_argument("--municipality", default=None)
    parser.add_argument("--value", default=None, help="resolve: source cell value")
    parser.add_argument("--source-dataset", default="cli")
    parser.add_argument("--source-column", default="value")
    parser.add_argument("--relationship", default=None, help="resolve: JSON file with the column relationship")
    parser.add_argument("--target-rows", default=None, help="resolve: JSON file with target rows")
    parser.add_argument("--name", default=None, help="detect-boundary / search-boundaries: location text")
    parser.add_argument("--level", default=None, choices=list(BOUNDARY_LEVELS))
    parser.add_argument("--scope", default="both", choices=list(BOUNDARY_SCOPES))
    return parser.parse_args(argv)


def _emit(payload: Any) -> None:
    sys.stdout.write(json.dumps(payload, ensure_ascii=False, indent=2, default=str))
    sys.stdout.write("\n")


def _require(args: argparse.Namespace, *names: str) -> None:
    missing = [name for name in names if getattr(args, name) in (None, "")]
    if missing:
        flags = ", ".join(f"--{name.replace('_', '-')}" for name in missing)
        raise CorrelationError(f"{args.command} requires {flags}")


def execute_command(args: argparse.Namespace, engine: CorrelationEngine) -> int:
    if args.command == "index":
        index = engine.build_geographic_index()
        if args.output:
            write_json(Path(args.output), index_to_dict(index))
        _emit(engine.get_index_stats().to_dict())
        return EXIT_SUCCESS

    if args.command == "query":
        _require(args, "department")
        record = engine.get_geographic_data(args.department, args.municipality)
        _emit(record.to_dict() if record is not None else None)
        return EXIT_SUCCESS if record is not None else EXIT_NO_MATCH

    if args.command == "resolve":
        _require(args, "value", "relationship")
        relationship = ColumnRelationship.from_dict(read_json(Path(args.relationship)))
        target_rows = read_json(Path(args.target_rows)) if args.target_rows else None
        resolved = engine.resolve_relationship(
            args.value,
            args.source_dataset,
            args.source_column,
            relationship,
            target_rows=target_rows,
        )
        _emit(resolved.to_dict())
        return EXIT_SUCCESS if resolved.matched else EXIT_NO_MATCH

    if args.command == "detect-boundary":
        _require(args, "name")
        detection = engine.detect_boundary_level(args.name, args.level)
        _emit(detection.to_dict())
        return EXIT_SUCCESS if detection.is_boundary else EXIT_NO_MATCH

    if args.command == "search-boundaries":
        _require(args, "name")
        matches = engine.search_boundaries(args.name, args.scope)
        _emit([match.to_dict() for match in matches])
        return EXIT_SUCCESS if matches else EXIT_NO_MATCH

    raise ValueError(f"Unknown command: {args.command}")


def run_command(args: argparse.Namespace, engine: CorrelationEngine | None = None) -> int:
    run_id = args.run_id or generate_run_id()
    logger = build_logger(
        run_id,
        level=args.log_level,
        log_path=Path(args.log_file) if args.log_file else None,
    )

    log_event(logger, "command start", run_id=run_id, stage=args.command, event="COMMAND_START", status="ok")
    try:
        if engine is None:
            config = load_config(
                Path(args.config),
                overlay_path=Path(args.overlay_config) if args.overlay_config else None,
            )
            engine = CorrelationEngine.from_config(config, logger=logger)
        exit_code = execute_command(args, engine)
    except CorrelationError as exc:
        log_event(
            logger,
            f"command failed: {exc}",
            run_id=run_id,
            stage=args.command,
            event="COMMAND_FAIL",
            status="error",
            error_code=exc.error_code,
        )
        return EXIT_HARD_FAIL

    log_event(logger, "command end", run_id=run_id, stage=args.command, event="COMMAND_END", status="ok")
    return exit_code


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv or sys.argv[1:])
    try:
        return run_command(args)
    except Exception:
        return EXIT_HARD_FAIL


if __name__ == "__main__":
    raise SystemExit(main())

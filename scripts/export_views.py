#!/usr/bin/env python
"""
Compute the bottleneck views of an event log and write them as JSON.

Usage:
    python scripts/export_views.py --input data/orders.csv --output runtime/views.json
    python scripts/export_views.py --sample --output runtime/views.json --workers 4

The resulting JSON contains activity statistics, links, nodes, daily KPIs and metadata
for the chart and graph renderers.
"""

from __future__ import annotations

import argparse
import json
import logging
import pathlib
import sys
from typing import List, Optional

REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from bottleneck_miner.aggregation import compute_all  # noqa: E402  pylint: disable=wrong-import-position
from bottleneck_miner.event_log import (  # noqa: E402  pylint: disable=wrong-import-position
    CaseLog,
    EventLogError,
    load_events_from_csv,
    load_events_from_xes,
)
from bottleneck_miner.models import ProcessEvent  # noqa: E402  pylint: disable=wrong-import-position
from bottleneck_miner.sample_log import sample_events  # noqa: E402  pylint: disable=wrong-import-position
from bottleneck_miner.settings import LOG_NAME  # noqa: E402  pylint: disable=wrong-import-position


def configure_logging(level: int = logging.INFO) -> logging.Logger:
    logger = logging.getLogger(LOG_NAME)
    if not logger.handlers:
        logger.setLevel(level)
        handler = logging.StreamHandler()
        formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.propagate = False
    return logger


def load_events(input_path: pathlib.Path) -> List[ProcessEvent]:
    suffix = input_path.suffix.lower()
    if suffix == ".csv":
        loader = load_events_from_csv
    elif suffix == ".xes":
        loader = load_events_from_xes
    else:
        raise ValueError(f"Unsupported input format: {suffix}. Use .csv or .xes")
    try:
        return loader(input_path.read_bytes())
    except EventLogError as exc:
        raise SystemExit(f"Failed to load log: {exc}") from exc


def export_views(
    events: List[ProcessEvent],
    output_path: pathlib.Path,
    workers: Optional[int] = None,
    xes_output: Optional[pathlib.Path] = None,
) -> None:
    logger = logging.getLogger(LOG_NAME)
    try:
        case_log = CaseLog.from_events(events)
        views = compute_all(case_log, max_workers=workers)
    except EventLogError as exc:
        raise SystemExit(f"Failed to aggregate log: {exc}") from exc

    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json.dumps(views.to_payload(), indent=2), encoding="utf-8")
    logger.info("Wrote views to %s", output_path)

    if xes_output is not None:
        xes_output.parent.mkdir(parents=True, exist_ok=True)
        xes_output.write_bytes(case_log.to_xes_bytes())
        logger.info("Wrote normalised log to %s", xes_output)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Export bottleneck views of an event log as JSON.")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--input", type=pathlib.Path, help="Path to the source log (.csv or .xes).")
    source.add_argument("--sample", action="store_true", help="Use the built-in order-to-cash sample log.")
    parser.add_argument("--output", required=True, type=pathlib.Path, help="Destination JSON file.")
    parser.add_argument("--workers", type=int, default=None, help="Run the aggregations on this many threads.")
    parser.add_argument("--xes-output", type=pathlib.Path, default=None, help="Also write the sorted log as XES.")
    parser.add_argument("--verbose", action="store_true", help="Log debug output.")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    configure_logging(logging.DEBUG if args.verbose else logging.INFO)
    events = sample_events() if args.sample else load_events(args.input)
    export_views(events, args.output, workers=args.workers, xes_output=args.xes_output)


if __name__ == "__main__":
    main()

from __future__ import annotations

import argparse
import logging
import os
import sys
from datetime import datetime
from pathlib import Path

from ..backend import (
    DEFAULT_LOCATION,
    PreflightFailure,
    QueryBackend,
    build_backend,
    close_logger,
    configure_logger,
)
from .charts import render_comparison_charts
from .collector import SummaryWriter
from .comparison import build_comparison, write_comparison
from .config import QueryCatalog, load_catalog
from .harness import BenchmarkHarness

DEFAULT_LOG_FILE = "run_eval_queries.log"
DEFAULT_SUMMARY_FILE = "execution_summary.tsv"
DEFAULT_COMPARISON_FILE = "comparison.tsv"


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="BigQuery query-optimization benchmark harness")
    parser.add_argument(
        "--backend",
        choices=("bq", "client"),
        default=os.environ.get("BENCHMARK_BACKEND", "bq"),
        help="Query backend: the 'bq' CLI or the google-cloud-bigquery client",
    )
    parser.add_argument(
        "--location",
        default=os.environ.get("BENCHMARK_LOCATION", DEFAULT_LOCATION),
        help="BigQuery location jobs run in",
    )
    parser.add_argument(
        "--project",
        default=os.environ.get("GOOGLE_CLOUD_PROJECT"),
        help="Billing project for the client backend",
    )
    parser.add_argument(
        "--output-dir",
        default=os.environ.get("BENCHMARK_OUTPUT_DIR", "."),
        help="Directory for the log, summary, comparison and chart files",
    )
    parser.add_argument("--log-file", default=DEFAULT_LOG_FILE)
    parser.add_argument("--summary-file", default=DEFAULT_SUMMARY_FILE)
    parser.add_argument(
        "--catalog-path",
        default=os.environ.get("BENCHMARK_CATALOG_PATH"),
        help="Optional JSON file describing a custom query catalog",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only print the query catalog without executing it",
    )
    parser.add_argument(
        "--no-charts",
        action="store_true",
        help="Skip the comparison table and charts",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("BENCHMARK_LOG_LEVEL", "INFO"),
        help="Logging level",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None, backend: QueryBackend | None = None) -> int:
    args = parse_args(argv)
    catalog = load_catalog(args.catalog_path)

    if args.dry_run:
        _print_catalog(catalog)
        return 0

    output_dir = Path(args.output_dir)
    logger = configure_logger(
        output_dir / args.log_file,
        level=getattr(logging, args.log_level.upper(), logging.INFO),
    )
    try:
        if backend is None:
            backend = build_backend(args.backend, location=args.location, project=args.project)
        try:
            backend.preflight()
        except PreflightFailure as exc:
            logger.critical("[FATAL] %s", exc)
            return 1

        writer = SummaryWriter(output_dir / args.summary_file)
        writer.start()

        logger.info("Script started at %s. Logging output to %s", datetime.now().isoformat(), output_dir / args.log_file)
        logger.info("Summary will be written to %s", writer.path)
        logger.info("Backend: %s (location %s)", backend.name, args.location)
        logger.info("Catalog: %d queries from %s", len(catalog), catalog.source)
        logger.info("=" * 59)

        harness = BenchmarkHarness(backend, writer, logger, location=args.location)
        harness.run(catalog)

        if not args.no_charts:
            _write_comparison(writer, catalog, output_dir, logger)

        logger.info("=" * 59)
        logger.info("Script finished at %s.", datetime.now().isoformat())
        return 0
    finally:
        close_logger(logger)


def _write_comparison(
    writer: SummaryWriter,
    catalog: QueryCatalog,
    output_dir: Path,
    logger: logging.Logger,
) -> None:
    comparison = build_comparison(writer.build_dataframe(), catalog)
    if comparison.empty:
        logger.info("No case completed both variants; skipping comparison output")
        return
    write_comparison(comparison, output_dir / DEFAULT_COMPARISON_FILE)
    render_comparison_charts(comparison, output_dir)


def _print_catalog(catalog: QueryCatalog) -> None:
    print(f"Catalog: {catalog.source}")
    for definition in catalog:
        lines = definition.query.count("\n") + 1
        label = f" [{definition.case} / {definition.variant}]" if definition.case else ""
        print(f"  - {definition.name}{label}: {lines} lines")


if __name__ == "__main__":
    sys.exit(main())

"""Command-line interface for the SQL / HTTP log latency benchmark."""

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path

import pandas as pd

from sqlperf.benchmark.results import ResultWriter, summarize_results
from sqlperf.benchmark.runner import BenchmarkRunner, FailurePolicy, format_final_summary
from sqlperf.correlation.log_cursor import LogCursor
from sqlperf.correlation.timestamps import make_extractor
from sqlperf.data.query_source import ALL_QUERIES, load_queries, select_queries
from sqlperf.data.sql_runner import close_quietly, open_connection
from sqlperf.errors import LogReadError, QueryNotFoundError, SqlPerfError
from sqlperf.utils.config import RunSettings, load_connection_config, load_settings
from sqlperf.utils.logging_setup import close_logging, setup_logging
from sqlperf.utils.paths import DEFAULT_SETTINGS_FILE, output_paths

logger = logging.getLogger(__name__)


def positive_int(value: str) -> int:
    """argparse type for a strictly positive integer."""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"'{value}' is not an integer")
    if number <= 0:
        raise argparse.ArgumentTypeError("iterations must be a positive integer")
    return number


def resolve_settings(args) -> RunSettings:
    """Defaults, then the YAML settings file, then command-line overrides."""
    settings_path = args.settings
    if settings_path is None and DEFAULT_SETTINGS_FILE.exists():
        settings_path = DEFAULT_SETTINGS_FILE
    settings = load_settings(settings_path)

    return settings.with_overrides(
        config_file=args.config,
        queries_file=args.queries,
        log_file=args.log_file,
        output_dir=args.output_dir,
        failure_policy=args.failure_policy,
        incremental_log_scan=True if args.incremental else None,
        reset_log=True if args.reset_log else None,
        skip_existing_log=True if args.skip_existing_log else None,
        validate_statements=False if args.no_validate else None,
    )


def build_log_cursor(settings: RunSettings) -> LogCursor:
    """Create the run's log cursor, clearing or skipping existing log content."""
    if settings.reset_log and settings.log_file.exists():
        try:
            settings.log_file.unlink()
        except OSError as e:
            raise LogReadError(
                f"Could not delete application log {settings.log_file}: {e}"
            ) from e
        print(f"Deleted existing application log {settings.log_file}")
        logger.info(f"Deleted application log {settings.log_file}")

    cursor = LogCursor(
        settings.log_file,
        start_marker=settings.start_marker,
        end_marker=settings.end_marker,
        timestamp_extractor=make_extractor(settings.timestamp_format),
        incremental=settings.incremental_log_scan,
    )

    if settings.skip_existing_log:
        try:
            cursor.prime()
        except LogReadError as e:
            logger.warning(f"Could not pre-scan application log: {e}")
    return cursor


def cmd_run(args) -> int:
    """Run the benchmark for one query or all queries."""
    try:
        settings = resolve_settings(args)
        connection_config = load_connection_config(settings.config_file)
        all_queries = load_queries(settings.queries_file)
        queries = select_queries(all_queries, args.target)
    except QueryNotFoundError as e:
        print(f"Error: Query identifier '{e.identifier}' not found.", file=sys.stderr)
        print(f"Available queries: {e.available}", file=sys.stderr)
        return 1
    except SqlPerfError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    csv_path, log_path = output_paths(settings.output_dir, settings.file_prefix, stamp)
    setup_logging(log_path)

    try:
        return _execute(args, settings, connection_config, queries, csv_path, log_path)
    finally:
        close_logging()


def _execute(args, settings, connection_config, queries, csv_path: Path, log_path: Path) -> int:
    logger.debug(f"Starting SQL performance tester with arguments: {vars(args)}")

    print("--- Performance Test Setup ---")
    if args.target.lower() == ALL_QUERIES:
        print(f"Target: ALL {len(queries)} queries")
    else:
        print(f"Target: Single Query ({queries[0].name})")
    print(f"Iterations Per Query: {args.iterations}")
    print(f"Total Executions: {len(queries) * args.iterations}")
    print(f"Output CSV: {csv_path}")
    print(f"Output Log: {log_path}\n")
    logger.info(f"Log output path: {log_path}")

    try:
        log_cursor = build_log_cursor(settings)
        conn = open_connection(connection_config)
    except SqlPerfError as e:
        logger.error(f"FATAL: {e}", exc_info=True)
        print(f"\nFATAL ERROR: {e}", file=sys.stderr)
        return 1
    print("Connection established successfully.")

    try:
        with ResultWriter(csv_path) as writer:
            runner = BenchmarkRunner(
                conn,
                log_cursor,
                writer,
                args.iterations,
                failure_policy=FailurePolicy(settings.failure_policy),
                validate_statements=settings.validate_statements,
            )
            summaries = runner.run(queries)
    except OSError as e:
        logger.error(f"FATAL FILE ERROR: Could not write to CSV file: {e}", exc_info=True)
        print(f"\n--- FATAL FILE ERROR ---\nCould not write to CSV file {csv_path}.", file=sys.stderr)
        return 1
    finally:
        close_quietly(conn)

    print(format_final_summary(csv_path, len(queries), args.iterations, summaries))
    logger.info(f"Run finished: {writer.rows_written} rows written to {csv_path}")
    return 0


def cmd_summarize(args) -> int:
    """Print a per-query summary of a results CSV."""
    try:
        summary = summarize_results(args.csv_file)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if summary.empty:
        print("No result rows found.")
        return 0

    with pd.option_context("display.max_columns", None, "display.width", 200):
        print(summary.round(2).to_string())
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sqlperf",
        description="Benchmark SQL queries and correlate them with an HTTP access log",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Single query by name or 1-based index
  sqlperf run Q2 100
  sqlperf run 2 100

  # All queries
  sqlperf run all 50

  # Summarize a results file
  sqlperf summarize performance_results_20240501_101500.csv
        """,
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    parser_run = subparsers.add_parser("run", help="Run the benchmark")
    parser_run.add_argument(
        "target",
        help="Query name, 1-based query index, or 'all'",
    )
    parser_run.add_argument(
        "iterations",
        type=positive_int,
        help="Iterations per query (positive integer)",
    )
    parser_run.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Connection properties file (default: config.properties)",
    )
    parser_run.add_argument(
        "--queries",
        type=Path,
        default=None,
        help="Query definition file (default: queries.sql)",
    )
    parser_run.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Application log to correlate with (default: fullLogs.log)",
    )
    parser_run.add_argument(
        "--output-dir",
        type=Path,
        default=None,
        help="Directory for the results CSV and run log (default: .)",
    )
    parser_run.add_argument(
        "--settings",
        type=Path,
        default=None,
        help="YAML run settings (default: sqlperf.yaml if present)",
    )
    parser_run.add_argument(
        "--failure-policy",
        choices=[policy.value for policy in FailurePolicy],
        default=None,
        help="Whether a failed iteration still consumes a log entry (default: skip)",
    )
    parser_run.add_argument(
        "--incremental",
        action="store_true",
        help="Read only newly appended log bytes instead of rescanning the log",
    )
    parser_run.add_argument(
        "--reset-log",
        action="store_true",
        help="Delete the application log before the run",
    )
    parser_run.add_argument(
        "--skip-existing-log",
        action="store_true",
        help="Ignore log content present before the run",
    )
    parser_run.add_argument(
        "--no-validate",
        action="store_true",
        help="Do not check statements with EXPLAIN before timing them",
    )

    parser_summary = subparsers.add_parser("summarize", help="Summarize a results CSV")
    parser_summary.add_argument("csv_file", type=Path, help="Results CSV file")

    return parser


def main(argv=None) -> None:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(2)

    if args.command == "run":
        code = cmd_run(args)
    elif args.command == "summarize":
        code = cmd_summarize(args)
    else:
        parser.print_help()
        code = 2
    sys.exit(code)


if __name__ == "__main__":
    main()

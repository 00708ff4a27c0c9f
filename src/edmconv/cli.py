"""Command-line interface for edmconv.

Provides commands for harvesting the dataset register and converting
datasets to EDM from the terminal.

Usage:
    edmconv run
    edmconv run --mode instance --summary outcomes.csv
    edmconv dataset http://data.bibliotheken.nl/id/dataset/rise-centsprenten
    edmconv cache purge --older-than-days 30
    edmconv cache stats
"""

import argparse
import asyncio
import logging
import sys
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from edmconv import __version__
from edmconv.cache.blob_store import CacheStore
from edmconv.config import Settings
from edmconv.exceptions import HarvestError
from edmconv.models import BatchReport
from edmconv.pipeline.orchestrator import DatasetOrchestrator

logger = logging.getLogger(__name__)

_executor = ThreadPoolExecutor(max_workers=1)

_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def create_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser.

    Returns:
        Configured ArgumentParser with all commands and arguments.
    """
    parser = argparse.ArgumentParser(
        prog="edmconv",
        description="edmconv — harvest the dataset register and convert datasets to EDM",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  edmconv run
  edmconv run --mode instance --summary outcomes.csv
  edmconv dataset https://data.rkd.nl/artists --destination rkdArtists
  edmconv cache purge --older-than-days 30

Configuration is read from the environment and .env (see edmconv.config).
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # run command
    run_parser = subparsers.add_parser(
        "run",
        help="Convert every dataset in the register",
        description="Fetch the catalog, then resolve, transform, validate and publish each dataset",
    )
    run_parser.add_argument(
        "--mode",
        type=str,
        choices=["dataset", "instance"],
        default=None,
        help="Transform mode (default: TRANSFORM_MODE or 'dataset')",
    )
    run_parser.add_argument(
        "--summary",
        type=Path,
        default=None,
        help="Write the per-dataset outcomes to this CSV file",
    )
    run_parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write the log to this file",
    )

    # dataset command
    dataset_parser = subparsers.add_parser(
        "dataset",
        help="Convert a single dataset from the register",
        description="Run the conversion for one catalog entry",
    )
    dataset_parser.add_argument(
        "iri",
        type=str,
        help="Dataset IRI as listed in the register",
    )
    dataset_parser.add_argument(
        "--destination",
        type=str,
        default=None,
        help="Destination dataset name (default: derived from the title)",
    )
    dataset_parser.add_argument(
        "--query",
        type=Path,
        default=None,
        help="Local CONSTRUCT query replacing the configured templates",
    )
    dataset_parser.add_argument(
        "--mode",
        type=str,
        choices=["dataset", "instance"],
        default=None,
        help="Transform mode (default: TRANSFORM_MODE or 'dataset')",
    )
    dataset_parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write the log to this file",
    )

    # cache command
    cache_parser = subparsers.add_parser(
        "cache",
        help="Inspect or purge the response cache",
    )
    cache_subparsers = cache_parser.add_subparsers(dest="cache_command", help="Cache commands")
    purge_parser = cache_subparsers.add_parser("purge", help="Delete cached payloads")
    purge_parser.add_argument(
        "--older-than-days",
        type=int,
        default=None,
        help="Only delete entries older than N days (default: all)",
    )
    cache_subparsers.add_parser("stats", help="Show cache statistics")

    # version command
    subparsers.add_parser(
        "version",
        help="Show version information",
    )

    return parser


def _run_async(coro):
    """Run an async coroutine from synchronous CLI context.

    Spins up a new event loop in a dedicated thread to avoid conflicts
    with any existing event loop.
    """
    def _target():
        loop = asyncio.new_event_loop()
        try:
            return loop.run_until_complete(coro)
        finally:
            loop.close()

    future = _executor.submit(_target)
    return future.result()


def _configure_logging(level: str, log_file: Optional[Path] = None) -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(level=level, format=_LOG_FORMAT, handlers=handlers, force=True)


def _load_settings(args: argparse.Namespace) -> Settings:
    settings = Settings()
    mode = getattr(args, "mode", None)
    if mode:
        settings = settings.model_copy(update={"transform_mode": mode})
    return settings


def _print_summary(report: BatchReport) -> None:
    frame = report.to_frame()
    if frame.empty:
        print("No datasets processed.")
        return
    print(frame[["state", "tier", "triples", "violations", "published_as", "iri"]].to_string(index=False))
    print()
    print(frame["state"].value_counts().to_string())
    print(f"Total violations: {report.violations}")


def cmd_run(args: argparse.Namespace) -> int:
    """Execute the run command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 unless the batch itself failed)
    """
    try:
        settings = _load_settings(args)
        _configure_logging(settings.log_level, args.log_file)

        logger.info(
            "Harvesting %s (mode=%s, target=%s)",
            settings.registry_url, settings.transform_mode, settings.publish_target,
        )
        report = _run_async(DatasetOrchestrator(settings).run_batch())

        _print_summary(report)
        if args.summary:
            args.summary.parent.mkdir(parents=True, exist_ok=True)
            report.to_frame().to_csv(args.summary, index=False)
            logger.info("Summary written to %s", args.summary)
        return 0

    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return 130
    except (HarvestError, ValidationError) as e:
        logger.error("Batch failed: %s", e, exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_dataset(args: argparse.Namespace) -> int:
    """Execute the dataset command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 when the batch ran, non-zero if it could not)
    """
    try:
        settings = _load_settings(args)
        _configure_logging(settings.log_level, args.log_file)

        report = _run_async(
            DatasetOrchestrator(settings).run_single_dataset(
                args.iri,
                destination=args.destination,
                query_file=args.query,
            )
        )
        _print_summary(report)
        return 0

    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return 130
    except (HarvestError, ValidationError, OSError) as e:
        logger.error("Conversion of %s failed: %s", args.iri, e, exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_cache(args: argparse.Namespace) -> int:
    """Execute the cache command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success)
    """
    settings = Settings()
    store = CacheStore(base_path=settings.cache_dir)

    if args.cache_command == "purge":
        older_than = None
        if args.older_than_days is not None:
            older_than = timedelta(days=args.older_than_days)
        removed = _run_async(store.purge(older_than=older_than))
        print(f"Removed {removed} cache entries from {settings.cache_dir}")
        return 0

    if args.cache_command == "stats":
        stats = _run_async(store.stats())
        print(f"Cache directory: {settings.cache_dir}")
        print(f"  Entries:    {stats['entries']}")
        print(f"  Compressed: {stats['compressed']}")
        print(f"  Size:       {stats['size_bytes'] / 1024:.1f} KiB")
        return 0

    print("Usage: edmconv cache {purge,stats}", file=sys.stderr)
    return 2


def cmd_version(args: argparse.Namespace) -> int:
    """Execute the version command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success)
    """
    print(f"edmconv v{__version__}")
    print("Dataset register harvester and EDM converter")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Main CLI entry point.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    logging.basicConfig(
        level=logging.INFO,
        format=_LOG_FORMAT,
    )
    parser = create_parser()
    args = parser.parse_args(argv)

    # Route to command handler
    if args.command == "run":
        return cmd_run(args)
    elif args.command == "dataset":
        return cmd_dataset(args)
    elif args.command == "cache":
        return cmd_cache(args)
    elif args.command == "version":
        return cmd_version(args)
    else:
        # No command specified
        parser.print_help()
        return 0


def cli_entry() -> None:
    """Console script entry point for setuptools."""
    sys.exit(main())


if __name__ == "__main__":
    cli_entry()

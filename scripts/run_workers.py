#!/usr/bin/env python3
"""Run the notification pipeline from the command line.

Examples:
    # One pass: reminder tick, intake, dispatcher tick, retention cleanup
    python scripts/run_workers.py --once

    # Keep running until SIGINT/SIGTERM
    python scripts/run_workers.py --loop

    # Poll the dispatcher every 10 seconds, stop after 5 cycles
    python scripts/run_workers.py --loop --interval 10 --max-iterations 5

    # Smaller batches and no in-memory retry
    python scripts/run_workers.py --once --batch-size 2 --dispatch-retries 0

Settings come from the environment (see notifier/config.py); the flags
below override the matching variable for this process only:
    --batch-size        DISPATCH_BATCH_SIZE
    --max-retries       NOTIFY_MAX_RETRIES
    --dispatch-retries  DISPATCH_MAX_RETRIES
    --cache             CACHE_BACKEND
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from notifier.config import Settings, get_settings
from notifier.workers import (
    RunnerResult,
    configure_worker_logging,
    run_worker_loop,
    run_worker_once,
)

logger = logging.getLogger("run_workers")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Reminder scheduling and notification delivery pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument("--once", action="store_true", help="Run one pass and exit")
    mode.add_argument(
        "--loop", action="store_true", help="Run each component on its interval"
    )

    parser.add_argument(
        "--interval",
        type=float,
        help="Dispatcher poll interval in seconds (loop mode)",
    )
    parser.add_argument(
        "--max-iterations",
        type=int,
        help="Stop each component after this many cycles (loop mode)",
    )
    parser.add_argument("--batch-size", type=int, help="Sends per batch")
    parser.add_argument("--max-retries", type=int, help="Persisted delivery attempts")
    parser.add_argument(
        "--dispatch-retries", type=int, help="In-memory retries per send (0 disables)"
    )
    parser.add_argument("--cache", choices=["memory", "redis", "none"])

    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("--verbose", "-v", action="store_true", help="DEBUG logging")
    verbosity.add_argument("--quiet", "-q", action="store_true", help="WARNING logging")
    return parser


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    """Copy command-line overrides onto the settings object."""
    overrides = {
        "DISPATCH_BATCH_SIZE": args.batch_size,
        "NOTIFY_MAX_RETRIES": args.max_retries,
        "DISPATCH_MAX_RETRIES": args.dispatch_retries,
        "CACHE_BACKEND": args.cache,
    }
    for name, value in overrides.items():
        if value is not None:
            setattr(settings, name, value)
    return settings


def print_summary(result: RunnerResult) -> None:
    print("\n=== Pipeline run ===")
    print(f"Components run:  {result.workers_run}")
    print(f"Processed:       {result.total_processed}")
    print(f"Failed:          {result.total_failed}")

    for name, worker_result in result.worker_results.items():
        print(
            f"  {name:<24} {worker_result.status.value:<8} "
            f"processed={worker_result.processed_count} "
            f"failed={worker_result.failed_count} "
            f"skipped={worker_result.skipped_count}"
        )

    for error in result.errors:
        print(f"  ! {error}")


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    if args.verbose:
        configure_worker_logging(logging.DEBUG)
    elif args.quiet:
        configure_worker_logging(logging.WARNING)
    else:
        configure_worker_logging(logging.INFO)

    settings = apply_overrides(get_settings(), args)

    try:
        if args.once:
            result = asyncio.run(run_worker_once(settings))
            print_summary(result)
            return 1 if result.errors else 0

        logger.info("Starting pipeline loop (Ctrl+C to stop)")
        iterations = asyncio.run(
            run_worker_loop(
                settings,
                interval_seconds=args.interval,
                max_iterations=args.max_iterations,
            )
        )
        logger.info("Pipeline loop finished", extra={"iterations": iterations})
        return 0
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 0
    except Exception as e:
        logger.error(f"Pipeline failed to start: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())

"""Command-line interface for logref."""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import Any

from run.controller import run
from run.models import Mode, RunResult
from scan.files import SourceDirError
from settings.config import CONFIG_FILENAME, ConfigError, load_config

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_SETUP_ERROR = 2

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="logref",
        description="Give every log statement a stable [ref: N] reference.",
        epilog=(
            "Line and column numbers point at the start of the log macro "
            "invocation, not at its format string. SIGINT or SIGTERM stops the "
            "run after the files in progress."
        ),
    )
    parser.add_argument(
        "--config",
        default=CONFIG_FILENAME,
        help=f"Path to the configuration file (default: {CONFIG_FILENAME})",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Report missing references without modifying any file",
    )
    parser.add_argument(
        "--jobs",
        type=int,
        default=None,
        help="Number of worker threads (default: CPU count)",
    )
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument(
        "-v", "--verbose", action="store_true", help="Log progress information"
    )
    verbosity.add_argument(
        "-q", "--quiet", action="store_true", help="Only log errors"
    )
    return parser


def _configure_logging(*, verbose: bool, quiet: bool) -> None:
    level = logging.WARNING
    if verbose:
        level = logging.INFO
    elif quiet:
        level = logging.ERROR
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def _install_stop_handler(stop: threading.Event) -> dict[int, Any]:
    """Route SIGINT and SIGTERM to ``stop``; return the previous handlers."""

    def handle_stop(signum: int, _frame: Any) -> None:
        logger.warning(
            "Received %s; stopping after the files in progress",
            signal.Signals(signum).name,
        )
        stop.set()

    return {
        signum: signal.signal(signum, handle_stop)
        for signum in (signal.SIGINT, signal.SIGTERM)
    }


def _report(result: RunResult) -> None:
    out = sys.stdout
    for report in result.files:
        for finding in report.findings:
            if finding.reference is not None and report.written:
                out.write(
                    f"Inserted reference {finding.reference} in {finding.location()}\n"
                )
            else:
                out.write(f"Missing reference in {finding.location()}\n")
        for finding in report.unresolved:
            detail = f" ({finding.reason})" if finding.reason else ""
            sys.stderr.write(f"Unresolved reference in {finding.location()}{detail}\n")
        if report.parse_error is not None:
            sys.stderr.write(f"{report.path}: parse error: {report.parse_error}\n")
        if report.read_error is not None:
            sys.stderr.write(f"{report.path}: read error: {report.read_error}\n")
        if report.write_error is not None:
            sys.stderr.write(f"{report.path}: write error: {report.write_error}\n")
        if report.missing_count:
            out.write(f"{report.path}: {report.missing_count} missing\n")

    out.write(f"Total missing references: {result.total_missing}\n")
    if result.mode is Mode.EDIT:
        out.write(f"Inserted references: {result.total_inserted}\n")
        if result.total_unresolved:
            out.write(f"Unresolved references: {result.total_unresolved}\n")
        if result.write_failures:
            out.write(f"Write failures: {len(result.write_failures)}\n")
        if result.lock_error is not None:
            sys.stderr.write(f"lock file write error: {result.lock_error}\n")
    if result.interrupted:
        sys.stderr.write(f"Interrupted: {len(result.skipped)} file(s) skipped\n")


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    _configure_logging(verbose=args.verbose, quiet=args.quiet)

    if args.jobs is not None and args.jobs < 1:
        parser.error("--jobs must be at least 1")

    config_path = Path(args.config).expanduser()
    stop = threading.Event()
    previous = _install_stop_handler(stop)
    try:
        config = load_config(config_path)
        mode = Mode.CHECK if args.check else Mode.EDIT
        result = run(config, mode=mode, jobs=args.jobs, stop=stop)
    except (ConfigError, SourceDirError) as exc:
        sys.stderr.write(f"error: {exc}\n")
        return EXIT_SETUP_ERROR
    finally:
        for signum, handler in previous.items():
            if handler is not None:
                signal.signal(signum, handler)

    _report(result)
    return EXIT_OK if result.ok else EXIT_FAILURE


if __name__ == "__main__":
    raise SystemExit(main())

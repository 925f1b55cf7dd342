"""
Command-line front end for the offload engine.

This layer is completely separate from the engine: it parses arguments,
wires Ctrl+C to the cancellation event and prints progress.
"""

import argparse
import asyncio
import logging
import signal
import sys
import threading
from pathlib import Path

from .engine import ReplicationController
from .errors import ConfigurationError
from .models import BUFFER_SIZE, OffloadConfig, RunProgress, RunResult, RunStatus


def setup_logging(verbose: bool = False) -> None:
    """
    Configure logging for the application.

    Parameters
    ----------
    verbose : bool
        Enable verbose logging
    """
    log_level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=log_level,
        format="%(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def format_eta(seconds: float | None) -> str:
    """Format remaining seconds as mm:ss, or hh:mm:ss past one hour."""
    if seconds is None:
        return "--:--"
    total = int(round(seconds))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


class CLIProcessor:
    """
    Handles CLI orchestration and presentation.

    Parameters
    ----------
    source : Path
        Source directory
    destinations : list[Path]
        One or two destination roots
    config : OffloadConfig
        Run configuration
    """

    def __init__(
        self,
        source: Path,
        destinations: list[Path],
        config: OffloadConfig,
    ):
        self.source = source
        self.destinations = destinations
        self.config = config
        self.cancel_event = threading.Event()

    async def run(self) -> RunResult:
        """
        Execute the offload and print a summary.

        Returns
        -------
        RunResult
            Terminal result of the run

        Raises
        ------
        ConfigurationError
            If the source or destinations are unusable
        """
        controller = ReplicationController(
            source_root=self.source,
            destination_roots=self.destinations,
            on_progress=self._show_progress,
            cancel_event=self.cancel_event,
            config=self.config,
        )

        result = await controller.run()
        self._show_final_summary(result)
        return result

    def install_signal_handler(self):
        """
        Route Ctrl+C to the cancellation event; a second Ctrl+C aborts.

        Returns
        -------
        The previously installed SIGINT handler
        """
        return signal.signal(signal.SIGINT, self._handle_interrupt)

    def _handle_interrupt(self, signum, frame):
        if self.cancel_event.is_set():
            raise KeyboardInterrupt
        self.cancel_event.set()
        print(
            "\nCancelling after the current file (Ctrl+C again to abort)...",
            file=sys.stderr,
        )

    def _show_progress(self, progress: RunProgress) -> None:
        """
        Display one progress line.

        Parameters
        ----------
        progress : RunProgress
            Snapshot published by the engine
        """
        print(
            f"[{progress.processed_files}/{progress.total_files}] "
            f"{progress.percent_complete:5.1f}% {progress.current_item_label} "
            f"({progress.speed_mb_sec:.1f} MB/s, ETA {format_eta(progress.eta_seconds)})"
        )

    def _show_final_summary(self, result: RunResult) -> None:
        """
        Display final summary of the run.

        Parameters
        ----------
        result : RunResult
            Terminal result to summarize
        """
        print("\n" + "=" * 60)

        if result.status == RunStatus.EMPTY:
            print("No files to copy")
        elif result.status == RunStatus.SUCCEEDED:
            print(f"All {result.files_copied} file(s) copied successfully")
        elif result.status == RunStatus.CANCELLED:
            print(
                f"Cancelled: {result.files_copied} file(s) copied, "
                f"{result.files_failed} failed before cancellation"
            )
        else:
            print(
                f"{result.files_failed} file(s) failed, "
                f"{result.files_copied} copied"
            )

        for error in result.errors:
            print(f"  ✗ {error}")

        for report_path in result.report_paths:
            print(f"Report: {report_path}")


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """
    Parse command line arguments.

    Returns
    -------
    argparse.Namespace
        Parsed command line arguments
    """
    parser = argparse.ArgumentParser(
        prog="offload",
        description="Copy a directory tree to one or two destinations",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s /media/card /backup/day01                   # Single destination
  %(prog)s /media/card /raid/day01 /shuttle/day01      # Two destinations
  %(prog)s --exclude-system --report /card /d1 /d2     # Skip system folders, write report
        """,
    )

    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose output"
    )

    parser.add_argument(
        "-b",
        "--buffer-size",
        type=int,
        default=BUFFER_SIZE,
        help="Buffer size in bytes (default: 8MB)",
    )

    parser.add_argument(
        "--exclude",
        action="append",
        metavar="NAME",
        help="Directory name to skip while scanning (repeatable)",
    )

    parser.add_argument(
        "--exclude-system",
        action="store_true",
        help="Skip .git, $RECYCLE.BIN, System Volume Information, AppData and node_modules",
    )

    parser.add_argument(
        "--report",
        action="store_true",
        help="Write a text report to the root of each destination",
    )

    parser.add_argument("source", type=Path, help="Source directory")

    parser.add_argument(
        "destinations",
        type=Path,
        nargs="+",
        help="One or two destination directories",
    )

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """
    CLI entry point.

    Returns
    -------
    int
        Exit code: 0 for success or empty source, 1 for failure,
        130 for cancellation or keyboard interrupt
    """
    args = parse_arguments(argv)

    try:
        config = OffloadConfig.from_args(args)
    except ValueError as e:
        print(f"Invalid parameter: {e}", file=sys.stderr)
        return 1

    setup_logging(config.verbose)

    processor = CLIProcessor(
        source=args.source,
        destinations=args.destinations,
        config=config,
    )
    previous_handler = processor.install_signal_handler()

    try:
        result = asyncio.run(processor.run())
    except ConfigurationError as e:
        logging.error(f"Configuration error: {e}")
        return 1
    except KeyboardInterrupt:
        print("\nOperation interrupted by user", file=sys.stderr)
        return 130
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    if result.status == RunStatus.CANCELLED:
        return 130
    return 0 if result.success else 1

#!/usr/bin/env python3
"""
Tests for the offload command-line front end.

These cover argument parsing, configuration building, exit codes and the
text printed for each kind of run result.
"""

import io
import shutil
import signal
import sys
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path
from unittest.mock import patch

# Add src directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from offload import SYSTEM_EXCLUDES, CLIProcessor, OffloadConfig, RunProgress
from offload.cli import format_eta, main, parse_arguments


class TestParseArguments(unittest.TestCase):
    """Test cases for argument parsing and config building."""

    def test_defaults(self) -> None:
        """Test parsing with only source and destinations."""
        args = parse_arguments(["/card", "/raid", "/shuttle"])

        self.assertEqual(args.source, Path("/card"))
        self.assertEqual(args.destinations, [Path("/raid"), Path("/shuttle")])
        self.assertFalse(args.verbose)
        self.assertFalse(args.report)

        config = OffloadConfig.from_args(args)
        self.assertEqual(config.buffer_size, 8 * 1024 * 1024)
        self.assertEqual(config.exclude, ())
        self.assertFalse(config.write_report)

    def test_all_options(self) -> None:
        """Test parsing every option."""
        args = parse_arguments(
            [
                "-v",
                "-b",
                "4096",
                "--exclude",
                "CACHE",
                "--exclude",
                "proxies",
                "--report",
                "/card",
                "/raid",
            ]
        )
        config = OffloadConfig.from_args(args)

        self.assertTrue(config.verbose)
        self.assertTrue(config.write_report)
        self.assertEqual(config.buffer_size, 4096)
        self.assertEqual(config.exclude, ("CACHE", "proxies"))

    def test_exclude_system(self) -> None:
        """Test that --exclude-system adds the system folder names."""
        args = parse_arguments(["--exclude-system", "--exclude", "CACHE", "/card", "/raid"])
        config = OffloadConfig.from_args(args)

        self.assertEqual(config.exclude, ("CACHE",) + SYSTEM_EXCLUDES)

    def test_invalid_buffer_size(self) -> None:
        """Test that a non-positive buffer size is rejected."""
        with self.assertRaises(ValueError):
            OffloadConfig(buffer_size=0)


class TestFormatEta(unittest.TestCase):
    """Test cases for ETA formatting."""

    def test_unknown(self) -> None:
        self.assertEqual(format_eta(None), "--:--")

    def test_minutes(self) -> None:
        self.assertEqual(format_eta(75), "01:15")

    def test_hours(self) -> None:
        self.assertEqual(format_eta(3725.4), "01:02:05")


class TestMain(unittest.TestCase):
    """Test cases for the CLI entry point."""

    def setUp(self) -> None:
        self.test_dir = Path(tempfile.mkdtemp()).resolve()
        self.source = self.test_dir / "card"
        (self.source / "sub").mkdir(parents=True)
        (self.source / "a.txt").write_bytes(b"hello")
        (self.source / "sub" / "b.txt").write_bytes(b"0123456789")
        self.dest1 = self.test_dir / "raid"
        self.dest2 = self.test_dir / "shuttle"
        self.previous_handler = signal.getsignal(signal.SIGINT)

    def tearDown(self) -> None:
        shutil.rmtree(self.test_dir)

    def run_main(self, argv: list[str]) -> tuple[int, str, str]:
        stdout, stderr = io.StringIO(), io.StringIO()
        with redirect_stdout(stdout), redirect_stderr(stderr):
            exit_code = main(argv)
        return exit_code, stdout.getvalue(), stderr.getvalue()

    def test_successful_offload(self) -> None:
        """Test a full run to two destinations."""
        exit_code, output, _ = self.run_main(
            [str(self.source), str(self.dest1), str(self.dest2)]
        )

        self.assertEqual(exit_code, 0)
        for dest in (self.dest1, self.dest2):
            self.assertEqual((dest / "a.txt").read_bytes(), b"hello")
            self.assertEqual((dest / "sub" / "b.txt").read_bytes(), b"0123456789")
        self.assertIn("[1/2]  50.0%", output)
        self.assertIn("[2/2] 100.0%", output)
        self.assertIn("All 2 file(s) copied successfully", output)

    def test_signal_handler_restored(self) -> None:
        """Test that the previous SIGINT handler is put back after the run."""
        self.run_main([str(self.source), str(self.dest1)])

        self.assertEqual(signal.getsignal(signal.SIGINT), self.previous_handler)

    def test_failed_offload_lists_errors(self) -> None:
        """Test exit code and output when one unit fails."""
        (self.dest2 / "a.txt").mkdir(parents=True)

        exit_code, output, _ = self.run_main(
            [str(self.source), str(self.dest1), str(self.dest2)]
        )

        self.assertEqual(exit_code, 1)
        self.assertIn("1 file(s) failed, 1 copied", output)
        self.assertIn("DestinationWriteError", output)
        self.assertTrue((self.dest1 / "a.txt").exists())

    def test_empty_source(self) -> None:
        """Test that an empty source is not an error."""
        empty = self.test_dir / "empty"
        empty.mkdir()

        exit_code, output, _ = self.run_main([str(empty), str(self.dest1)])

        self.assertEqual(exit_code, 0)
        self.assertIn("No files to copy", output)
        self.assertFalse(self.dest1.exists())

    def test_missing_source(self) -> None:
        """Test that a missing source is a configuration error."""
        with self.assertLogs(level="ERROR") as log:
            exit_code, _, _ = self.run_main(
                [str(self.test_dir / "missing"), str(self.dest1)]
            )

        self.assertEqual(exit_code, 1)
        self.assertTrue(any("Configuration error" in line for line in log.output))

    def test_too_many_destinations(self) -> None:
        """Test that three destinations are rejected."""
        with self.assertLogs(level="ERROR"):
            exit_code, _, _ = self.run_main(
                [
                    str(self.source),
                    str(self.dest1),
                    str(self.dest2),
                    str(self.test_dir / "third"),
                ]
            )

        self.assertEqual(exit_code, 1)
        self.assertFalse(self.dest1.exists())

    def test_invalid_buffer_size(self) -> None:
        """Test that a bad buffer size is reported before any work."""
        exit_code, _, errors = self.run_main(
            ["-b", "0", str(self.source), str(self.dest1)]
        )

        self.assertEqual(exit_code, 1)
        self.assertIn("Invalid parameter", errors)

    def test_report_option(self) -> None:
        """Test that --report writes a report to each destination."""
        exit_code, output, _ = self.run_main(
            ["--report", str(self.source), str(self.dest1), str(self.dest2)]
        )

        self.assertEqual(exit_code, 0)
        for dest in (self.dest1, self.dest2):
            reports = list(dest.glob("offload_report_*.txt"))
            self.assertEqual(len(reports), 1)
        self.assertIn("Report:", output)

    def test_cancelled_run_exit_code(self) -> None:
        """Test that a cancelled run exits with 130."""

        def cancel_on_progress(processor, progress):
            processor.cancel_event.set()

        with patch.object(CLIProcessor, "_show_progress", cancel_on_progress):
            exit_code, output, _ = self.run_main([str(self.source), str(self.dest1)])

        self.assertEqual(exit_code, 130)
        self.assertIn("Cancelled: 1 file(s) copied", output)


class TestCLIProcessor(unittest.TestCase):
    """Test cases for CLIProcessor presentation."""

    def test_interrupt_sets_cancel_event(self) -> None:
        """Test that the first Ctrl+C requests cancellation and the second aborts."""
        processor = CLIProcessor(Path("/card"), [Path("/raid")], OffloadConfig())

        with redirect_stderr(io.StringIO()):
            processor._handle_interrupt(signal.SIGINT, None)
        self.assertTrue(processor.cancel_event.is_set())

        with self.assertRaises(KeyboardInterrupt):
            processor._handle_interrupt(signal.SIGINT, None)

    def test_progress_line(self) -> None:
        """Test the progress line format."""
        processor = CLIProcessor(Path("/card"), [Path("/raid")], OffloadConfig())
        progress = RunProgress(
            total_files=4,
            processed_files=1,
            current_item_label="sub/b.txt",
            percent_complete=25.0,
        )

        stdout = io.StringIO()
        with redirect_stdout(stdout):
            processor._show_progress(progress)

        self.assertEqual(
            stdout.getvalue().strip(),
            "[1/4]  25.0% sub/b.txt (0.0 MB/s, ETA --:--)",
        )


if __name__ == "__main__":
    unittest.main()

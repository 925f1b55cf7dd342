"""
offload engine - replicate a directory tree to one or two destination roots.

Architecture:
- Core logic is completely UI-agnostic (publishes snapshots, never touches stdout)
- Scanner, planner and executor are small leaf components
- The controller owns the run state machine, progress and cancellation
- Per-unit failures are captured as data; only bad configuration raises
"""

import asyncio
import logging
import os
import stat
import threading
import time
from collections.abc import Callable, Iterator, Sequence
from datetime import datetime
from pathlib import Path

import aiofiles
import aiofiles.os

from .errors import ConfigurationError, ErrorKind, InvalidRelativePath, SourceNotFound
from .models import (
    BUFFER_SIZE,
    MAX_DESTINATIONS,
    CopyError,
    CopyUnit,
    DestinationResult,
    OffloadConfig,
    RunProgress,
    RunResult,
    RunState,
    RunStatus,
    ScannedFile,
)
from .report import FileRecord, OffloadReport

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[RunProgress], None]
PathLike = str | os.PathLike


# ============================================================================
# Tree Scanner
# ============================================================================


class TreeScanner:
    """
    Enumerate every regular file under a source root.

    Linked directories are followed. There is no cycle protection: a
    symlink chain that points back up the tree makes the scan run forever.

    Directories below the root that cannot be listed are skipped and kept
    in ``unreadable_dirs`` so the caller can report them.

    Parameters
    ----------
    exclude : Sequence[str], default=()
        Directory names not descended into (case-insensitive)
    """

    def __init__(self, exclude: Sequence[str] = ()):
        self.exclude = {name.casefold() for name in exclude}
        self.unreadable_dirs: list[tuple[Path, OSError]] = []

    def scan(self, source_root: PathLike) -> Iterator[ScannedFile]:
        """
        Scan a source root.

        Parameters
        ----------
        source_root : PathLike
            Directory to enumerate

        Returns
        -------
        Iterator[ScannedFile]
            Lazy sequence of files in filesystem enumeration order

        Raises
        ------
        SourceNotFound
            If ``source_root`` is not an existing, listable directory.
            Raised immediately, not on first iteration.
        """
        root = Path(source_root)
        if not root.is_dir():
            raise SourceNotFound(f"Source directory not found: {root}")
        try:
            with os.scandir(root):
                pass
        except OSError as e:
            raise SourceNotFound(f"Source directory not readable: {root}: {e}") from e

        self.unreadable_dirs = []
        return self._walk(root)

    def _walk(self, root: Path) -> Iterator[ScannedFile]:
        def on_error(error: OSError) -> None:
            failed = Path(error.filename) if error.filename else root
            if failed == root:
                raise SourceNotFound(f"Source directory not readable: {root}: {error}")
            logger.warning(f"Cannot list directory {failed}: {error.strerror}")
            self.unreadable_dirs.append((failed, error))

        for dirpath, dirnames, filenames in os.walk(
            root, onerror=on_error, followlinks=True
        ):
            dirnames[:] = [d for d in dirnames if d.casefold() not in self.exclude]

            current = Path(dirpath)
            for name in filenames:
                path = current / name
                try:
                    st = path.stat()
                except OSError as e:
                    # Dangling links and vanished files are still handed to the
                    # executor so the failure shows up in the run result
                    logger.warning(f"Cannot stat {path}: {e}")
                    yield ScannedFile(path=path, size=0)
                    continue

                if not stat.S_ISREG(st.st_mode):
                    logger.debug(f"Skipping non-regular file: {path}")
                    continue

                yield ScannedFile(path=path, size=st.st_size)


# ============================================================================
# Replication Planner
# ============================================================================


class ReplicationPlanner:
    """Map scanned files onto destination roots, preserving relative structure."""

    def relative_path(self, source_root: Path, file_path: Path) -> Path:
        """
        Calculate a file's path relative to the source root.

        Raises
        ------
        InvalidRelativePath
            If the file is not strictly under ``source_root``
        """
        try:
            relative = file_path.relative_to(source_root)
        except ValueError:
            raise InvalidRelativePath(
                f"{file_path} is not under source root {source_root}"
            ) from None

        if not relative.parts or ".." in relative.parts:
            raise InvalidRelativePath(
                f"{file_path} is not under source root {source_root}"
            )
        return relative

    def plan(
        self,
        source_root: Path,
        file: ScannedFile | Path,
        destination_roots: Sequence[Path | None],
    ) -> list[CopyUnit]:
        """
        Build the copy units for one source file.

        Parameters
        ----------
        source_root : Path
            Source root directory
        file : ScannedFile | Path
            File to plan
        destination_roots : Sequence[Path | None]
            Destination roots in copy order; unset entries are skipped

        Returns
        -------
        list[CopyUnit]
            One unit per configured destination, in destination order
        """
        source_path = file.path if isinstance(file, ScannedFile) else Path(file)
        relative = self.relative_path(source_root, source_path)

        return [
            CopyUnit(
                relative_path=relative,
                source_path=source_path,
                destination_root=root,
                destination_path=root / relative,
            )
            for root in destination_roots
            if root is not None and str(root) != ""
        ]


# ============================================================================
# Copy Executor
# ============================================================================


class CopyExecutor:
    """
    Stream one file to one destination.

    Parameters
    ----------
    buffer_size : int, default=BUFFER_SIZE
        Chunk size for reads and writes
    """

    def __init__(self, buffer_size: int = BUFFER_SIZE):
        self.buffer_size = buffer_size

    async def copy(self, unit: CopyUnit) -> DestinationResult:
        """
        Copy a single unit.

        Intermediate directories are created as needed and an existing
        destination file is overwritten. On failure the destination may be
        left partially written.

        Parameters
        ----------
        unit : CopyUnit
            Unit to copy

        Returns
        -------
        DestinationResult
            Outcome of the copy; I/O failures are captured, never raised
        """
        logger.debug(f"Copying {unit.source_path} -> {unit.destination_path}")

        phase = ErrorKind.DESTINATION_PREPARE
        bytes_written = 0

        try:
            await aiofiles.os.makedirs(unit.destination_path.parent, exist_ok=True)

            phase = ErrorKind.SOURCE_READ
            async with aiofiles.open(unit.source_path, "rb") as f_source:
                phase = ErrorKind.DESTINATION_WRITE
                async with aiofiles.open(
                    unit.destination_path, "wb", buffering=self.buffer_size
                ) as f_dest:
                    while True:
                        phase = ErrorKind.SOURCE_READ
                        chunk = await f_source.read(self.buffer_size)
                        if not chunk:
                            break

                        phase = ErrorKind.DESTINATION_WRITE
                        await f_dest.write(chunk)
                        bytes_written += len(chunk)

                    # Closing flushes the last buffered chunk
                    phase = ErrorKind.DESTINATION_WRITE

        except OSError as e:
            error = CopyError(
                relative_path=unit.relative_path,
                destination_root=unit.destination_root,
                kind=ErrorKind.classify(e, phase),
                message=str(e),
            )
            return DestinationResult(
                unit=unit,
                success=False,
                bytes_written=bytes_written,
                error=error,
            )

        return DestinationResult(unit=unit, success=True, bytes_written=bytes_written)


# ============================================================================
# Progress Aggregator
# ============================================================================


class ProgressAggregator:
    """
    Track processed files against a fixed total and publish snapshots.

    Parameters
    ----------
    total_files : int
        Number of source files in the run
    total_bytes : int, default=0
        Combined size of all source files
    observer : ProgressCallback | None, default=None
        Called with a fresh snapshot after every ``advance``
    """

    def __init__(
        self,
        total_files: int,
        total_bytes: int = 0,
        observer: ProgressCallback | None = None,
    ):
        if total_files < 0:
            raise ValueError(f"total_files must not be negative, got {total_files}")

        self.total_files = total_files
        self.total_bytes = total_bytes
        self.observer = observer
        self._processed_files = 0
        self._bytes_processed = 0
        self._start_time = time.monotonic()
        self._snapshot = RunProgress(total_files=total_files, total_bytes=total_bytes)

    @property
    def snapshot(self) -> RunProgress:
        """Most recently published snapshot."""
        return self._snapshot

    @staticmethod
    def percent(processed_files: int, total_files: int) -> float:
        """Percentage of files processed, clamped to [0, 100]."""
        if total_files <= 0:
            return 0.0
        return min(max(processed_files / total_files * 100, 0.0), 100.0)

    def advance(self, label: str, nbytes: int = 0) -> RunProgress:
        """
        Mark one more source file as fully handled.

        Parameters
        ----------
        label : str
            Human-readable name of the file just handled
        nbytes : int, default=0
            Size of that file, for speed and ETA

        Returns
        -------
        RunProgress
            The snapshot pushed to the observer

        Raises
        ------
        RuntimeError
            If every file has already been processed
        """
        if self._processed_files >= self.total_files:
            raise RuntimeError(
                f"Cannot advance past {self.total_files} file(s)"
            )

        self._processed_files += 1
        self._bytes_processed += nbytes

        self._snapshot = RunProgress(
            total_files=self.total_files,
            processed_files=self._processed_files,
            current_item_label=label,
            percent_complete=self.percent(self._processed_files, self.total_files),
            total_bytes=self.total_bytes,
            bytes_processed=self._bytes_processed,
            elapsed=time.monotonic() - self._start_time,
        )

        if self.observer is not None:
            self.observer(self._snapshot)

        return self._snapshot


# ============================================================================
# Replication Controller
# ============================================================================


class ReplicationController:
    """
    Run one offload: scan, plan, copy, aggregate.

    Parameters
    ----------
    source_root : PathLike | None
        Directory to replicate
    destination_roots : Sequence[PathLike | None]
        Up to two destination roots, in copy order; ``None`` or empty
        entries are unset
    on_progress : ProgressCallback | None, default=None
        Receives a snapshot after every processed source file
    cancel_event : threading.Event | None, default=None
        Set to request cancellation; checked between files
    config : OffloadConfig | None, default=None
        Run configuration
    """

    def __init__(
        self,
        source_root: PathLike | None,
        destination_roots: Sequence[PathLike | None],
        on_progress: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
        config: OffloadConfig | None = None,
    ):
        self.source_root = source_root
        self.destination_roots = list(destination_roots)
        self.on_progress = on_progress
        self.config = config if config else OffloadConfig()
        self._cancel_event = cancel_event if cancel_event else threading.Event()

        self.scanner = TreeScanner(self.config.exclude)
        self.planner = ReplicationPlanner()
        self.executor = CopyExecutor(self.config.buffer_size)

        self._state = RunState.IDLE
        self._aggregator: ProgressAggregator | None = None
        self._result: RunResult | None = None

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def is_active(self) -> bool:
        """True while scanning or copying."""
        return self._state in (RunState.SCANNING, RunState.COPYING)

    @property
    def progress(self) -> RunProgress | None:
        """Latest progress snapshot, or None before copying starts."""
        return self._aggregator.snapshot if self._aggregator else None

    @property
    def result(self) -> RunResult | None:
        return self._result

    def cancel(self) -> None:
        """
        Request cancellation.

        Notes
        -----
        The file currently being copied is allowed to finish.
        """
        self._cancel_event.set()

    async def run(self) -> RunResult:
        """
        Execute the run.

        Returns
        -------
        RunResult
            Terminal result

        Raises
        ------
        ConfigurationError
            If the source or destinations are unusable; nothing is attempted
            and the controller stays idle
        RuntimeError
            If this controller has already run

        Notes
        -----
        Any other exception escaping the run, such as one raised by the
        progress observer, is re-raised after the state moves to FAILED
        (CANCELLED for task cancellation). No result is recorded.
        """
        if self._state is not RunState.IDLE:
            raise RuntimeError(f"Run already started (state: {self._state.value})")

        source_root, destinations = self._validate()

        try:
            return await self._execute(source_root, destinations)
        except ConfigurationError:
            self._state = RunState.IDLE
            raise
        except asyncio.CancelledError:
            self._state = RunState.CANCELLED
            raise
        except BaseException:
            self._state = RunState.FAILED
            raise

    # ------------------------------------------------------------------------
    # Internal methods
    # ------------------------------------------------------------------------

    async def _execute(self, source_root: Path, destinations: list[Path]) -> RunResult:
        start_time = time.monotonic()
        started_at = datetime.now()

        if self._cancel_event.is_set():
            return self._finish(RunStatus.CANCELLED, start_time)

        # Scanning
        self._state = RunState.SCANNING
        logger.info(f"Scanning {source_root}")
        files = list(self.scanner.scan(source_root))

        errors: list[CopyError] = []
        records: list[FileRecord] = []
        for directory, error in self.scanner.unreadable_dirs:
            dir_errors = self._unreadable_dir_errors(
                source_root, directory, error, destinations
            )
            errors.extend(dir_errors)
            records.append(
                FileRecord(
                    relative_path=dir_errors[0].relative_path,
                    finished_at=datetime.now(),
                    errors=tuple(dir_errors),
                )
            )
        scan_records = len(records)

        if self._cancel_event.is_set():
            return self._finish(RunStatus.CANCELLED, start_time, errors=errors)

        if not files and not errors:
            logger.info(f"No files to copy in {source_root}")
            return self._finish(RunStatus.EMPTY, start_time)

        total_bytes = sum(f.size for f in files)
        logger.info(
            f"Found {len(files)} file(s) ({total_bytes / (1024 * 1024):.1f} MB) "
            f"to copy to {len(destinations)} destination(s)"
        )

        # Copying
        self._aggregator = ProgressAggregator(len(files), total_bytes, self.on_progress)
        self._state = RunState.COPYING

        cancelled = False

        for scanned in files:
            # Cancellation is honoured between files only
            if self._cancel_event.is_set():
                cancelled = True
                break

            units = self.planner.plan(source_root, scanned, destinations)
            file_errors = []

            for unit in units:
                dest_result = await self.executor.copy(unit)
                if dest_result.error is not None:
                    logger.error(f"Copy failed: {dest_result.error}")
                    file_errors.append(dest_result.error)

            errors.extend(file_errors)
            relative = units[0].relative_path
            records.append(
                FileRecord(
                    relative_path=relative,
                    finished_at=datetime.now(),
                    errors=tuple(file_errors),
                )
            )
            self._aggregator.advance(relative.as_posix(), scanned.size)

        file_records = records[scan_records:]
        files_failed = sum(1 for r in file_records if not r.success)
        counts = {
            "files_copied": len(file_records) - files_failed,
            "files_failed": files_failed,
        }

        if cancelled:
            logger.warning(
                f"Run cancelled after {len(file_records)} of {len(files)} file(s)"
            )
            return self._finish(
                RunStatus.CANCELLED, start_time, errors=errors, **counts
            )

        report_paths: tuple[Path, ...] = ()
        if self.config.write_report:
            report = OffloadReport(source_root, destinations, started_at, records)
            report_paths = await report.write()

        status = RunStatus.FAILED if errors else RunStatus.SUCCEEDED
        if errors:
            logger.error(
                f"Offload finished with {len(errors)} error(s) "
                f"across {files_failed} file(s) and {scan_records} directory(ies)"
            )
        else:
            logger.info(f"Offload complete: {len(file_records)} file(s) copied")

        return self._finish(
            status, start_time, errors=errors, report_paths=report_paths, **counts
        )

    @staticmethod
    def _unreadable_dir_errors(
        source_root: Path,
        directory: Path,
        error: OSError,
        destinations: list[Path],
    ) -> list[CopyError]:
        """One SOURCE_READ error per destination for a directory that could not be listed."""
        relative = directory.relative_to(source_root)
        message = error.strerror or str(error)
        return [
            CopyError(
                relative_path=relative,
                destination_root=root,
                kind=ErrorKind.SOURCE_READ,
                message=f"Cannot list directory: {message}",
            )
            for root in destinations
        ]

    def _validate(self) -> tuple[Path, list[Path]]:
        """
        Check the invocation before any work starts.

        Returns
        -------
        tuple[Path, list[Path]]
            Resolved source root and configured destination roots

        Raises
        ------
        ConfigurationError
            If the source or destinations are unusable
        """
        if self.source_root is None or str(self.source_root).strip() == "":
            raise ConfigurationError("Source path is not set")

        source = Path(self.source_root).resolve()
        if not source.exists():
            raise SourceNotFound(f"Source not found: {source}")
        if not source.is_dir():
            raise SourceNotFound(f"Source is not a directory: {source}")

        if len(self.destination_roots) > MAX_DESTINATIONS:
            raise ConfigurationError(
                f"At most {MAX_DESTINATIONS} destinations are supported, "
                f"got {len(self.destination_roots)}"
            )

        destinations = [
            Path(dest).resolve()
            for dest in self.destination_roots
            if dest is not None and str(dest).strip() != ""
        ]
        if not destinations:
            raise ConfigurationError("No destination path is set")

        for dest in destinations:
            if dest == source or source in dest.parents:
                raise ConfigurationError(
                    f"Destination {dest} is inside source {source}"
                )
            if dest.exists() and not dest.is_dir():
                raise ConfigurationError(f"Destination is not a directory: {dest}")

        if len(set(destinations)) != len(destinations):
            logger.warning(f"Destination {destinations[0]} is configured twice")

        return source, destinations

    def _finish(
        self,
        status: RunStatus,
        start_time: float,
        errors: Sequence[CopyError] = (),
        files_copied: int = 0,
        files_failed: int = 0,
        report_paths: tuple[Path, ...] = (),
    ) -> RunResult:
        self._state = RunState(status.value)
        self._result = RunResult(
            status=status,
            errors=tuple(errors),
            progress=self.progress,
            files_copied=files_copied,
            files_failed=files_failed,
            duration=time.monotonic() - start_time,
            report_paths=report_paths,
        )
        return self._result


async def replicate(
    source_root: PathLike | None,
    destination_roots: Sequence[PathLike | None],
    on_progress: ProgressCallback | None = None,
    cancel_event: threading.Event | None = None,
    config: OffloadConfig | None = None,
) -> RunResult:
    """
    Replicate ``source_root`` to each destination root.

    Parameters
    ----------
    source_root : PathLike | None
        Directory to replicate
    destination_roots : Sequence[PathLike | None]
        Up to two destination roots, in copy order
    on_progress : ProgressCallback | None, default=None
        Receives a snapshot after every processed source file
    cancel_event : threading.Event | None, default=None
        Set to request cancellation between files
    config : OffloadConfig | None, default=None
        Run configuration

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
        source_root=source_root,
        destination_roots=destination_roots,
        on_progress=on_progress,
        cancel_event=cancel_event,
        config=config,
    )
    return await controller.run()

"""
Data models shared by the offload engine and its callers.

Everything a caller can observe (progress snapshots, unit outcomes, the run
result) is a frozen dataclass: the engine publishes values, never live state.
"""

import argparse
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .errors import ErrorKind

# Constants
BUFFER_SIZE = 8 * 1024 * 1024  # 8MB
MAX_DESTINATIONS = 2

# Directory names skipped when the caller asks for system folders to be left out
SYSTEM_EXCLUDES = (
    ".git",
    "$RECYCLE.BIN",
    "System Volume Information",
    "AppData",
    "node_modules",
)


# ============================================================================
# Configuration
# ============================================================================


@dataclass
class OffloadConfig:
    """
    Configuration for an offload run.

    Parameters
    ----------
    buffer_size : int, default=BUFFER_SIZE
        Chunk size used when streaming a file
    exclude : tuple[str, ...], default=()
        Directory names the scanner does not descend into
    write_report : bool, default=False
        Write a plain-text report to each destination root after the run
    verbose : bool, default=False
        Enable debug logging
    """

    buffer_size: int = BUFFER_SIZE
    exclude: tuple[str, ...] = ()
    write_report: bool = False
    verbose: bool = False

    def __post_init__(self):
        """Validate configuration."""
        if self.buffer_size <= 0:
            raise ValueError(f"Buffer size must be positive, got {self.buffer_size}")
        self.exclude = tuple(name for name in self.exclude if name)

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "OffloadConfig":
        """Create config from command-line arguments."""
        exclude = list(args.exclude or [])
        if args.exclude_system:
            exclude.extend(SYSTEM_EXCLUDES)

        return cls(
            buffer_size=args.buffer_size,
            exclude=tuple(exclude),
            write_report=args.report,
            verbose=args.verbose,
        )


# ============================================================================
# Planning and copy units
# ============================================================================


@dataclass(frozen=True)
class ScannedFile:
    """A regular file found under the source root."""

    path: Path
    size: int


@dataclass(frozen=True)
class CopyUnit:
    """
    One file's transfer to one destination.

    Attributes
    ----------
    relative_path : Path
        Path of the file relative to the source root
    source_path : Path
        Absolute source file path
    destination_root : Path
        Destination root this unit writes under
    destination_path : Path
        ``destination_root / relative_path``
    """

    relative_path: Path
    source_path: Path
    destination_root: Path
    destination_path: Path


@dataclass(frozen=True)
class CopyError:
    """
    A captured per-unit failure.

    Attributes
    ----------
    relative_path : Path
        Relative path of the file that failed
    destination_root : Path
        Destination the failure happened on
    kind : ErrorKind
        Failure category
    message : str
        Message from the underlying I/O error
    """

    relative_path: Path
    destination_root: Path
    kind: ErrorKind
    message: str

    def __str__(self) -> str:
        return (
            f"{self.relative_path.as_posix()} -> {self.destination_root}: "
            f"{self.kind.value}: {self.message}"
        )


@dataclass(frozen=True)
class DestinationResult:
    """
    Result of copying one unit.

    Attributes
    ----------
    unit : CopyUnit
        The unit that was attempted
    success : bool
        Whether the copy completed
    bytes_written : int, default=0
        Number of bytes written to the destination
    error : CopyError | None, default=None
        Captured failure if the copy did not complete
    """

    unit: CopyUnit
    success: bool
    bytes_written: int = 0
    error: CopyError | None = None


# ============================================================================
# Progress and results
# ============================================================================


@dataclass(frozen=True)
class RunProgress:
    """
    Snapshot of run progress, published after every processed file.

    ``percent_complete`` is driven by file counts only; the byte and speed
    fields are informational.
    """

    total_files: int
    processed_files: int = 0
    current_item_label: str = ""
    percent_complete: float = 0.0
    total_bytes: int = 0
    bytes_processed: int = 0
    elapsed: float = 0.0

    @property
    def speed_mb_sec(self) -> float:
        """Average transfer speed in MB/s since the run started."""
        if self.elapsed > 0:
            return (self.bytes_processed / (1024 * 1024)) / self.elapsed
        return 0.0

    @property
    def eta_seconds(self) -> float | None:
        """Estimated seconds remaining, or None before any bytes moved."""
        if self.bytes_processed <= 0 or self.elapsed <= 0:
            return None
        rate = self.bytes_processed / self.elapsed
        return max(self.total_bytes - self.bytes_processed, 0) / rate


class RunStatus(Enum):
    """Terminal outcome of a run."""

    EMPTY = "empty"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class RunState(Enum):
    """Controller lifecycle states."""

    IDLE = "idle"
    SCANNING = "scanning"
    COPYING = "copying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    EMPTY = "empty"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self not in (RunState.IDLE, RunState.SCANNING, RunState.COPYING)


@dataclass(frozen=True)
class RunResult:
    """
    Terminal result of an offload run.

    Attributes
    ----------
    status : RunStatus
        How the run ended
    errors : tuple[CopyError, ...], default=()
        Every per-unit failure captured during the run
    progress : RunProgress | None, default=None
        Final progress snapshot
    files_copied : int, default=0
        Source files whose every destination copy succeeded
    files_failed : int, default=0
        Source files with at least one failed destination copy
    duration : float, default=0.0
        Wall-clock duration of the run in seconds
    report_paths : tuple[Path, ...], default=()
        Report files written to destination roots
    """

    status: RunStatus
    errors: tuple[CopyError, ...] = ()
    progress: RunProgress | None = None
    files_copied: int = 0
    files_failed: int = 0
    duration: float = 0.0
    report_paths: tuple[Path, ...] = field(default_factory=tuple)

    @property
    def success(self) -> bool:
        """True for runs that ended without errors (including empty sources)."""
        return self.status in (RunStatus.SUCCEEDED, RunStatus.EMPTY)

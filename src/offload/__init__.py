"""
offload: copy a directory tree to one or two destinations.

This package implements the offload engine of a media-management desktop
application: it replicates a source tree under each destination root,
reports per-file progress and collects every per-destination failure
instead of stopping at the first one.
"""

from .cli import CLIProcessor, main
from .engine import (
    CopyExecutor,
    ProgressAggregator,
    ReplicationController,
    ReplicationPlanner,
    TreeScanner,
    replicate,
)
from .errors import (
    ConfigurationError,
    ErrorKind,
    InvalidRelativePath,
    OffloadError,
    SourceNotFound,
)
from .models import (
    SYSTEM_EXCLUDES,
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

__version__ = "1.0.0"
__author__ = "offload project"
__description__ = "Directory tree offload to one or two destinations"

__all__ = [
    "CLIProcessor",
    "ConfigurationError",
    "CopyError",
    "CopyExecutor",
    "CopyUnit",
    "DestinationResult",
    "ErrorKind",
    "InvalidRelativePath",
    "OffloadConfig",
    "OffloadError",
    "ProgressAggregator",
    "ReplicationController",
    "ReplicationPlanner",
    "RunProgress",
    "RunResult",
    "RunState",
    "RunStatus",
    "SYSTEM_EXCLUDES",
    "ScannedFile",
    "SourceNotFound",
    "TreeScanner",
    "main",
    "replicate",
]

"""Plain-text offload report written to each destination root."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import aiofiles
import aiofiles.os

from .models import MAX_DESTINATIONS, CopyError

logger = logging.getLogger(__name__)

RULE = "=" * 42
THIN_RULE = "-" * 42


@dataclass(frozen=True)
class FileRecord:
    """Outcome of one source file across all its destinations."""

    relative_path: Path
    finished_at: datetime
    errors: tuple[CopyError, ...] = ()

    @property
    def success(self) -> bool:
        return not self.errors


class OffloadReport:
    """
    Per-file report of a finished run.

    Parameters
    ----------
    source_root : Path
        Source root of the run
    destinations : Sequence[Path]
        Destination roots, in copy order
    started_at : datetime
        Run start time; also used for the report file name
    records : Sequence[FileRecord]
        One record per processed source file, in processing order
    """

    def __init__(
        self,
        source_root: Path,
        destinations: Sequence[Path],
        started_at: datetime,
        records: Sequence[FileRecord],
    ):
        self.source_root = source_root
        self.destinations = list(destinations)
        self.started_at = started_at
        self.records = list(records)

    @property
    def filename(self) -> str:
        return f"offload_report_{self.started_at:%Y%m%d_%H%M%S}.txt"

    def render(self) -> str:
        """
        Render the report text.

        Returns
        -------
        str
            Header, one line per file and a summary
        """
        failed = sum(1 for r in self.records if not r.success)

        lines = [
            RULE,
            f"OFFLOAD REPORT - {self.started_at:%Y-%m-%d %H:%M:%S}",
            RULE,
            f"Source        : {self.source_root}",
        ]
        for i in range(MAX_DESTINATIONS):
            dest = self.destinations[i] if i < len(self.destinations) else "N/A"
            lines.append(f"Destination {i + 1} : {dest}")

        lines += [THIN_RULE, "FILES:"]
        for record in self.records:
            prefix = f"{record.finished_at:%H:%M} - {record.relative_path.as_posix()} :"
            if record.success:
                lines.append(f"{prefix} [OK]")
            else:
                details = "; ".join(
                    f"{e.kind.value} on {e.destination_root}: {e.message}"
                    for e in record.errors
                )
                lines.append(f"{prefix} [ERROR] {details}")

        lines += [
            THIN_RULE,
            "SUMMARY:",
            f"Files processed : {len(self.records)}",
            f"Succeeded       : {len(self.records) - failed}",
            f"Errors          : {failed}",
            RULE,
        ]
        return "\n".join(lines) + "\n"

    async def write(self) -> tuple[Path, ...]:
        """
        Write the report to the root of every destination.

        Returns
        -------
        tuple[Path, ...]
            Report files that were written. Destinations that cannot take
            the report are logged and left out.
        """
        content = self.render()
        written = []

        for dest in self.destinations:
            report_path = dest / self.filename
            try:
                await aiofiles.os.makedirs(dest, exist_ok=True)
                async with aiofiles.open(report_path, "w", encoding="utf-8") as f:
                    await f.write(content)
            except OSError as e:
                logger.error(f"Could not write report to {report_path}: {e}")
                continue

            logger.info(f"Report written: {report_path}")
            written.append(report_path)

        return tuple(written)

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path

from ..csvio.reader import DEFAULT_FALLBACK_ENCODING, read_reservation_file
from ..logging.error_log import ErrorLogBuffer, ErrorRecord
from ..models.processing_result import FileStat, IngestResult
from ..models.source_file import FileStatus, SourceFile
from .progress import ProgressTracker

"""Multi-file ingestion.

Every selected file is read, decoded and parsed on its own; only after all of
them have finished are their valid rows concatenated (selection order) and
returned. A read failure aborts the whole batch so partial results are never
handed on. Zero valid rows across all files is the EmptyDataset condition.
"""

logger = logging.getLogger(__name__)

CSV_SUFFIX = ".csv"


class ProcessingError(Exception):
    """Base exception for ingestion errors."""


class SourceReadError(ProcessingError):
    """A selected file could not be read."""


class EmptyDatasetError(ProcessingError):
    """No valid reservation row in any selected file."""

    def __init__(self, files: Sequence[str] = ()) -> None:
        self.files = list(files)
        super().__init__("no valid reservation rows found; check the CSV header format")


def scan_reservation_files(directory: Path) -> list[Path]:
    """List ``*.csv`` files (case-insensitive, non-recursive) in name order.

    Raises:
        ProcessingError: directory missing or unreadable
    """
    if not directory.exists():
        raise ProcessingError(f"Directory not found: {directory}")
    if not directory.is_dir():
        raise ProcessingError(f"Path is not a directory: {directory}")
    try:
        return sorted(p for p in directory.iterdir() if p.is_file() and p.suffix.lower() == CSV_SUFFIX)
    except OSError as e:
        raise ProcessingError(f"Error reading directory {directory}: {e}") from e


def _record_file_issues(source: SourceFile, error_log: ErrorLogBuffer) -> None:
    for line_no in source.dropped_lines:
        error_log.append(
            ErrorRecord.create(
                file=source.name,
                line=line_no,
                error_type="MISSING_REQUIRED_FIELDS",
                message="row lacks 予約区分 or チェックイン日",
            )
        )
    if source.status is FileStatus.EMPTY:
        error_log.append(
            ErrorRecord.create(
                file=source.name,
                line=-1,
                error_type="ENCODING_FALLBACK_EMPTY" if source.fallback_used else "NO_VALID_ROWS",
                message=f"no valid rows (encoding={source.encoding})",
            )
        )


def load_reservation_rows(
    paths: Sequence[Path],
    *,
    fallback_encoding: str = DEFAULT_FALLBACK_ENCODING,
    error_log: ErrorLogBuffer | None = None,
) -> IngestResult:
    """Read every file in ``paths`` and concatenate their valid rows.

    Raises:
        SourceReadError: any file cannot be read (nothing is returned)
        EmptyDatasetError: no file produced a valid row
    """
    start_time = datetime.now(UTC)
    error_log = error_log if error_log is not None else ErrorLogBuffer()

    sources: list[SourceFile] = []
    file_stats: list[FileStat] = []
    with ProgressTracker(len(paths), description="Reading files") as progress:
        for path in paths:
            progress.start_file(path)
            file_start = datetime.now(UTC)
            try:
                source = read_reservation_file(path, fallback_encoding)
            except OSError as e:
                error_log.append(ErrorRecord.create(path.name, -1, "READ_ERROR", str(e)))
                raise SourceReadError(f"cannot read {path}: {e}") from e
            elapsed = (datetime.now(UTC) - file_start).total_seconds()

            if source.fallback_used:
                logger.info(f"{source.name}: UTF-8 header check failed, decoded as {source.encoding}")
            if source.status is FileStatus.EMPTY:
                logger.warning(f"{source.name}: no valid rows")
            _record_file_issues(source, error_log)

            sources.append(source)
            file_stats.append(
                FileStat(
                    file_name=source.name,
                    status=source.status.value,
                    encoding=source.encoding,
                    valid_rows=source.valid_rows,
                    dropped_rows=len(source.dropped_lines),
                    elapsed_seconds=elapsed,
                )
            )
            progress.set_postfix(rows=sum(s.valid_rows for s in sources))
            progress.finish_file()

    rows = [row for source in sources for row in source.rows]
    if not rows:
        raise EmptyDatasetError([p.name for p in paths])

    end_time = datetime.now(UTC)
    return IngestResult(
        rows=rows,
        start_time=start_time,
        end_time=end_time,
        elapsed_seconds=(end_time - start_time).total_seconds(),
        file_stats=file_stats,
    )

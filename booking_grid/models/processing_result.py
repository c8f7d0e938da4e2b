from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

"""Ingestion result models.

FileStat is the per-file line of the run report; IngestResult is what the
ingestion service hands to the repository stage.
"""


@dataclass(frozen=True)
class FileStat:
    """Per-file ingestion statistics."""
    file_name: str
    status: str  # success/empty
    encoding: str | None
    valid_rows: int
    dropped_rows: int
    elapsed_seconds: float


@dataclass(frozen=True)
class IngestResult:
    """Concatenated valid rows of every selected file, in selection order."""
    rows: list[dict[str, str]]
    start_time: datetime
    end_time: datetime
    elapsed_seconds: float
    file_stats: list[FileStat] | None = None

    @property
    def total_files(self) -> int:
        return len(self.file_stats or [])

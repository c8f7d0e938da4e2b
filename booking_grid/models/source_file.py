from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

"""SourceFile domain model and FileStatus enum.

A SourceFile is the result of reading one exported reservation CSV: which
encoding finally produced its text and which rows survived validation.
"""


class FileStatus(Enum):
    """Outcome of reading one reservation file.

    - PENDING: selected but not read yet
    - SUCCESS: at least one valid row
    - EMPTY: readable, but no row carried both status and check-in date
    """
    PENDING = "pending"
    SUCCESS = "success"
    EMPTY = "empty"


@dataclass(frozen=True)
class SourceFile:
    path: Path
    name: str
    encoding: str | None = None  # codec that produced the parsed text
    fallback_used: bool = False  # True when the legacy encoding was retried
    status: FileStatus = FileStatus.PENDING
    rows: list[dict[str, str]] = field(default_factory=list)  # valid RawRows, file order
    parsed_rows: int = 0  # rows before required-field filtering
    dropped_lines: list[int] = field(default_factory=list)  # line numbers filtered out

    @property
    def valid_rows(self) -> int:
        return len(self.rows)

"""Domain models for the reservation ingestion & availability grid engine."""

from .error_record import ErrorRecord
from .grid import EMPTY_CELL, AvailabilityGrid, CellKind, DayCell, GridConflict
from .processing_result import FileStat, IngestResult
from .reservation import ReservationRecord, ReservationStatus
from .snapshot import ReservationSnapshot
from .source_file import FileStatus, SourceFile

__all__ = [
    # Reservation models
    "ReservationRecord",
    "ReservationStatus",
    "ReservationSnapshot",
    # Grid models
    "AvailabilityGrid",
    "CellKind",
    "DayCell",
    "EMPTY_CELL",
    "GridConflict",
    # Ingestion models
    "ErrorRecord",
    "FileStat",
    "FileStatus",
    "IngestResult",
    "SourceFile",
]

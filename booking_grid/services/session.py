from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from datetime import date, datetime, tzinfo
from pathlib import Path

from ..csvio.reader import DEFAULT_FALLBACK_ENCODING
from ..logging.error_log import ErrorLogBuffer, ErrorRecord
from ..models.grid import AvailabilityGrid
from ..models.processing_result import IngestResult
from ..models.snapshot import ReservationSnapshot
from ..store.document_store import DocumentStore, PersistenceFailure, StoreDocument
from .availability import MAX_STAY_DAYS, build_availability_grid
from .ingest import EmptyDatasetError, load_reservation_rows
from .repository import add_manual_reservation, current_time, ingest

"""Booking calendar session.

Holds the "current reservation set" a calendar view renders: the historical
rows, the classified snapshot and the availability grid. Every change runs
the full pipeline again; nothing is patched in place.

With a shared store attached, the new state is written to the store first and
only committed locally once the write succeeded (PersistenceFailure leaves the
session unchanged). Store change notifications go to ``apply_store_document``.
"""

__all__ = [
    "BookingCalendarSession",
]

logger = logging.getLogger(__name__)

Row = Mapping[str, str]


class BookingCalendarSession:
    def __init__(
        self,
        *,
        store: DocumentStore | None = None,
        timezone: str | tzinfo | None = None,
        max_stay_days: int = MAX_STAY_DAYS,
        fallback_encoding: str = DEFAULT_FALLBACK_ENCODING,
        clock: Callable[[], datetime] | None = None,
        error_log: ErrorLogBuffer | None = None,
    ) -> None:
        self.store = store
        self.timezone = timezone
        self.max_stay_days = max_stay_days
        self.fallback_encoding = fallback_encoding
        self._clock = clock or (lambda: current_time(timezone))
        self.error_log = error_log if error_log is not None else ErrorLogBuffer()
        self.history: tuple[Row, ...] = ()
        self.snapshot: ReservationSnapshot | None = None
        self.grid: AvailabilityGrid | None = None
        self.last_ingest: IngestResult | None = None

    def now(self) -> datetime:
        return self._clock()

    @property
    def is_loaded(self) -> bool:
        return self.snapshot is not None

    def _compute(self, rows: Sequence[Row]) -> tuple[ReservationSnapshot, AvailabilityGrid]:
        snapshot = ingest(rows, now=self._clock())
        grid = build_availability_grid(snapshot.active, snapshot.rooms, max_stay_days=self.max_stay_days)
        return snapshot, grid

    def _publish(self, snapshot: ReservationSnapshot) -> None:
        if self.store is None:
            return
        document = StoreDocument(
            reservations=tuple(r.to_row() for r in snapshot.reservations),
            updated_at=snapshot.generated_at,
        )
        try:
            self.store.save(document)
        except PersistenceFailure as e:
            self.error_log.append(ErrorRecord.create("<store>", -1, "PERSISTENCE_FAILURE", str(e)))
            logger.error(f"store write failed: {e}")
            raise

    def _commit(self, rows: Sequence[Row], snapshot: ReservationSnapshot, grid: AvailabilityGrid) -> None:
        self.history = tuple(rows)
        self.snapshot = snapshot
        self.grid = grid

    def load_rows(self, rows: Iterable[Row]) -> ReservationSnapshot:
        """Replace the current set with ``rows``.

        Raises:
            EmptyDatasetError: ``rows`` is empty (state unchanged)
            PersistenceFailure: store write failed (state unchanged)
        """
        rows = list(rows)
        if not rows:
            raise EmptyDatasetError()
        snapshot, grid = self._compute(rows)
        self._publish(snapshot)
        self._commit(rows, snapshot, grid)
        return snapshot

    def load_files(self, paths: Sequence[Path]) -> ReservationSnapshot:
        """Ingest reservation CSV files (selection order) and load their rows."""
        result = load_reservation_rows(
            paths, fallback_encoding=self.fallback_encoding, error_log=self.error_log
        )
        snapshot = self.load_rows(result.rows)
        self.last_ingest = result
        return snapshot

    def add_manual_reservation(
        self, room: str, guest_name: str, check_in: date | str, check_out: date | str
    ) -> ReservationSnapshot:
        """Append a manual reservation to the history and rerun everything.

        Raises:
            ValueError: invalid manual input
            PersistenceFailure: store write failed (state unchanged)
        """
        # 予約番号の採番と today は同じ時刻を使う
        moment = self._clock()
        rows, snapshot = add_manual_reservation(
            self.history, room, guest_name, check_in, check_out, now=moment
        )
        grid = build_availability_grid(snapshot.active, snapshot.rooms, max_stay_days=self.max_stay_days)
        self._publish(snapshot)
        self._commit(rows, snapshot, grid)
        return snapshot

    def apply_store_document(self, document: StoreDocument | None) -> None:
        """Change-notification handler: reclassify the stored reservation set."""
        if document is None or not document.reservations:
            self.reset()
            return
        rows = list(document.reservations)
        snapshot, grid = self._compute(rows)
        self._commit(rows, snapshot, grid)
        logger.debug(f"store document applied updated_at={document.updated_at.isoformat()}")

    def reset(self) -> None:
        self.history = ()
        self.snapshot = None
        self.grid = None
        self.last_ingest = None

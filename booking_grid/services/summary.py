from __future__ import annotations

from ..models.grid import AvailabilityGrid
from ..models.processing_result import IngestResult
from ..models.snapshot import ReservationSnapshot

"""SUMMARY line rendering.

Format:
SUMMARY files={files} rows={rows} reservations={unique} active={active}
cancelled={cancelled} changed={changed} rooms={rooms}
skipped_reservations={skipped} conflicts={conflicts} elapsed_sec={elapsed}
(single line)
"""


def _format_seconds(value: float) -> str:
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        # Format very small numbers to avoid scientific notation
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return f"{value:.3f}".rstrip("0").rstrip(".")


def render_summary_line(
    result: IngestResult | None, snapshot: ReservationSnapshot, grid: AvailabilityGrid
) -> str:
    """Render the SUMMARY line of one run.

    ``result`` is None when the reservations came from the shared store
    rather than from files (files=0, rows=number of stored reservations).

    Examples:
        >>> from datetime import datetime
        >>> from booking_grid.services.availability import build_availability_grid
        >>> snap = ReservationSnapshot((), (), (), (), (), datetime(2024, 1, 1))
        >>> render_summary_line(None, snap, build_availability_grid([], []))
        'SUMMARY files=0 rows=0 reservations=0 active=0 cancelled=0 changed=0 rooms=0 skipped_reservations=0 conflicts=0 elapsed_sec=0'
    """
    files = result.total_files if result is not None else 0
    rows = len(result.rows) if result is not None else len(snapshot.reservations)
    elapsed = result.elapsed_seconds if result is not None else 0.0
    return (
        f"SUMMARY files={files} "
        f"rows={rows} "
        f"reservations={len(snapshot.reservations)} "
        f"active={len(snapshot.active)} "
        f"cancelled={len(snapshot.cancelled)} "
        f"changed={len(snapshot.changed)} "
        f"rooms={len(snapshot.rooms)} "
        f"skipped_reservations={grid.skipped_reservations} "
        f"conflicts={len(grid.conflicts)} "
        f"elapsed_sec={_format_seconds(elapsed)}"
    )

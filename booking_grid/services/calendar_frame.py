from __future__ import annotations

import calendar
from collections.abc import Iterable, Sequence
from datetime import date, timedelta

import pandas as pd

from ..models.grid import AvailabilityGrid, CellKind, DayCell
from ..models.reservation import ReservationRecord

"""Tabular projections for display and export.

- calendar_window: the dates a month view shows (one week of margin each side)
- grid_to_frame: room x date DataFrame of cell labels
- reservations_to_frame: cancelled / changed list table
"""

__all__ = [
    "WINDOW_MARGIN_DAYS",
    "calendar_window",
    "cell_label",
    "grid_to_frame",
    "reservations_to_frame",
]

WINDOW_MARGIN_DAYS = 7

LIST_COLUMNS = ["チェックイン", "宿泊者名", "部屋タイプ", "予約サイト", "備考"]


def calendar_window(anchor: date, margin_days: int = WINDOW_MARGIN_DAYS) -> list[date]:
    """Dates shown for the month containing ``anchor``.

    From ``margin_days`` before the 1st to ``margin_days`` after the last day
    of the month, inclusive.
    """
    first = anchor.replace(day=1)
    last = anchor.replace(day=calendar.monthrange(anchor.year, anchor.month)[1])
    start = first - timedelta(days=margin_days)
    end = last + timedelta(days=margin_days)
    return [start + timedelta(days=i) for i in range((end - start).days + 1)]


def cell_label(cell: DayCell) -> str:
    if cell.kind is CellKind.EMPTY:
        return ""
    if cell.kind is CellKind.TURNOVER:
        return f"OUT:{cell.outgoing_guest}/IN:{cell.incoming_guest}"
    prefix = {CellKind.START: "IN", CellKind.STAY: "STAY", CellKind.END: "OUT"}[cell.kind]
    return f"{prefix}:{cell.guest}"


def grid_to_frame(grid: AvailabilityGrid, days: Sequence[date]) -> pd.DataFrame:
    """Room x ISO-date frame of cell labels ("" for an empty cell)."""
    columns = [d.isoformat() for d in days]
    rooms = grid.rooms
    rows = [[cell_label(grid.cell(room, day)) for day in columns] for room in rooms]
    return pd.DataFrame(rows, index=pd.Index(rooms, name="room"), columns=columns)


def reservations_to_frame(records: Iterable[ReservationRecord]) -> pd.DataFrame:
    rows = [
        [r.check_in_raw, r.guest_name, r.room_type, r.booking_site, r.remarks or ""]
        for r in records
    ]
    return pd.DataFrame(rows, columns=LIST_COLUMNS)

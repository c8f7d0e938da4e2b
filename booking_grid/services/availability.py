from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date, timedelta
from types import MappingProxyType

from ..models.grid import AvailabilityGrid, CellKind, DayCell, GridConflict
from ..models.reservation import ReservationRecord

"""Availability grid builder.

Expands each active reservation into one cell per day from check-in to
check-out inclusive and merges same-day check-out / check-in pairs into a
turnover cell.

The walk is capped at ``max_stay_days`` steps after check-in (366 cells at
most) so corrupt or far-future dates cannot stall the build. An inverted
stay (check-out before check-in) contributes nothing.
"""

__all__ = [
    "MAX_STAY_DAYS",
    "build_availability_grid",
]

logger = logging.getLogger(__name__)

MAX_STAY_DAYS = 365


def _day_kind(day: date, check_in: date, check_out: date) -> CellKind:
    # check-in を先に判定: 同日チェックイン/アウトは START
    if day == check_in:
        return CellKind.START
    if day == check_out:
        return CellKind.END
    return CellKind.STAY


def _merge(existing: DayCell, incoming: DayCell) -> DayCell | None:
    """Turnover merge of two cells; None when the pair is not a turnover."""
    if existing.kind is CellKind.END and incoming.kind is CellKind.START:
        return DayCell.turnover(outgoing_guest=existing.guest or "", incoming_guest=incoming.guest or "")
    if existing.kind is CellKind.START and incoming.kind is CellKind.END:
        return DayCell.turnover(outgoing_guest=incoming.guest or "", incoming_guest=existing.guest or "")
    return None


def _stay_days(check_in: date, check_out: date, max_stay_days: int) -> Iterable[date]:
    for offset in range(max_stay_days + 1):
        try:
            day = check_in + timedelta(days=offset)
        except OverflowError:
            return
        if day > check_out:
            return
        yield day


def build_availability_grid(
    active: Iterable[ReservationRecord],
    rooms: Iterable[str],
    *,
    max_stay_days: int = MAX_STAY_DAYS,
) -> AvailabilityGrid:
    """Build a fresh AvailabilityGrid from the active reservations.

    Parameters
    ----------
    active: active bucket (status other than キャンセル)
    rooms: declared room list; each appears in the grid even when empty
    max_stay_days: day steps walked after check-in at most

    Collisions other than a check-out/check-in pair are resolved by
    last-write-wins and recorded in ``AvailabilityGrid.conflicts``.
    """
    cells: dict[str, dict[str, DayCell]] = {room: {} for room in rooms}
    conflicts: list[GridConflict] = []
    skipped = 0

    for reservation in active:
        check_in = reservation.check_in
        check_out = reservation.check_out
        if check_in is None or check_out is None:
            skipped += 1
            logger.debug(
                f"skip reservation with invalid dates key={reservation.dedup_key} "
                f"check_in={reservation.check_in_raw!r} check_out={reservation.check_out_raw!r}"
            )
            continue

        # 部屋一覧に無い部屋タイプでも行は作る
        room_cells = cells.setdefault(reservation.room_type, {})
        for day in _stay_days(check_in, check_out, max_stay_days):
            key = day.isoformat()
            incoming = DayCell.occupied(
                _day_kind(day, check_in, check_out), reservation.guest_name, reservation
            )
            existing = room_cells.get(key)
            if existing is None:
                room_cells[key] = incoming
                continue
            merged = _merge(existing, incoming)
            if merged is None:
                conflicts.append(
                    GridConflict(room=reservation.room_type, day=key, existing=existing, incoming=incoming)
                )
                merged = incoming
            room_cells[key] = merged

    if skipped:
        logger.debug(f"{skipped} reservation(s) skipped for invalid dates")
    if conflicts:
        logger.debug(f"{len(conflicts)} unmodeled room/day collision(s), last write kept")

    frozen = {room: MappingProxyType(days) for room, days in cells.items()}
    return AvailabilityGrid(
        cells=MappingProxyType(frozen),
        skipped_reservations=skipped,
        conflicts=tuple(conflicts),
    )

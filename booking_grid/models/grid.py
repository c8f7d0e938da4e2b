from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any

from .reservation import ReservationRecord

"""Availability grid models.

The grid is room -> ISO date -> DayCell. A built grid is a read-only snapshot;
rebuilding always produces a new instance.
"""

__all__ = [
    "CellKind",
    "DayCell",
    "EMPTY_CELL",
    "GridConflict",
    "AvailabilityGrid",
]


class CellKind(Enum):
    """Occupancy state of one room on one day."""
    EMPTY = "empty"
    START = "start"  # check-in day
    END = "end"  # check-out day
    STAY = "stay"
    TURNOVER = "turnover"  # one guest leaves, the next arrives


@dataclass(frozen=True)
class DayCell:
    kind: CellKind
    guest: str | None = None
    outgoing_guest: str | None = None  # TURNOVER only
    incoming_guest: str | None = None  # TURNOVER only
    reservation: ReservationRecord | None = field(default=None, compare=False, repr=False)

    @classmethod
    def occupied(cls, kind: CellKind, guest: str, reservation: ReservationRecord | None = None) -> DayCell:
        return cls(kind=kind, guest=guest, reservation=reservation)

    @classmethod
    def turnover(cls, outgoing_guest: str, incoming_guest: str) -> DayCell:
        return cls(
            kind=CellKind.TURNOVER,
            outgoing_guest=outgoing_guest,
            incoming_guest=incoming_guest,
        )

    @property
    def is_empty(self) -> bool:
        return self.kind is CellKind.EMPTY

    def to_dict(self) -> dict[str, Any]:
        if self.kind is CellKind.TURNOVER:
            return {
                "type": self.kind.value,
                "outgoingGuest": self.outgoing_guest,
                "incomingGuest": self.incoming_guest,
            }
        if self.kind is CellKind.EMPTY:
            return {"type": self.kind.value}
        return {"type": self.kind.value, "guest": self.guest}


EMPTY_CELL = DayCell(kind=CellKind.EMPTY)


@dataclass(frozen=True)
class GridConflict:
    """A room/day collision the turnover rule does not model (last write won)."""
    room: str
    day: str  # ISO date
    existing: DayCell
    incoming: DayCell


@dataclass(frozen=True)
class AvailabilityGrid:
    """Per-room, per-day occupancy derived from the active reservations.

    Attributes:
        cells: room -> ISO date -> DayCell (read-only mappings). Rooms without
            reservations are present with no cells.
        skipped_reservations: reservations dropped for an unparseable
            check-in or check-out date
        conflicts: collisions resolved by last-write-wins
    """
    cells: Mapping[str, Mapping[str, DayCell]]
    skipped_reservations: int = 0
    conflicts: tuple[GridConflict, ...] = ()

    @property
    def rooms(self) -> list[str]:
        return list(self.cells.keys())

    def cell(self, room: str, day: date | str) -> DayCell:
        key = day.isoformat() if isinstance(day, date) else day
        return self.cells.get(room, {}).get(key, EMPTY_CELL)

    def occupied_dates(self, room: str) -> list[str]:
        return sorted(self.cells.get(room, {}).keys())

    def to_dict(self) -> dict[str, dict[str, dict[str, Any]]]:
        return {
            room: {day: cell.to_dict() for day, cell in sorted(days.items())}
            for room, days in self.cells.items()
        }

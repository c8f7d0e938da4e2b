from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from .reservation import ReservationRecord

"""Derived snapshot handed to rendering / export collaborators."""

__all__ = [
    "ReservationSnapshot",
]


@dataclass(frozen=True)
class ReservationSnapshot:
    """Classified reservation buckets of one pipeline run.

    ``reservations`` is the full deduplicated set (all statuses, past and
    future); the three buckets are derived from it against ``today``.
    """
    reservations: tuple[ReservationRecord, ...]
    active: tuple[ReservationRecord, ...]
    cancelled: tuple[ReservationRecord, ...]  # future check-in only, by check-in
    changed: tuple[ReservationRecord, ...]  # future check-in only, by check-in
    rooms: tuple[str, ...]
    generated_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "activeReservations": [r.to_row() for r in self.active],
            "cancelledReservations": [r.to_row() for r in self.cancelled],
            "modifiedReservations": [r.to_row() for r in self.changed],
            "rooms": list(self.rooms),
            "generatedAt": self.generated_at.isoformat(),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, indent=2)

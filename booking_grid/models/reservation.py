from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from enum import Enum

"""Canonical reservation model for the booking calendar.

Column names are the ones exported by the property management system and are
kept bit-exact (Japanese script). A RawRow is a plain ``dict[str, str]`` keyed
by those names; ReservationRecord is the canonical view over one RawRow.
"""

__all__ = [
    "STATUS_COLUMN",
    "CHECK_IN_COLUMN",
    "CHECK_OUT_COLUMN",
    "ROOM_TYPE_COLUMN",
    "GUEST_NAME_COLUMN",
    "BOOKING_SITE_COLUMN",
    "RESERVATION_NUMBER_COLUMN",
    "REMARKS_COLUMNS",
    "REQUIRED_COLUMNS",
    "ReservationStatus",
    "ReservationRecord",
    "parse_date",
    "format_date",
]

STATUS_COLUMN = "予約区分"
CHECK_IN_COLUMN = "チェックイン日"
CHECK_OUT_COLUMN = "チェックアウト日"
ROOM_TYPE_COLUMN = "部屋タイプ名称"
GUEST_NAME_COLUMN = "宿泊者氏名"
BOOKING_SITE_COLUMN = "予約サイト名称"
RESERVATION_NUMBER_COLUMN = "予約番号"
REMARKS_COLUMNS = ("備考1", "備考2")

# 予約区分 / チェックイン日 が無い行は取込対象外
REQUIRED_COLUMNS = (STATUS_COLUMN, CHECK_IN_COLUMN)

# Y/M/D or Y-M-D, anything after the day (time of day etc.) is ignored
_DATE_PATTERN = re.compile(r"^\s*(\d{1,4})[/-](\d{1,2})[/-](\d{1,2})")


class ReservationStatus(Enum):
    """Value of the 予約区分 column."""
    NEW = "予約"
    CHANGED = "変更"
    CANCELLED = "キャンセル"

    @classmethod
    def from_label(cls, label: str | None) -> ReservationStatus:
        # 未知の区分は通常予約扱い (キャンセル以外は稼働中)
        for status in cls:
            if status.value == (label or "").strip():
                return status
        return cls.NEW


def parse_date(value: object) -> date | None:
    """Parse a ``Y/M/D`` or ``Y-M-D`` string; None when the value is not a real date."""
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    m = _DATE_PATTERN.match(value)
    if m is None:
        return None
    try:
        return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
    except ValueError:
        return None


def format_date(value: date) -> str:
    return f"{value.year:04d}/{value.month:02d}/{value.day:02d}"


def _clean(value: object) -> str:
    if value is None:
        return ""
    return str(value).strip()


@dataclass(frozen=True)
class ReservationRecord:
    """One logical reservation after parsing.

    ``check_in_raw`` / ``check_out_raw`` hold the text as exported; the parsed
    dates are derived on access and may be None. ``check_in <= check_out`` is
    deliberately not validated here.
    """
    reservation_number: str | None
    room_type: str
    guest_name: str
    check_in_raw: str
    check_out_raw: str
    booking_site: str
    status: ReservationStatus
    remarks: str | None = None
    row: Mapping[str, str] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_row(cls, row: Mapping[str, str]) -> ReservationRecord:
        remarks = next((_clean(row.get(c)) for c in REMARKS_COLUMNS if _clean(row.get(c))), None)
        return cls(
            reservation_number=_clean(row.get(RESERVATION_NUMBER_COLUMN)) or None,
            room_type=_clean(row.get(ROOM_TYPE_COLUMN)),
            guest_name=_clean(row.get(GUEST_NAME_COLUMN)),
            check_in_raw=_clean(row.get(CHECK_IN_COLUMN)),
            check_out_raw=_clean(row.get(CHECK_OUT_COLUMN)),
            booking_site=_clean(row.get(BOOKING_SITE_COLUMN)),
            status=ReservationStatus.from_label(row.get(STATUS_COLUMN)),
            remarks=remarks,
            row=dict(row),
        )

    @property
    def check_in(self) -> date | None:
        return parse_date(self.check_in_raw)

    @property
    def check_out(self) -> date | None:
        return parse_date(self.check_out_raw)

    @property
    def dedup_key(self) -> str:
        """Identity used to collapse rows describing the same reservation."""
        if self.reservation_number:
            return f"{self.reservation_number}_{self.room_type}"
        return f"{self.guest_name}-{self.check_in_raw}-{self.room_type}"

    def to_row(self) -> dict[str, str]:
        """Return the record in its original column shape (source columns kept)."""
        data = dict(self.row)
        canonical = {
            STATUS_COLUMN: self.status.value,
            CHECK_IN_COLUMN: self.check_in_raw,
            CHECK_OUT_COLUMN: self.check_out_raw,
            ROOM_TYPE_COLUMN: self.room_type,
            GUEST_NAME_COLUMN: self.guest_name,
            BOOKING_SITE_COLUMN: self.booking_site,
        }
        if self.reservation_number:
            canonical[RESERVATION_NUMBER_COLUMN] = self.reservation_number
        if self.remarks and not any(data.get(c) for c in REMARKS_COLUMNS):
            canonical[REMARKS_COLUMNS[0]] = self.remarks
        for key, value in canonical.items():
            data.setdefault(key, value)
        return data

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import date, datetime, tzinfo
from zoneinfo import ZoneInfo

from ..models.reservation import (
    BOOKING_SITE_COLUMN,
    CHECK_IN_COLUMN,
    CHECK_OUT_COLUMN,
    GUEST_NAME_COLUMN,
    RESERVATION_NUMBER_COLUMN,
    ROOM_TYPE_COLUMN,
    STATUS_COLUMN,
    ReservationRecord,
    ReservationStatus,
    format_date,
    parse_date,
)
from ..models.snapshot import ReservationSnapshot

"""Reservation repository: deduplication and status classification.

Pure functions over an already validated row set. "Today" is captured once
per run by the caller (or by ``ingest``) and passed in explicitly.

Dedup rule: rows are folded into a mapping keyed by the dedup key and every
row overwrites the previous entry under its key, so the last row in input
order wins. The surviving record keeps the position of the first row that
used the key.
"""

__all__ = [
    "MANUAL_BOOKING_SITE",
    "MANUAL_NUMBER_PREFIX",
    "to_records",
    "deduplicate",
    "collect_rooms",
    "classify",
    "current_time",
    "start_of_today",
    "ingest",
    "synthesize_manual_row",
    "add_manual_reservation",
]

logger = logging.getLogger(__name__)

MANUAL_BOOKING_SITE = "manual"
MANUAL_NUMBER_PREFIX = "MANUAL_"

RowLike = Mapping[str, str] | ReservationRecord


def to_records(rows: Iterable[RowLike]) -> list[ReservationRecord]:
    """Accept RawRows or canonical records (manual-add / store paths)."""
    return [r if isinstance(r, ReservationRecord) else ReservationRecord.from_row(r) for r in rows]


def deduplicate(records: Iterable[ReservationRecord]) -> list[ReservationRecord]:
    unique: dict[str, ReservationRecord] = {}
    for record in records:
        unique[record.dedup_key] = record
    return list(unique.values())


def collect_rooms(records: Iterable[ReservationRecord]) -> list[str]:
    return sorted({r.room_type for r in records if r.room_type})


def _future_bucket(
    records: Iterable[ReservationRecord], status: ReservationStatus, today: date
) -> list[ReservationRecord]:
    bucket: dict[str, ReservationRecord] = {}
    for record in records:
        if record.status is not status:
            continue
        check_in = record.check_in
        # 日付不正は「今日以降」と判定できないため除外
        if check_in is None or check_in < today:
            continue
        bucket[record.dedup_key] = record
    # sorted() は安定ソート: 同日チェックインは入力順のまま
    return sorted(bucket.values(), key=lambda r: r.check_in)  # type: ignore[arg-type,return-value]


def classify(
    rows: Iterable[RowLike], today: date, generated_at: datetime | None = None
) -> ReservationSnapshot:
    """Deduplicate ``rows`` and split them into active / cancelled / changed.

    - active: every status except キャンセル (any check-in date)
    - cancelled: キャンセル with check-in on or after ``today``, by check-in
    - changed: 変更 with check-in on or after ``today``, by check-in
    """
    records = deduplicate(to_records(rows))
    active = [r for r in records if r.status is not ReservationStatus.CANCELLED]
    cancelled = _future_bucket(records, ReservationStatus.CANCELLED, today)
    changed = _future_bucket(records, ReservationStatus.CHANGED, today)
    rooms = collect_rooms(records)
    logger.debug(
        f"classified unique={len(records)} active={len(active)} "
        f"cancelled={len(cancelled)} changed={len(changed)} rooms={len(rooms)}"
    )
    return ReservationSnapshot(
        reservations=tuple(records),
        active=tuple(active),
        cancelled=tuple(cancelled),
        changed=tuple(changed),
        rooms=tuple(rooms),
        generated_at=generated_at or datetime.now().astimezone(),
    )


def _resolve_tz(timezone: str | tzinfo | None) -> tzinfo | None:
    if timezone is None or isinstance(timezone, tzinfo):
        return timezone
    return ZoneInfo(timezone)


def current_time(timezone: str | tzinfo | None = None) -> datetime:
    """Aware 'now'; the host's local zone when ``timezone`` is None."""
    tz = _resolve_tz(timezone)
    return datetime.now(tz) if tz is not None else datetime.now().astimezone()


def start_of_today(now: datetime) -> date:
    """Local calendar day of ``now`` (the start-of-day used for classification)."""
    return now.date()


def ingest(
    rows: Iterable[RowLike],
    *,
    now: datetime | None = None,
    timezone: str | tzinfo | None = None,
) -> ReservationSnapshot:
    """Classify a row set, capturing the clock exactly once for the whole run."""
    moment = now or current_time(timezone)
    return classify(rows, start_of_today(moment), generated_at=moment)


def _as_date_text(value: date | str, label: str) -> str:
    parsed = parse_date(value)
    if parsed is None:
        raise ValueError(f"invalid {label} date: {value!r}")
    return format_date(parsed)


def synthesize_manual_row(
    room: str, guest_name: str, check_in: date | str, check_out: date | str, now: datetime
) -> dict[str, str]:
    """Build the RawRow for a manually entered reservation.

    Raises:
        ValueError: empty room/guest or an unparseable date
    """
    if not room or not room.strip():
        raise ValueError("room is required")
    if not guest_name or not guest_name.strip():
        raise ValueError("guest name is required")
    millis = int(now.timestamp() * 1000)
    return {
        STATUS_COLUMN: ReservationStatus.NEW.value,
        ROOM_TYPE_COLUMN: room.strip(),
        GUEST_NAME_COLUMN: guest_name.strip(),
        CHECK_IN_COLUMN: _as_date_text(check_in, "check-in"),
        CHECK_OUT_COLUMN: _as_date_text(check_out, "check-out"),
        BOOKING_SITE_COLUMN: MANUAL_BOOKING_SITE,
        RESERVATION_NUMBER_COLUMN: f"{MANUAL_NUMBER_PREFIX}{millis}",
    }


def add_manual_reservation(
    history: Iterable[RowLike],
    room: str,
    guest_name: str,
    check_in: date | str,
    check_out: date | str,
    *,
    now: datetime | None = None,
    timezone: str | tzinfo | None = None,
) -> tuple[list[RowLike], ReservationSnapshot]:
    """Append a manual reservation and rerun the full classification.

    Returns:
        (new history including the synthesized row, fresh snapshot)
    """
    moment = now or current_time(timezone)
    row = synthesize_manual_row(room, guest_name, check_in, check_out, moment)
    updated: list[RowLike] = [*history, row]
    logger.info(f"manual reservation added room={row[ROOM_TYPE_COLUMN]} number={row[RESERVATION_NUMBER_COLUMN]}")
    return updated, ingest(updated, now=moment)

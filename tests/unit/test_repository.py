from __future__ import annotations

from datetime import date, datetime

import pytest

from booking_grid.models.reservation import ReservationRecord, ReservationStatus
from booking_grid.services.repository import (
    add_manual_reservation,
    classify,
    collect_rooms,
    current_time,
    deduplicate,
    ingest,
    start_of_today,
    synthesize_manual_row,
    to_records,
)
from tests.helpers import JST, make_row

TODAY = date(2024, 5, 1)


def _guests(records):
    return [r.guest_name for r in records]


class TestDeduplicate:
    def test_last_row_wins_for_reservation_number(self):
        rows = [
            make_row(number="R1", guest="Old", check_out="2024/05/10"),
            make_row(number="R1", guest="New", check_out="2024/05/12"),
        ]
        records = deduplicate(to_records(rows))
        assert len(records) == 1
        assert records[0].guest_name == "New"
        assert records[0].check_out_raw == "2024/05/12"

    def test_same_number_different_room_is_distinct(self):
        rows = [make_row(number="R1", room="A"), make_row(number="R1", room="B")]
        assert len(deduplicate(to_records(rows))) == 2

    def test_fallback_key_without_number(self):
        rows = [
            make_row(guest="Smith", check_in="2024/05/08", room="A", site="X"),
            make_row(guest="Smith", check_in="2024/05/08", room="A", site="Y"),
            make_row(guest="Smith", check_in="2024/05/09", room="A"),
        ]
        records = deduplicate(to_records(rows))
        assert [r.booking_site for r in records] == ["Y", "Booking.com"]

    def test_survivor_keeps_first_position(self):
        rows = [
            make_row(number="R1", guest="First"),
            make_row(number="R2", guest="Second"),
            make_row(number="R1", guest="Replaced"),
        ]
        assert _guests(deduplicate(to_records(rows))) == ["Replaced", "Second"]

    def test_every_unique_key_appears_once(self):
        rows = [make_row(number=f"R{i % 3}") for i in range(9)]
        records = deduplicate(to_records(rows))
        keys = [r.dedup_key for r in records]
        assert len(keys) == len(set(keys)) == 3


class TestClassify:
    def test_buckets(self):
        rows = [
            make_row(number="1", status="予約", check_in="2024/04/01", check_out="2024/04/03"),
            make_row(number="2", status="変更", check_in="2024/05/20"),
            make_row(number="3", status="変更", check_in="2024/04/20"),
            make_row(number="4", status="キャンセル", check_in="2024/05/01"),
            make_row(number="5", status="キャンセル", check_in="2024/04/30"),
        ]
        snap = classify(rows, TODAY)
        assert [r.reservation_number for r in snap.active] == ["1", "2", "3"]
        assert [r.reservation_number for r in snap.changed] == ["2"]
        # 今日チェックインのキャンセルは含む
        assert [r.reservation_number for r in snap.cancelled] == ["4"]
        assert len(snap.reservations) == 5

    def test_cancelled_and_changed_sorted_by_check_in(self):
        rows = [
            make_row(number="a", status="キャンセル", check_in="2024/06/10"),
            make_row(number="b", status="キャンセル", check_in="2024/05/02"),
            make_row(number="c", status="キャンセル", check_in="2024/05/20"),
            make_row(number="d", status="変更", check_in="2024/07/01"),
            make_row(number="e", status="変更", check_in="2024/06/01"),
        ]
        snap = classify(rows, TODAY)
        assert [r.reservation_number for r in snap.cancelled] == ["b", "c", "a"]
        assert [r.reservation_number for r in snap.changed] == ["e", "d"]

    def test_cancellation_supersedes_booking(self):
        rows = [
            make_row(number="R1", status="予約", check_in="2024/05/08"),
            make_row(number="R1", status="キャンセル", check_in="2024/05/08"),
        ]
        snap = classify(rows, TODAY)
        assert snap.active == ()
        assert len(snap.cancelled) == 1
        assert snap.cancelled[0].status is ReservationStatus.CANCELLED

    def test_unparseable_check_in_excluded_from_future_buckets(self):
        rows = [
            make_row(number="1", status="キャンセル", check_in="someday"),
            make_row(number="2", status="変更", check_in="2024/02/30"),
        ]
        snap = classify(rows, TODAY)
        assert snap.cancelled == ()
        assert snap.changed == ()
        # 変更は稼働中として残る
        assert [r.reservation_number for r in snap.active] == ["2"]

    def test_unknown_status_is_active(self):
        snap = classify([make_row(status="仮予約")], TODAY)
        assert len(snap.active) == 1

    def test_rooms_sorted_and_non_empty(self):
        rows = [
            make_row(number="1", room="Twin"),
            make_row(number="2", room="Double"),
            make_row(number="3", room=""),
            make_row(number="4", room="Twin", status="キャンセル"),
        ]
        snap = classify(rows, TODAY)
        assert snap.rooms == ("Double", "Twin")

    def test_empty_input(self):
        snap = classify([], TODAY)
        assert snap.reservations == ()
        assert snap.active == ()
        assert snap.rooms == ()

    def test_idempotent_over_its_output(self):
        rows = [
            make_row(number="1", status="予約"),
            make_row(number="1", status="変更", check_in="2024/05/09"),
            make_row(guest="Jones", status="キャンセル", check_in="2024/05/15"),
            make_row(guest="Brown", room="B"),
        ]
        first = classify(rows, TODAY)
        second = classify(list(first.reservations), TODAY)
        assert second.reservations == first.reservations
        assert second.active == first.active
        assert second.cancelled == first.cancelled
        assert second.changed == first.changed
        assert second.rooms == first.rooms

    def test_accepts_records(self):
        records = [ReservationRecord.from_row(make_row())]
        snap = classify(records, TODAY)
        assert snap.active == tuple(records)

    def test_generated_at_passed_through(self):
        moment = datetime(2024, 5, 1, 12, 0, tzinfo=JST)
        assert classify([], TODAY, generated_at=moment).generated_at == moment


def test_collect_rooms_dedupes():
    records = to_records([make_row(room="B"), make_row(room="A"), make_row(room="B")])
    assert collect_rooms(records) == ["A", "B"]


def test_ingest_uses_local_day_of_now():
    # 2024-05-01 00:30 JST は UTC ではまだ 4/30
    now = datetime(2024, 5, 1, 0, 30, tzinfo=JST)
    rows = [make_row(status="キャンセル", check_in="2024/05/01")]
    snap = ingest(rows, now=now)
    assert len(snap.cancelled) == 1
    assert snap.generated_at == now


def test_start_of_today():
    assert start_of_today(datetime(2024, 5, 1, 23, 59, tzinfo=JST)) == date(2024, 5, 1)


def test_current_time_is_aware():
    assert current_time().tzinfo is not None
    assert current_time("Asia/Tokyo").utcoffset().total_seconds() == 9 * 3600


class TestManualReservation:
    def test_synthesized_row(self, fixed_now):
        row = synthesize_manual_row(" A ", " Tanaka ", "2024-5-8", date(2024, 5, 10), fixed_now)
        assert row == {
            "予約区分": "予約",
            "部屋タイプ名称": "A",
            "宿泊者氏名": "Tanaka",
            "チェックイン日": "2024/05/08",
            "チェックアウト日": "2024/05/10",
            "予約サイト名称": "manual",
            "予約番号": f"MANUAL_{int(fixed_now.timestamp() * 1000)}",
        }

    @pytest.mark.parametrize(
        "room,guest,check_in,check_out",
        [
            ("", "Tanaka", "2024/05/08", "2024/05/10"),
            ("A", "  ", "2024/05/08", "2024/05/10"),
            ("A", "Tanaka", "not a date", "2024/05/10"),
            ("A", "Tanaka", "2024/05/08", "2024/02/30"),
        ],
    )
    def test_invalid_input_rejected(self, fixed_now, room, guest, check_in, check_out):
        with pytest.raises(ValueError):
            synthesize_manual_row(room, guest, check_in, check_out, fixed_now)

    def test_add_reruns_pipeline(self, fixed_now):
        history = [make_row(number="R1", guest="Smith")]
        updated, snap = add_manual_reservation(
            history, "B", "Tanaka", "2024/05/08", "2024/05/09", now=fixed_now
        )
        assert len(updated) == 2
        assert history == [make_row(number="R1", guest="Smith")]
        assert _guests(snap.active) == ["Smith", "Tanaka"]
        assert snap.rooms == ("A", "B")
        assert snap.active[1].booking_site == "manual"
        assert snap.generated_at == fixed_now

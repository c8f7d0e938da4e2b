from __future__ import annotations

from datetime import timedelta, timezone

"""Row builders shared by the test modules."""

JST = timezone(timedelta(hours=9))

COLUMNS = [
    "予約番号",
    "予約区分",
    "チェックイン日",
    "チェックアウト日",
    "部屋タイプ名称",
    "宿泊者氏名",
    "予約サイト名称",
    "備考1",
    "備考2",
]
HEADER = ",".join(COLUMNS)


def make_row(
    status: str = "予約",
    check_in: str = "2024/05/08",
    check_out: str = "2024/05/10",
    room: str = "A",
    guest: str = "Smith",
    number: str = "",
    site: str = "Booking.com",
    remarks1: str = "",
    remarks2: str = "",
) -> dict[str, str]:
    return {
        "予約番号": number,
        "予約区分": status,
        "チェックイン日": check_in,
        "チェックアウト日": check_out,
        "部屋タイプ名称": room,
        "宿泊者氏名": guest,
        "予約サイト名称": site,
        "備考1": remarks1,
        "備考2": remarks2,
    }


def csv_text(rows: list[dict[str, str]]) -> str:
    lines = [HEADER]
    for row in rows:
        lines.append(",".join(f'"{row.get(col, "")}"' for col in COLUMNS))
    return "\r\n".join(lines) + "\r\n"

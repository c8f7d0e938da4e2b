#!/usr/bin/env python3
"""Sample reservation CSV generator.

Writes a synthetic ReservationList CSV in the export format the ingestion
pipeline expects (Japanese header names, Y/M/D dates). The data contains
back-to-back stays (turnovers), superseding rows for the same reservation
number (変更 / キャンセル) and rows without a reservation number, so every
dedup and grid rule gets exercised.
"""
from __future__ import annotations

import argparse
import csv
import sys
from datetime import date, timedelta
from pathlib import Path

import numpy as np
import pandas as pd

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

ROOM_TYPES = ["和室10畳", "和洋室", "洋室ツイン", "洋室ダブル", "離れ露天風呂付"]
SITES = ["楽天トラベル", "じゃらん", "Booking.com", "Expedia", "直接予約"]
SURNAMES = ["佐藤", "鈴木", "高橋", "田中", "伊藤", "渡辺", "山本", "中村", "小林", "加藤"]


def _fmt(d: date) -> str:
    return f"{d.year:04d}/{d.month:02d}/{d.day:02d}"


def generate_reservations(rows: int, start: date, seed: int = 42) -> pd.DataFrame:
    """Generate ``rows`` reservations spread over ROOM_TYPES.

    Each room gets a chain of stays; with probability 0.4 the next stay
    starts on the previous check-out day (turnover). About 10% of the
    reservations are followed by a 変更 row and 5% by a キャンセル row
    carrying the same reservation number.
    """
    np.random.seed(seed)

    records: list[dict[str, str]] = []
    cursor = {room: start for room in ROOM_TYPES}
    for i in range(rows):
        room = ROOM_TYPES[i % len(ROOM_TYPES)]
        gap = 0 if np.random.random() < 0.4 else int(np.random.randint(1, 5))
        check_in = cursor[room] + timedelta(days=gap)
        nights = int(np.random.randint(1, 6))
        check_out = check_in + timedelta(days=nights)
        cursor[room] = check_out

        number = f"R{100000 + i}" if np.random.random() > 0.05 else ""
        record = {
            "予約番号": number,
            "予約区分": "予約",
            "チェックイン日": _fmt(check_in),
            "チェックアウト日": _fmt(check_out),
            "部屋タイプ名称": room,
            "宿泊者氏名": f"{np.random.choice(SURNAMES)} 様",
            "予約サイト名称": str(np.random.choice(SITES)),
            "備考1": "",
            "備考2": "夕食付き" if np.random.random() < 0.3 else "",
        }
        records.append(record)

        roll = np.random.random()
        if number and roll < 0.10:
            records.append({**record, "予約区分": "変更", "備考1": "人数変更"})
        elif number and roll < 0.15:
            records.append({**record, "予約区分": "キャンセル", "備考1": "お客様都合"})

    return pd.DataFrame(records, columns=COLUMNS)


def write_csv(df: pd.DataFrame, output_path: Path, encoding: str) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(output_path, index=False, encoding=encoding, quoting=csv.QUOTE_ALL, lineterminator="\r\n")
    print(f"Created CSV file: {output_path}")
    print(f"  Rows: {len(df):,}")
    print(f"  Encoding: {encoding}")


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Generate a synthetic reservation CSV",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # 200 reservations, UTF-8
  %(prog)s data/ReservationList.csv --rows 200

  # Shift_JIS export as produced by older PMS versions
  %(prog)s data/ReservationList_sjis.csv --encoding cp932
        """,
    )
    parser.add_argument("output", type=Path, help="Output CSV path")
    parser.add_argument("--rows", type=int, default=200, help="Number of reservations (default: 200)")
    parser.add_argument("--start", type=date.fromisoformat, default=date.today(), help="First check-in (YYYY-MM-DD)")
    parser.add_argument("--encoding", default="utf-8", help="Output encoding, e.g. utf-8 / utf-8-sig / cp932")
    parser.add_argument("--seed", type=int, default=42, help="Random seed (default: 42)")
    args = parser.parse_args()

    if args.rows <= 0:
        print("Error: --rows must be positive", file=sys.stderr)
        return 1

    df = generate_reservations(args.rows, args.start, args.seed)
    try:
        write_csv(df, args.output, args.encoding)
    except (OSError, LookupError, UnicodeEncodeError) as e:
        print(f"Error writing CSV: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

from __future__ import annotations

import re
from pathlib import Path

from booking_grid.cli import main as cli_main
from tests.helpers import make_row

"""SUMMARY 行フォーマット契約テスト."""

SUMMARY_PATTERN = re.compile(
    r"^SUMMARY files=([0-9]+) rows=([0-9]+) reservations=([0-9]+) active=([0-9]+) "
    r"cancelled=([0-9]+) changed=([0-9]+) rooms=([0-9]+) skipped_reservations=([0-9]+) "
    r"conflicts=([0-9]+) elapsed_sec=([0-9]+\.?[0-9]*)$"
)


def test_summary_pattern_example_line():
    line = (
        "SUMMARY files=2 rows=10 reservations=8 active=6 cancelled=1 changed=1 rooms=3 "
        "skipped_reservations=0 conflicts=0 elapsed_sec=0.042"
    )
    assert SUMMARY_PATTERN.match(line)


def test_cli_summary_is_last_line_and_matches(write_config: Path, write_csv, capsys):
    write_csv("a.csv", [make_row(number="1"), make_row(number="2", room="B")])
    write_csv("b.csv", [make_row(number="1", status="キャンセル", check_in="2099/01/01")])
    assert cli_main([]) == 0
    last = capsys.readouterr().out.strip().splitlines()[-1]
    m = SUMMARY_PATTERN.match(last)
    assert m, last
    assert m.groups()[:9] == ("2", "3", "2", "1", "1", "0", "2", "0", "0")

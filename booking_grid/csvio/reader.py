from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

from ..models.reservation import CHECK_IN_COLUMN, REQUIRED_COLUMNS, STATUS_COLUMN
from ..models.source_file import FileStatus, SourceFile

"""Reservation CSV reader.

- RecordParser: quote-aware comma scanner producing RawRows (column -> str).
- EncodingRecovery: decode as UTF-8; if the header lacks both the 予約区分 and
  チェックイン日 markers, redecode the same bytes with the legacy Japanese
  encoding (cp932) and parse again.

The marker test is a mojibake heuristic, not an encoding sniff: a valid UTF-8
file that simply has neither column is redecoded as cp932 as well.
"""

__all__ = [
    "BOM",
    "DEFAULT_FALLBACK_ENCODING",
    "HEADER_MARKERS",
    "DecodedText",
    "parse_records",
    "has_header_markers",
    "decode_reservation_bytes",
    "filter_valid_rows",
    "read_reservation_file",
]

logger = logging.getLogger(__name__)

BOM = "\ufeff"
PRIMARY_ENCODING = "utf-8"
DEFAULT_FALLBACK_ENCODING = "cp932"  # Shift_JIS (Windows 拡張)
HEADER_MARKERS = (STATUS_COLUMN, CHECK_IN_COLUMN)

_LINE_SPLIT = re.compile(r"\r\n|\n")


@dataclass(frozen=True)
class DecodedText:
    text: str
    encoding: str
    fallback_used: bool = False


def _strip_quotes(value: str) -> str:
    # 外側の二重引用符を 1 層だけ除去
    if value.startswith('"'):
        value = value[1:]
    if value.endswith('"'):
        value = value[:-1]
    return value


def _split_lines(text: str) -> list[tuple[int, str]]:
    """Return (1-based line number, line) pairs, dropping blank lines."""
    if text.startswith(BOM):
        text = text[1:]
    return [(i, line) for i, line in enumerate(_LINE_SPLIT.split(text), start=1) if line.strip()]


def _scan_fields(line: str) -> list[str]:
    fields: list[str] = []
    current: list[str] = []
    inside_quote = False
    for char in line:
        if char == '"':
            inside_quote = not inside_quote
        elif char == "," and not inside_quote:
            fields.append(_strip_quotes("".join(current)).strip())
            current = []
        else:
            current.append(char)
    fields.append(_strip_quotes("".join(current)).strip())
    return fields


def _parse_numbered(text: str) -> list[tuple[int, dict[str, str]]]:
    lines = _split_lines(text)
    if not lines:
        return []
    headers = [_strip_quotes(h.strip()) for h in lines[0][1].split(",")]
    records: list[tuple[int, dict[str, str]]] = []
    for line_no, line in lines[1:]:
        row: dict[str, str] = {}
        # ヘッダ数を超える列は捨てる
        for header, value in zip(headers, _scan_fields(line), strict=False):
            row[header] = value
        if row:
            records.append((line_no, row))
    return records


def parse_records(text: str) -> list[dict[str, str]]:
    """Parse delimited text into RawRows.

    The first non-blank line is the header (split on every comma, trimmed, one
    layer of quotes removed). Each later line is scanned with quote state: a
    double quote toggles "inside quotes" and is never part of the value, and a
    comma separates fields only outside quotes.
    """
    return [row for _, row in _parse_numbered(text)]


def has_header_markers(text: str) -> bool:
    lines = _split_lines(text)
    if not lines:
        return False
    header = lines[0][1]
    return any(marker in header for marker in HEADER_MARKERS)


def decode_reservation_bytes(
    data: bytes, fallback_encoding: str = DEFAULT_FALLBACK_ENCODING
) -> DecodedText:
    """Decode file bytes, retrying with ``fallback_encoding`` on a header mismatch.

    Undecodable bytes are replaced (U+FFFD) rather than raising, so a wrong
    guess shows up as a missing header marker instead of an exception.
    """
    text = data.decode(PRIMARY_ENCODING, errors="replace")
    if has_header_markers(text):
        return DecodedText(text=text, encoding=PRIMARY_ENCODING)
    logger.debug(f"header markers not found as {PRIMARY_ENCODING}; retrying as {fallback_encoding}")
    text = data.decode(fallback_encoding, errors="replace")
    return DecodedText(text=text, encoding=fallback_encoding, fallback_used=True)


def _is_valid(row: dict[str, str]) -> bool:
    return all(row.get(col) for col in REQUIRED_COLUMNS)


def filter_valid_rows(rows: list[dict[str, str]]) -> list[dict[str, str]]:
    """Keep rows that carry both a status and a check-in date."""
    return [row for row in rows if _is_valid(row)]


def read_reservation_file(
    path: Path, fallback_encoding: str = DEFAULT_FALLBACK_ENCODING
) -> SourceFile:
    """Read, decode and parse one reservation file.

    Raises:
        OSError: the file cannot be read
    """
    decoded = decode_reservation_bytes(path.read_bytes(), fallback_encoding)
    numbered = _parse_numbered(decoded.text)
    valid = [row for _, row in numbered if _is_valid(row)]
    dropped = [line_no for line_no, row in numbered if not _is_valid(row)]
    if dropped:
        logger.debug(f"{path.name}: {len(dropped)} row(s) without {'/'.join(REQUIRED_COLUMNS)} dropped")
    return SourceFile(
        path=path,
        name=path.name,
        encoding=decoded.encoding,
        fallback_used=decoded.fallback_used,
        status=FileStatus.SUCCESS if valid else FileStatus.EMPTY,
        rows=valid,
        parsed_rows=len(numbered),
        dropped_lines=dropped,
    )

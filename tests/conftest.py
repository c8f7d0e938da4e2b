# Shared pytest fixtures
from __future__ import annotations

import tempfile
from datetime import datetime
from pathlib import Path

import pytest

from booking_grid.logging.init import reset_logging
from tests.helpers import JST, csv_text


@pytest.fixture(autouse=True)
def _clean_logging():
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return """source_directory: ./data
fallback_encoding: cp932
max_stay_days: 365
timezone: Asia/Tokyo
output_directory: ./out
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "booking_grid.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def write_csv(temp_workdir: Path):
    def _write(name: str, rows: list[dict[str, str]], encoding: str = "utf-8") -> Path:
        path = temp_workdir / "data" / name
        path.write_bytes(csv_text(rows).encode(encoding))
        return path

    return _write


@pytest.fixture()
def fixed_now() -> datetime:
    return datetime(2024, 5, 1, 9, 0, tzinfo=JST)

from __future__ import annotations

import codecs
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

"""Config loader.

Responsibilities:
- Load YAML config/booking_grid.yml
- Validate against config_schema.json (unknown keys rejected)
- Apply defaults (fallback_encoding=cp932, max_stay_days=365, output ./out)
- Reject unknown codecs / time zones up front
"""

DEFAULT_CONFIG_PATH = Path("config/booking_grid.yml")
SCHEMA_PATH = Path(__file__).with_name("config_schema.json")

DEFAULT_FALLBACK_ENCODING = "cp932"
DEFAULT_MAX_STAY_DAYS = 365
DEFAULT_OUTPUT_DIRECTORY = "./out"


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class DatabaseConfig:
    """Shared-store connection fallback (environment variables take precedence)."""
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None
    table: str | None = None
    document_id: str | None = None


@dataclass(frozen=True)
class AppConfig:
    source_directory: str
    fallback_encoding: str = DEFAULT_FALLBACK_ENCODING
    max_stay_days: int = DEFAULT_MAX_STAY_DAYS
    timezone: str | None = None  # None: host local time
    output_directory: str = DEFAULT_OUTPUT_DIRECTORY
    database: DatabaseConfig | None = None


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the bundled JSON schema.

    Raises:
        ConfigError: schema file missing/invalid or the data violates it
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")
    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def _check_encoding(name: str) -> None:
    try:
        codecs.lookup(name)
    except LookupError as e:
        raise ConfigError(f"unknown fallback_encoding: {name}") from e


def _check_timezone(name: str | None) -> None:
    if name is None:
        return
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigError(f"unknown timezone: {name}") from e


def load_config(path: Path = DEFAULT_CONFIG_PATH) -> AppConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("config root must be a mapping")

    _validate_config_schema(data)

    encoding = data.get("fallback_encoding", DEFAULT_FALLBACK_ENCODING)
    _check_encoding(encoding)
    tz = data.get("timezone")
    _check_timezone(tz)

    db_raw = data.get("database")
    db = None
    if db_raw:
        db = DatabaseConfig(
            host=db_raw.get("host"),
            port=db_raw.get("port"),
            user=db_raw.get("user"),
            password=db_raw.get("password"),
            database=db_raw.get("database"),
            dsn=db_raw.get("dsn"),
            table=db_raw.get("table"),
            document_id=db_raw.get("document_id"),
        )
    return AppConfig(
        source_directory=data["source_directory"],
        fallback_encoding=encoding,
        max_stay_days=data.get("max_stay_days", DEFAULT_MAX_STAY_DAYS),
        timezone=tz,
        output_directory=data.get("output_directory", DEFAULT_OUTPUT_DIRECTORY),
        database=db,
    )

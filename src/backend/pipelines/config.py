from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


load_dotenv()

_DATA_SOURCES = ("fixtures", "sql")
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class EngineConfig:
    data_source: str
    database_url: str
    fixtures_dir: Path
    max_workers: int
    log_level: str


def get_engine_config() -> EngineConfig:
    """
    Load engine configuration from environment variables (and a local .env).

    Reads:
      COMPLIANCE_DATA_SOURCE (fixtures|sql), COMPLIANCE_DATABASE_URL,
      COMPLIANCE_FIXTURES_DIR, COMPLIANCE_MAX_WORKERS, COMPLIANCE_LOG_LEVEL
    """
    data_source = os.getenv("COMPLIANCE_DATA_SOURCE", "fixtures").strip().lower() or "fixtures"
    if data_source not in _DATA_SOURCES:
        raise ValueError("COMPLIANCE_DATA_SOURCE must be 'fixtures' or 'sql'.")

    database_url = os.getenv("COMPLIANCE_DATABASE_URL", "").strip()
    if data_source == "sql" and not database_url:
        raise ValueError("Missing required environment variable: COMPLIANCE_DATABASE_URL")

    log_level = os.getenv("COMPLIANCE_LOG_LEVEL", "INFO").strip().upper() or "INFO"
    if log_level not in _LOG_LEVELS:
        raise ValueError(f"COMPLIANCE_LOG_LEVEL must be one of {', '.join(_LOG_LEVELS)}.")

    return EngineConfig(
        data_source=data_source,
        database_url=database_url,
        fixtures_dir=Path(os.getenv("COMPLIANCE_FIXTURES_DIR", "").strip() or _default_fixtures_dir()),
        max_workers=_int_env("COMPLIANCE_MAX_WORKERS", default=1, minimum=1),
        log_level=log_level,
    )


def _int_env(name: str, *, default: int, minimum: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}")
    return value


def _default_fixtures_dir() -> Path:
    return Path(__file__).resolve().parents[1] / "tests" / "compliance_engine" / "fixtures"

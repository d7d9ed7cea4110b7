"""Application configuration utilities."""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator


class AppConfig(BaseModel):
    """Strongly typed configuration loaded from config.json and the environment."""

    database_path: str = Field(default="./data/carelog.db")
    reference_timezone: str = Field(
        default="UTC",
        description="IANA zone used for calendar-day boundaries in summaries.",
    )
    display_timezone: Optional[str] = Field(
        default=None,
        description="IANA zone used to group timeline items; falls back to reference_timezone.",
    )
    cors_origins: List[str] = Field(default_factory=lambda: ["http://localhost:5173"])

    @field_validator("reference_timezone", "display_timezone")
    @classmethod
    def _known_timezone(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @property
    def resolved_database_path(self) -> Path:
        """Return the absolute path for the SQLite database file."""
        return (_project_root() / self.database_path).resolve()

    @property
    def reference_tz(self) -> ZoneInfo:
        return ZoneInfo(self.reference_timezone)

    @property
    def display_tz(self) -> ZoneInfo:
        return ZoneInfo(self.display_timezone or self.reference_timezone)


def _project_root() -> Path:
    return Path(__file__).resolve().parents[1]


def _config_path() -> Path:
    override = os.getenv("CARELOG_CONFIG")
    if override:
        return Path(override).resolve()
    return _project_root() / "config.json"


_ENV_OVERRIDES = {
    "CARELOG_DATABASE_PATH": "database_path",
    "CARELOG_REFERENCE_TIMEZONE": "reference_timezone",
    "CARELOG_DISPLAY_TIMEZONE": "display_timezone",
}


def load_config() -> AppConfig:
    """Load configuration from config.json (optional) with environment overrides."""

    config_file = _config_path()
    contents: Dict[str, Any] = {}
    if config_file.exists():
        contents = json.loads(config_file.read_text())
    elif os.getenv("CARELOG_CONFIG"):
        raise FileNotFoundError(
            "CARELOG_CONFIG points at a missing file."
            f" Expected at {config_file}. See config.example.json for the format."
        )

    for env_name, field_name in _ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value:
            contents[field_name] = value
    return AppConfig(**contents)


CONFIG = load_config()

"""Configuration settings for the application.

A small Settings container used by the other components. Paths can be
overridden through environment variables; tests patch the module-level
`settings` instance directly.
"""
import os
from dataclasses import dataclass, field


def _env(name: str, default: str) -> str:
    return os.getenv(name, default)


@dataclass
class Settings:
    DB_PATH: str = field(default_factory=lambda: _env("DT_DB_PATH", "data/app.db"))
    STORAGE_PATH: str = field(default_factory=lambda: _env("DT_STORAGE_PATH", "storage"))
    OVERLAY_FILE: str = field(
        default_factory=lambda: _env("DT_OVERLAY_FILE", "storage/division_edits_v1.json")
    )
    LOG_LEVEL: str = field(default_factory=lambda: _env("DT_LOG_LEVEL", "INFO"))

    # editor
    AUTOSAVE_DEBOUNCE_SECONDS: float = 0.7
    PLACEHOLDER_TEXT: str = "TBD"
    PLACEHOLDER_PROGRAM_NAME: str = "TBD Program"
    NEW_PROGRAM_NAME: str = "New Program"

    # scheduling / archives
    FISCAL_BOUNDARY_MONTH: int = 7
    DEFAULT_YEAR_LABEL: str = "2025-2026"

    # http record client
    API_BASE_URL: str = "http://localhost:3004"
    HTTP_TIMEOUT_SECONDS: float = 10.0


settings = Settings()

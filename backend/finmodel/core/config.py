"""
config.py — Centralized Application Configuration Loader

Purpose:
- Define a single source of truth for modeling defaults.
- Load and validate environment variables from `.env` or OS environment.

Settings cover:
- Default currency code and display unit for new models
- Default historical / projection year labels
- Balance-sheet balance tolerance
- Export and CORS options for the API layer

This module does NOT:
- Perform any computation.
- Modify runtime settings.
"""

from pathlib import Path
from typing import Any, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# config.py is at: backend/finmodel/core/config.py
# .env should be at: backend/.env
_CONFIG_DIR = Path(__file__).parent
_BACKEND_DIR = _CONFIG_DIR.parent.parent
_ENV_FILE = _BACKEND_DIR / ".env"

if _ENV_FILE.exists():
    _ENV_FILE_PATH = str(_ENV_FILE.resolve())
else:
    # pydantic will look in CWD
    _ENV_FILE_PATH = ".env"

_VALID_UNITS = ("units", "thousands", "millions")


class Settings(BaseSettings):
    """
    Settings container for the modeling engine.

    Every field can be overridden through the environment, e.g.
    `DEFAULT_CURRENCY_UNIT=thousands`.
    """
    LOG_LEVEL: str = Field(
        "INFO",
        description="Root log level passed to configure_logging()",
    )

    # Model defaults
    DEFAULT_CURRENCY: str = Field(
        "USD",
        description="ISO currency code used when a model is created without one",
    )
    DEFAULT_CURRENCY_UNIT: str = Field(
        "millions",
        description="Display unit for new models: units, thousands or millions",
    )
    DEFAULT_HISTORICAL_YEARS: List[str] = Field(
        ["2023A", "2024A"],
        description="Historical year labels for new models",
    )
    DEFAULT_PROJECTION_YEARS: List[str] = Field(
        ["2025E", "2026E", "2027E", "2028E", "2029E"],
        description="Projection year labels for new models",
    )

    # Checks
    BALANCE_TOLERANCE: float = Field(
        0.01,
        description="Absolute tolerance for Total Assets == Total Liabilities & Equity",
    )

    # API / export
    EXPORT_FILENAME_PREFIX: str = Field(
        "financial_model",
        description="Prefix for downloaded .xlsx files",
    )
    CORS_ALLOW_ORIGINS: List[str] = Field(
        ["*"],
        description="Origins allowed by the CORS middleware",
    )

    @field_validator("DEFAULT_CURRENCY_UNIT", mode="before")
    @classmethod
    def validate_unit(cls, v: Any) -> str:
        """Normalize and validate the display unit."""
        unit = str(v or "").strip().lower()
        if unit not in _VALID_UNITS:
            raise ValueError(f"DEFAULT_CURRENCY_UNIT must be one of {_VALID_UNITS}, got {v!r}")
        return unit

    @field_validator("DEFAULT_CURRENCY", mode="before")
    @classmethod
    def upper_currency(cls, v: Any) -> str:
        return str(v or "USD").strip().upper()

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE_PATH,
        env_file_encoding="utf-8",
        extra="ignore",
    )


# Imported everywhere as a single shared instance.
settings = Settings()

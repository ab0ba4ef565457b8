"""Signer settings loaded from environment variables and config files.

Configuration is loaded from (highest priority first):
1. Environment variables (prefix: ``UTXOSIGNER_``, nested via ``__``)
2. YAML config file (``UTXOSIGNER_CONFIG_PATH`` env var or ``from_yaml``)
3. Defaults defined here
"""

from __future__ import annotations

import enum
import logging
from pathlib import Path
from typing import Any, Self

import yaml
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_PACKAGE_LOGGER = "utxo_signer"

# ---------------------------------------------------------------------------
# Enums for validated choices
# ---------------------------------------------------------------------------


class LogLevel(enum.StrEnum):
    """Log levels accepted by ``logging``."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


# ---------------------------------------------------------------------------
# Sub-config models
# ---------------------------------------------------------------------------


class SigningServiceConfig(BaseSettings):
    """External signing service settings (delegated transaction class)."""

    model_config = SettingsConfigDict(
        env_prefix="UTXOSIGNER_SIGNING_SERVICE__",
        case_sensitive=False,
    )

    url: str = ""
    path: str = "/v1/sign"
    token: str = ""
    timeout: float = Field(default=30.0, gt=0, description="Request timeout in seconds")


class PlanningConfig(BaseSettings):
    """Coin selection and fee settings used by transaction builders."""

    model_config = SettingsConfigDict(
        env_prefix="UTXOSIGNER_PLANNING__",
        case_sensitive=False,
    )

    dust_threshold: int = Field(default=546, ge=0, description="Smallest spendable output")
    default_byte_fee: int = Field(
        default=1, ge=0, description="Fee rate (sat/vbyte) when the request sets none"
    )


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------


def _load_yaml(path: str | Path) -> dict[str, Any]:
    """Load a YAML configuration file and return its contents as a dict.

    Returns an empty dict if the file doesn't exist or is empty.
    """
    p = Path(path)
    if not p.exists():
        return {}
    text = p.read_text(encoding="utf-8")
    data = yaml.safe_load(text)
    return data if isinstance(data, dict) else {}


class AppConfig(BaseSettings):
    """Top-level signer configuration.

    Loads settings from environment variables (``UTXOSIGNER_`` prefix),
    an optional YAML file, and built-in defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix="UTXOSIGNER_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    debug: bool = False
    log_level: LogLevel = LogLevel.INFO
    config_path: str = ""

    signing_service: SigningServiceConfig = Field(default_factory=SigningServiceConfig)
    planning: PlanningConfig = Field(default_factory=PlanningConfig)

    @model_validator(mode="before")
    @classmethod
    def _merge_yaml(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Merge YAML config file contents under the env var overrides."""
        config_path = values.get("config_path", "")
        if not config_path:
            return values
        yaml_data = _load_yaml(config_path)
        # YAML values serve as defaults; env vars (already in *values*) win.
        for key, val in yaml_data.items():
            if key not in values or values[key] is None:
                values[key] = val
            elif isinstance(val, dict) and isinstance(values.get(key), dict):
                values[key] = {**val, **values[key]}
        return values

    @classmethod
    def from_yaml(cls, path: str | Path) -> Self:
        """Construct ``AppConfig`` loading defaults from a YAML file.

        Environment variables still override YAML values.
        """
        return cls(config_path=str(path))

    def configure_logging(self) -> None:
        """Apply ``log_level`` to the package logger (``DEBUG`` when ``debug`` is set)."""
        level = LogLevel.DEBUG if self.debug else self.log_level
        logging.getLogger(_PACKAGE_LOGGER).setLevel(level.value)

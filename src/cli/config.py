"""YAML configuration loader with env var resolution and Pydantic validation.

Loads config from (priority order):
1. --config <path> CLI flag
2. ./bulktag.yaml or ./bulktag.yml (working directory)
3. ~/.bulktag/config.yaml (user home)

Environment variables override YAML: BULKTAG_<SECTION>_<KEY>.
${VAR} references in YAML values resolve from environment at load time.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, field_validator

from src.services.job_models import ReplaceUsageMode

logger = logging.getLogger(__name__)

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


def resolve_env_vars(value: str) -> str:
    """Resolve ${VAR} references in a string from environment variables.

    Args:
        value: String potentially containing ${VAR} references.

    Returns:
        String with all ${VAR} references replaced by their env values.
        Missing env vars resolve to empty string.
    """
    def _replace(match: re.Match) -> str:
        return os.environ.get(match.group(1), "")

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _resolve_env_vars_recursive(data: Any) -> Any:
    """Recursively resolve ${VAR} references in a nested data structure."""
    if isinstance(data, str):
        return resolve_env_vars(data)
    elif isinstance(data, dict):
        return {k: _resolve_env_vars_recursive(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_resolve_env_vars_recursive(item) for item in data]
    return data


class DatabaseConfig(BaseModel):
    """State database settings. An empty url uses the default location."""

    url: str | None = None
    echo: bool = False


class ShopifyConfig(BaseModel):
    """Shopify Admin API credentials."""

    store_url: str = ""
    access_token: str = ""
    api_version: str = "2024-01"
    shop: str | None = None

    @property
    def tenant(self) -> str:
        """Tenant id for jobs; defaults to the normalized store url."""
        if self.shop:
            return self.shop
        url = self.store_url.replace("https://", "").replace("http://", "")
        return url.rstrip("/") or "default"


class EngineConfig(BaseModel):
    """Mutation engine tuning."""

    batch_size: int = 10
    pacing_interval_ms: int = 100
    call_timeout_seconds: float = 10.0
    job_deadline_seconds: float | None = None
    retry_attempts: int = 3
    retry_base_delay_ms: int = 200
    replace_usage_mode: ReplaceUsageMode = ReplaceUsageMode.legacy

    @field_validator("batch_size", "retry_attempts")
    @classmethod
    def at_least_one(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be >= 1")
        return value

    @field_validator("pacing_interval_ms", "retry_base_delay_ms")
    @classmethod
    def not_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must be >= 0")
        return value

    @field_validator("call_timeout_seconds", "job_deadline_seconds")
    @classmethod
    def positive(cls, value: float | None) -> float | None:
        if value is not None and value <= 0:
            raise ValueError("must be > 0")
        return value


class LoggingConfig(BaseModel):
    """Root logger settings."""

    level: str = "info"
    file: str | None = None


class BulkTagConfig(BaseModel):
    """Top-level configuration for the bulk tag tool."""

    database: DatabaseConfig = DatabaseConfig()
    shopify: ShopifyConfig = ShopifyConfig()
    engine: EngineConfig = EngineConfig()
    logging: LoggingConfig = LoggingConfig()


def _find_config_file() -> Path | None:
    """Search for config file in standard locations."""
    candidates = [
        Path.cwd() / "bulktag.yaml",
        Path.cwd() / "bulktag.yml",
        Path.home() / ".bulktag" / "config.yaml",
    ]
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return None


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Apply BULKTAG_<SECTION>_<KEY> env var overrides to config data.

    Matches section names by longest prefix. For example,
    ``BULKTAG_ENGINE_BATCH_SIZE`` maps to section ``engine``, field
    ``batch_size``.
    """
    prefix = "BULKTAG_"
    known_sections = sorted(
        BulkTagConfig.model_fields.keys(), key=len, reverse=True
    )
    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue
        suffix = key[len(prefix):].lower()
        matched_section = None
        matched_field = None
        for section in known_sections:
            section_prefix = section + "_"
            if suffix.startswith(section_prefix):
                matched_section = section
                matched_field = suffix[len(section_prefix):]
                break
        if matched_section is None or not matched_field:
            continue
        if matched_section not in data or data[matched_section] is None:
            data[matched_section] = {}
        if isinstance(data[matched_section], dict):
            # Raw string; pydantic converts it to the field's type
            data[matched_section][matched_field] = value
    return data


def load_config(config_path: str | None = None) -> BulkTagConfig | None:
    """Load configuration from YAML file with env var resolution.

    Args:
        config_path: Explicit path to config file. If None, searches
            standard locations (cwd, then ~/.bulktag/).

    Returns:
        Parsed and validated BulkTagConfig, or None if no config found.

    Raises:
        FileNotFoundError: If an explicit config_path does not exist.
    """
    if config_path:
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        path = _find_config_file()
        if path is None:
            return None

    logger.info("Loading config from %s", path)

    with open(path) as f:
        raw_data = yaml.safe_load(f) or {}

    data = _resolve_env_vars_recursive(raw_data)
    data = _apply_env_overrides(data)
    return BulkTagConfig(**data)


def resolve_config(config_path: str | None = None) -> BulkTagConfig:
    """Load config, falling back to defaults plus env overrides."""
    config = load_config(config_path)
    if config is None:
        config = BulkTagConfig(**_apply_env_overrides({}))
    return config


def masked_config(config: BulkTagConfig) -> dict[str, Any]:
    """Config as a dict with the access token masked for display."""
    data = config.model_dump(mode="json")
    token = data["shopify"].get("access_token")
    if token:
        data["shopify"]["access_token"] = f"{token[:4]}***" if len(token) > 8 else "***"
    return data

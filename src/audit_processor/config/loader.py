"""Configuration loader for the audit processing pipeline.

Values come from ``pipeline_config.yaml`` shipped with the package, or from
the file named by ``AUDIT_PROCESSOR_CONFIG``. A handful of deploy-time knobs
can be overridden per process through environment variables (see
``ENV_OVERRIDES``); override values are parsed as YAML scalars so ``8`` stays
an int and ``0.5`` a float.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional

import structlog
import yaml

from audit_processor.utils.error_handler import ConfigurationError

logger = structlog.get_logger(__name__)

CONFIG_FILE = Path(__file__).parent / "pipeline_config.yaml"
CONFIG_PATH_ENV = "AUDIT_PROCESSOR_CONFIG"

# dot-notation key -> environment variable
ENV_OVERRIDES = {
    "llm.model": "AUDIT_PROCESSOR_LLM_MODEL",
    "llm.timeout_seconds": "AUDIT_PROCESSOR_LLM_TIMEOUT",
    "cache.ttl_hours": "AUDIT_PROCESSOR_CACHE_TTL_HOURS",
    "record_store.api_url": "AIRTABLE_API_URL",
    "dispatch.max_workers": "AUDIT_PROCESSOR_WORKERS",
}


def config_path() -> Path:
    override = os.getenv(CONFIG_PATH_ENV, "").strip()
    return Path(override) if override else CONFIG_FILE


def _set_dotted(config: dict[str, Any], key: str, value: Any) -> None:
    *parents, leaf = key.split(".")
    node = config
    for part in parents:
        child = node.get(part)
        if not isinstance(child, dict):
            child = {}
            node[part] = child
        node = child
    node[leaf] = value


class ConfigLoader:
    """Loads and provides access to pipeline configuration."""

    _instance: Optional[ConfigLoader] = None
    _config: Optional[dict[str, Any]] = None

    def __new__(cls) -> ConfigLoader:
        """Singleton pattern - ensure only one config instance."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if self._config is None:
            self._load_config()

    def _load_config(self) -> None:
        path = config_path()
        if path.exists():
            with open(path) as f:
                loaded = yaml.safe_load(f) or {}
            if not isinstance(loaded, dict):
                raise ConfigurationError(
                    "Pipeline config must be a mapping",
                    details=f"{path}: {type(loaded).__name__}",
                )
            self._config = loaded
            logger.info("config_loaded", path=str(path))
        else:
            logger.warning("config_file_not_found", path=str(path))
            self._config = {}

        applied = self._apply_env_overrides()
        if applied:
            logger.info("config_env_overrides_applied", keys=applied)

    def _apply_env_overrides(self) -> list[str]:
        applied = []
        for key, env_name in ENV_OVERRIDES.items():
            raw = os.getenv(env_name, "").strip()
            if not raw:
                continue
            try:
                value = yaml.safe_load(raw)
            except yaml.YAMLError:
                value = raw
            _set_dotted(self._config, key, value)
            applied.append(key)
        return applied

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by dot-notation key.

        Examples:
            config.get("llm.model")
            config.get("record_store.audits_table")
            config.get("nonexistent.key", default=100)
        """
        if not self._config:
            return default

        value: Any = self._config
        for k in key.split("."):
            if not isinstance(value, dict):
                return default
            value = value.get(k)
            if value is None:
                return default
        return value

    def get_section(self, section: str) -> dict[str, Any]:
        """Get entire configuration section.

        Examples:
            config.get_section("record_store")
            config.get_section("cache")
        """
        value = self.get(section, default={})
        return value if isinstance(value, dict) else {}

    def reload(self) -> None:
        """Re-read the file and environment overrides."""
        self._config = None
        self._load_config()


_config = ConfigLoader()


def get_config() -> ConfigLoader:
    """Get the global config instance."""
    return _config


def get_llm_model() -> str:
    return _config.get("llm.model", "claude-sonnet-4-20250514")


def get_llm_max_tokens() -> int:
    return int(_config.get("llm.max_tokens", 8192))


def get_llm_temperature() -> float:
    return float(_config.get("llm.temperature", 0.0))


def get_llm_timeout() -> float:
    """Request-level timeout for one generative call, in seconds."""
    return float(_config.get("llm.timeout_seconds", 120))


def get_page_caps() -> tuple[int, int]:
    """Return (home_page_max_chars, secondary_page_max_chars)."""
    return (
        int(_config.get("analyzer.home_page_max_chars", 15000)),
        int(_config.get("analyzer.secondary_page_max_chars", 5000)),
    )


def get_cache_ttl_seconds() -> float:
    return float(_config.get("cache.ttl_hours", 24)) * 60 * 60


def get_evidence_prefix_chars() -> int:
    return int(_config.get("cache.evidence_prefix_chars", 200))


def get_record_store_config() -> dict[str, Any]:
    """Get record store section with defaults filled in."""
    section = _config.get_section("record_store")
    return {
        "api_url": section.get("api_url", "https://api.airtable.com/v0"),
        "audits_table": section.get("audits_table", "Audits"),
        "findings_table": section.get("findings_table", "Findings"),
        "timeout_seconds": float(section.get("timeout_seconds", 30)),
    }


def get_dispatch_workers() -> int:
    return int(_config.get("dispatch.max_workers", 4))

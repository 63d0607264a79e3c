"""Tests for the pipeline configuration loader."""
from __future__ import annotations

import pytest

from audit_processor.config.loader import (
    CONFIG_PATH_ENV,
    ENV_OVERRIDES,
    get_config,
    get_dispatch_workers,
    get_llm_model,
    get_record_store_config,
)
from audit_processor.utils.error_handler import ConfigurationError


@pytest.fixture
def config(monkeypatch):
    for env_name in [CONFIG_PATH_ENV, *ENV_OVERRIDES.values()]:
        monkeypatch.delenv(env_name, raising=False)
    loader = get_config()
    yield loader
    monkeypatch.undo()
    loader.reload()


class TestPackagedConfig:
    def test_defaults_from_packaged_file(self, config):
        config.reload()
        assert config.get("analyzer.home_page_max_chars") == 15000
        assert get_record_store_config()["findings_table"] == "Findings"

    def test_missing_key_returns_default(self, config):
        assert config.get("record_store.nope", default=7) == 7
        assert config.get("llm.model.deeper", default="x") == "x"

    def test_get_section(self, config):
        assert config.get_section("cache")["evidence_prefix_chars"] == 200
        assert config.get_section("llm.model") == {}
        assert config.get_section("missing") == {}


class TestOverrides:
    def test_env_override_parsed_as_scalar(self, config, monkeypatch):
        monkeypatch.setenv("AUDIT_PROCESSOR_WORKERS", "8")
        monkeypatch.setenv("AUDIT_PROCESSOR_LLM_MODEL", "claude-test")
        config.reload()
        assert config.get("dispatch.max_workers") == 8
        assert get_dispatch_workers() == 8
        assert get_llm_model() == "claude-test"

    def test_config_path_env(self, config, monkeypatch, tmp_path):
        custom = tmp_path / "pipeline.yaml"
        custom.write_text("record_store:\n  audits_table: StagingAudits\n", encoding="utf-8")
        monkeypatch.setenv(CONFIG_PATH_ENV, str(custom))
        config.reload()
        settings = get_record_store_config()
        assert settings["audits_table"] == "StagingAudits"
        assert settings["findings_table"] == "Findings"

    def test_override_creates_missing_section(self, config, monkeypatch, tmp_path):
        custom = tmp_path / "empty.yaml"
        custom.write_text("", encoding="utf-8")
        monkeypatch.setenv(CONFIG_PATH_ENV, str(custom))
        monkeypatch.setenv("AIRTABLE_API_URL", "http://localhost:8080/v0")
        config.reload()
        assert config.get("record_store.api_url") == "http://localhost:8080/v0"

    def test_non_mapping_file_rejected(self, config, monkeypatch, tmp_path):
        custom = tmp_path / "list.yaml"
        custom.write_text("- a\n- b\n", encoding="utf-8")
        monkeypatch.setenv(CONFIG_PATH_ENV, str(custom))
        with pytest.raises(ConfigurationError, match="mapping"):
            config.reload()

    def test_missing_file_yields_empty_config(self, config, monkeypatch, tmp_path):
        monkeypatch.setenv(CONFIG_PATH_ENV, str(tmp_path / "absent.yaml"))
        config.reload()
        assert config.get("llm.model") is None
        assert get_llm_model() == "claude-sonnet-4-20250514"

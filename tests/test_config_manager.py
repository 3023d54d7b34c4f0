"""
Unit tests for configuration management system.
"""

import json
import os
import time
from unittest.mock import patch

import pytest
import yaml

from rental_hub.models.config import Configuration
from rental_hub.services.config_manager import ConfigurationManager


class TestConfigurationManager:
    """Test ConfigurationManager functionality."""

    def create_config(self, temp_dir, config_data: dict, file_format: str = "yaml") -> str:
        """Write a configuration file into the temp directory."""
        path = temp_dir / f"config.{file_format}"
        with open(path, "w", encoding="utf-8") as f:
            if file_format == "json":
                json.dump(config_data, f, indent=2, ensure_ascii=False)
            else:
                yaml.dump(config_data, f, default_flow_style=False, allow_unicode=True)
        return str(path)

    def test_load_valid_yaml_config(self, temp_dir, sample_config_data):
        """Test loading valid YAML configuration."""
        manager = ConfigurationManager(self.create_config(temp_dir, sample_config_data))
        config = manager.load_config()

        assert isinstance(config, Configuration)
        assert config.llm_provider.type == "local"
        assert list(config.enabled_sources) == ["RENTAL591"]
        source = config.sources["RENTAL591"]
        assert source.max_pages == 2
        assert source.page_delay == 0
        assert source.filters == {"region": "1"}
        assert config.crawler.interval_minutes == 15
        assert config.crawler.stale_after_days == 5
        assert config.search.max_limit == 50
        assert config.logging.directory is None

    def test_load_valid_json_config(self, temp_dir, sample_config_data):
        """Test loading valid JSON configuration."""
        manager = ConfigurationManager(self.create_config(temp_dir, sample_config_data, "json"))
        config = manager.load_config()

        assert config.sources["RENTAL591"].max_pages == 2

    def test_defaults_for_omitted_sections(self, temp_dir):
        """Sections left out of the file get their defaults."""
        data = {
            "llm_provider": {"type": "local", "local": {"model": "llama3.1"}},
            "sources": {"RENTAL591": None},
        }
        config = ConfigurationManager(self.create_config(temp_dir, data)).load_config()

        assert config.sources["RENTAL591"].enabled is True
        assert config.sources["RENTAL591"].max_pages == 3
        assert config.crawler.interval_minutes == 30
        assert config.search.default_limit == 20
        assert config.database.url.startswith("sqlite:///")

    def test_filters_coerced_to_strings(self, temp_dir, sample_config_data):
        sample_config_data["sources"]["RENTAL591"]["filters"] = {"region": 1, "kind": 0}
        config = ConfigurationManager(self.create_config(temp_dir, sample_config_data)).load_config()

        assert config.sources["RENTAL591"].filters == {"region": "1", "kind": "0"}

    def test_environment_variable_expansion(self, temp_dir, sample_config_data):
        """Test environment variable expansion in configuration."""
        sample_config_data["llm_provider"] = {
            "type": "api",
            "api": {"provider": "openai", "model": "gpt-4o-mini", "api_key": "${TEST_LLM_KEY}"},
        }
        path = self.create_config(temp_dir, sample_config_data)

        with patch.dict(os.environ, {"TEST_LLM_KEY": "sk-expanded"}):
            config = ConfigurationManager(path).load_config()

        assert config.llm_provider.api["api_key"] == "sk-expanded"

    def test_embedded_environment_variable(self, temp_dir, sample_config_data):
        sample_config_data["database"]["url"] = "sqlite:///${TEST_DATA_DIR}/hub.db"
        path = self.create_config(temp_dir, sample_config_data)

        with patch.dict(os.environ, {"TEST_DATA_DIR": "/var/lib/hub"}):
            config = ConfigurationManager(path).load_config()

        assert config.database.url == "sqlite:////var/lib/hub/hub.db"

    def test_missing_environment_variable_names_variable(self, temp_dir, sample_config_data, monkeypatch):
        """A missing API key variable is reported by name."""
        sample_config_data["llm_provider"] = {
            "type": "api",
            "api": {"provider": "openai", "model": "gpt-4o-mini", "api_key": "${MISSING_TEST_KEY}"},
        }
        path = self.create_config(temp_dir, sample_config_data)

        monkeypatch.delenv("MISSING_TEST_KEY", raising=False)
        with pytest.raises(ValueError, match="MISSING_TEST_KEY"):
            ConfigurationManager(path).load_config()

    def test_missing_variable_in_unused_field_tolerated(self, temp_dir, sample_config_data, monkeypatch):
        sample_config_data["extraction"] = {"user_agent": "hub/${MISSING_UA_SUFFIX}"}
        path = self.create_config(temp_dir, sample_config_data)

        monkeypatch.delenv("MISSING_UA_SUFFIX", raising=False)
        config = ConfigurationManager(path).load_config()

        assert "MISSING_UA_SUFFIX" in config.extraction.user_agent

    def test_invalid_yaml(self, temp_dir):
        path = temp_dir / "config.yaml"
        path.write_text("sources: [unclosed", encoding="utf-8")

        with pytest.raises(ValueError, match="YAML"):
            ConfigurationManager(str(path)).load_config()

    def test_non_mapping_root(self, temp_dir):
        path = temp_dir / "config.yaml"
        path.write_text("- just\n- a list\n", encoding="utf-8")

        with pytest.raises(ValueError):
            ConfigurationManager(str(path)).load_config()

    def test_missing_file(self, temp_dir):
        with pytest.raises(FileNotFoundError):
            ConfigurationManager(str(temp_dir / "absent.yaml")).load_config()

    @pytest.mark.parametrize(
        "section,values,message",
        [
            ("sources", {"RENTAL591": {"enabled": False}}, "At least one source"),
            ("sources", {"RENTAL591": {"max_pages": 0}}, "max_pages"),
            ("sources", {"RENTAL591": {"max_pages": 51}}, "cannot exceed 50"),
            ("llm_provider", {"type": "cloud"}, "must be 'local' or 'api'"),
            ("llm_provider", {"type": "local", "local": {"model": "x"}, "fallback": "local"}, "fallback"),
            ("database", {"url": "not-a-url"}, "database URL"),
            ("search", {"default_limit": 200, "max_limit": 100}, "default_limit"),
            ("logging", {"level": "LOUD"}, "log level"),
            ("crawler", {"interval_minutes": 0}, "interval"),
        ],
    )
    def test_invalid_sections_rejected(self, temp_dir, sample_config_data, section, values, message):
        sample_config_data[section] = values
        path = self.create_config(temp_dir, sample_config_data)

        with pytest.raises(ValueError, match=message):
            ConfigurationManager(path).load_config()

    def test_get_config_caches(self, temp_dir, sample_config_data):
        manager = ConfigurationManager(self.create_config(temp_dir, sample_config_data))

        first = manager.get_config()

        assert manager.get_config() is first

    def test_reload_if_changed(self, temp_dir, sample_config_data):
        """A modified file is picked up; an unchanged one is not."""
        path = self.create_config(temp_dir, sample_config_data)
        manager = ConfigurationManager(path)
        manager.load_config()

        assert manager.reload_if_changed() is False

        sample_config_data["sources"]["RENTAL591"]["max_pages"] = 7
        self.create_config(temp_dir, sample_config_data)
        future = time.time() + 10
        os.utime(path, (future, future))

        assert manager.reload_if_changed() is True
        assert manager.get_config().sources["RENTAL591"].max_pages == 7

    def test_reload_keeps_last_good_config(self, temp_dir, sample_config_data):
        path = self.create_config(temp_dir, sample_config_data)
        manager = ConfigurationManager(path)
        original = manager.load_config()

        sample_config_data["logging"]["level"] = "LOUD"
        self.create_config(temp_dir, sample_config_data)
        future = time.time() + 10
        os.utime(path, (future, future))

        assert manager.reload_if_changed() is False
        assert manager.get_config() is original

    def test_validate_config_file(self, temp_dir, sample_config_data):
        manager = ConfigurationManager(self.create_config(temp_dir, sample_config_data))

        assert manager.validate_config_file(manager.config_path) is True

        with pytest.raises(ValueError, match="not found"):
            manager.validate_config_file(str(temp_dir / "absent.yaml"))

    def test_template_is_valid(self, temp_dir, mock_env_vars):
        """The shipped template loads once its variables are set."""
        manager = ConfigurationManager(str(temp_dir / "unused.yaml"))
        path = self.create_config(temp_dir, manager.get_config_template())

        config = ConfigurationManager(path).load_config()

        assert config.llm_provider.api["api_key"] == "test_openai_key"
        assert config.llm_provider.fallback == "local"

    def test_find_config_file_without_any(self, temp_dir, monkeypatch):
        monkeypatch.chdir(temp_dir)

        with pytest.raises(ValueError, match="No configuration file found"):
            ConfigurationManager()

    def test_find_config_file_in_config_directory(self, temp_dir, sample_config_data, monkeypatch):
        (temp_dir / "config").mkdir()
        self.create_config(temp_dir / "config", sample_config_data)
        monkeypatch.chdir(temp_dir)

        assert ConfigurationManager().config_path == "config/config.yaml"

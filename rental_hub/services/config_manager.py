"""
Configuration management system for the Taipei Rental Hub.
"""

import json
import os
import re
from typing import Any, Dict, Optional

import yaml

from ..models.config import (
    MISSING_ENV_PREFIX,
    Configuration,
    CrawlerConfig,
    DatabaseConfig,
    ExtractionConfig,
    LLMProviderConfig,
    LoggingConfig,
    SearchConfig,
    SourceConfig,
)

ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


class ConfigurationManager:
    """Manages loading, validation, and reloading of system configuration."""

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize the configuration manager.

        Args:
            config_path: Path to the configuration file. If None, uses default paths.
        """
        self.config_path = config_path or self._find_config_file()
        self._config: Optional[Configuration] = None
        self._last_modified: Optional[float] = None

    def _find_config_file(self) -> str:
        """Find the configuration file in standard locations."""
        possible_paths = [
            "config/config.yaml",
            "config/config.yml",
            "config/config.json",
            "config.yaml",
            "config.yml",
            "config.json",
        ]

        for path in possible_paths:
            if os.path.exists(path):
                return path

        if os.path.exists("config/config.example.yaml"):
            raise ValueError(
                "No configuration file found. Please copy 'config/config.example.yaml' "
                "to 'config/config.yaml' and customize it for your needs."
            )

        raise ValueError(
            "No configuration file found. Please create a configuration file "
            "at one of these locations: " + ", ".join(possible_paths)
        )

    def _read_raw(self, path: str) -> Dict[str, Any]:
        with open(path, "r", encoding="utf-8") as f:
            if path.endswith(".json"):
                raw_config = json.load(f)
            else:
                raw_config = yaml.safe_load(f)

        if raw_config is None:
            return {}
        if not isinstance(raw_config, dict):
            raise ValueError("Configuration root must be a mapping")
        return raw_config

    def load_config(self) -> Configuration:
        """
        Load configuration from file.

        Returns:
            Configuration object with validated settings.

        Raises:
            ValueError: If configuration is invalid or file cannot be read.
            FileNotFoundError: If configuration file doesn't exist.
        """
        if not os.path.exists(self.config_path):
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        try:
            raw_config = self._read_raw(self.config_path)
            raw_config = self._expand_env_vars(raw_config)
            config = self._parse_config(raw_config)
            config.validate()

            self._config = config
            self._last_modified = os.path.getmtime(self.config_path)

            return config

        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}")
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in configuration file: {e}")
        except Exception as e:
            raise ValueError(f"Error loading configuration: {e}")

    def _expand_env_vars(self, obj: Any) -> Any:
        """
        Recursively expand ${VAR_NAME} references.

        Unset variables become a recognisable placeholder so validation can
        report exactly which variable is missing, and only where it matters.
        """
        if isinstance(obj, dict):
            return {key: self._expand_env_vars(value) for key, value in obj.items()}
        elif isinstance(obj, list):
            return [self._expand_env_vars(item) for item in obj]
        elif isinstance(obj, str):
            return ENV_VAR_PATTERN.sub(self._env_value, obj)
        else:
            return obj

    @staticmethod
    def _env_value(match: "re.Match") -> str:
        var_name = match.group(1)
        value = os.getenv(var_name)
        if value is None:
            return f"{MISSING_ENV_PREFIX}{var_name}__"
        return value

    def _parse_config(self, raw_config: Dict[str, Any]) -> Configuration:
        """Parse raw configuration dictionary into Configuration object."""
        try:
            llm_data = raw_config.get("llm_provider") or {}
            llm_provider = LLMProviderConfig(
                type=llm_data.get("type", ""),
                local=llm_data.get("local"),
                api=llm_data.get("api"),
                fallback=llm_data.get("fallback"),
            )

            sources = {}
            for name, source_data in (raw_config.get("sources") or {}).items():
                source_data = source_data or {}
                sources[name] = SourceConfig(
                    name=name,
                    enabled=bool(source_data.get("enabled", True)),
                    max_pages=source_data.get("max_pages", 3),
                    page_delay=float(source_data.get("page_delay", 3.0)),
                    filters={
                        key: str(value)
                        for key, value in (source_data.get("filters") or {}).items()
                    },
                )

            database_data = raw_config.get("database") or {}
            crawler_data = raw_config.get("crawler") or {}
            extraction_data = raw_config.get("extraction") or {}
            search_data = raw_config.get("search") or {}
            logging_data = raw_config.get("logging") or {}

            return Configuration(
                llm_provider=llm_provider,
                sources=sources,
                database=DatabaseConfig(
                    url=database_data.get("url", DatabaseConfig.url),
                    echo=bool(database_data.get("echo", False)),
                ),
                crawler=CrawlerConfig(
                    interval_minutes=crawler_data.get("interval_minutes", 30),
                    run_on_start=bool(crawler_data.get("run_on_start", True)),
                    stale_after_days=crawler_data.get("stale_after_days", 7),
                ),
                extraction=ExtractionConfig(
                    timeout=extraction_data.get("timeout", 30),
                    max_page_chars=extraction_data.get("max_page_chars", 20000),
                    user_agent=extraction_data.get("user_agent", ExtractionConfig.user_agent),
                ),
                search=SearchConfig(
                    default_limit=search_data.get("default_limit", 20),
                    max_limit=search_data.get("max_limit", 100),
                    translation_timeout=search_data.get("translation_timeout", 30),
                ),
                logging=LoggingConfig(
                    level=logging_data.get("level", "INFO"),
                    directory=logging_data.get("directory", "logs"),
                ),
            )

        except KeyError as e:
            raise ValueError(f"Missing required configuration key: {e}")
        except Exception as e:
            raise ValueError(f"Error parsing configuration: {e}")

    def get_config(self) -> Configuration:
        """
        Get current configuration, loading if necessary.

        Returns:
            Current configuration object.
        """
        if self._config is None:
            return self.load_config()
        return self._config

    def reload_if_changed(self) -> bool:
        """
        Reload configuration if file has been modified.

        Returns:
            True if configuration was reloaded, False otherwise.
        """
        if not os.path.exists(self.config_path):
            return False

        current_modified = os.path.getmtime(self.config_path)

        if self._last_modified is None or current_modified > self._last_modified:
            try:
                self.load_config()
                return True
            except ValueError:
                # keep the last good configuration
                return False

        return False

    def validate_config_file(self, config_path: str) -> bool:
        """
        Validate a configuration file without loading it.

        Args:
            config_path: Path to configuration file to validate.

        Returns:
            True if configuration is valid.

        Raises:
            ValueError: If configuration is invalid with detailed error message.
        """
        if not os.path.exists(config_path):
            raise ValueError(f"Configuration file not found: {config_path}")

        try:
            raw_config = self._expand_env_vars(self._read_raw(config_path))
            config = self._parse_config(raw_config)
            config.validate()
            return True

        except Exception as e:
            raise ValueError(f"Configuration validation failed: {e}")

    def get_config_template(self) -> Dict[str, Any]:
        """
        Get a template configuration dictionary.

        Returns:
            Dictionary with example configuration structure.
        """
        return {
            "database": {"url": "sqlite:///data/rental_hub.db", "echo": False},
            "llm_provider": {
                "type": "api",
                "api": {
                    "provider": "openai",
                    "api_key": "${OPENAI_API_KEY}",
                    "model": "gpt-4o-mini",
                },
                "local": {
                    "model": "llama3.1",
                    "base_url": "http://localhost:11434",
                },
                "fallback": "local",
            },
            "sources": {
                "RENTAL591": {
                    "enabled": True,
                    "max_pages": 3,
                    "page_delay": 3.0,
                    "filters": {"region": "1", "kind": "0"},
                },
            },
            "crawler": {"interval_minutes": 30, "run_on_start": True, "stale_after_days": 7},
            "extraction": {"timeout": 30, "max_page_chars": 20000},
            "search": {"default_limit": 20, "max_limit": 100, "translation_timeout": 30},
            "logging": {"level": "INFO", "directory": "logs"},
        }

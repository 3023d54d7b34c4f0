"""
Configuration models for the system.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from urllib.parse import urlparse

MISSING_ENV_PREFIX = "__MISSING_ENV_VAR_"


@dataclass
class LLMProviderConfig:
    """Configuration for LLM provider."""

    type: str  # "local" or "api"
    local: Optional[Dict[str, Any]] = None
    api: Optional[Dict[str, Any]] = None
    fallback: Optional[str] = None  # the other type, tried when the primary fails

    def _validate_local(self):
        if not self.local:
            raise ValueError("Local LLM configuration required when type is 'local'")

        if "model" not in self.local:
            raise ValueError("Local LLM configuration must include 'model'")

        base_url = self.local.get("base_url")
        if base_url:
            parsed_url = urlparse(base_url)
            if not parsed_url.scheme or not parsed_url.netloc:
                raise ValueError(f"Invalid local LLM base_url: {base_url}")

    def _validate_api(self):
        if not self.api:
            raise ValueError("API LLM configuration required when type is 'api'")

        if "provider" not in self.api:
            raise ValueError("API LLM configuration must include 'provider'")

        if "model" not in self.api:
            raise ValueError("API LLM configuration must include 'model'")

        valid_providers = ["openai", "anthropic"]
        if self.api["provider"] not in valid_providers:
            raise ValueError(f"API provider must be one of: {valid_providers}")

        # Validate API key is present and not a placeholder
        api_key = self.api.get("api_key", "")
        if not api_key or api_key.startswith(MISSING_ENV_PREFIX):
            missing_var = (
                api_key.replace(MISSING_ENV_PREFIX, "").replace("__", "")
                if api_key.startswith(MISSING_ENV_PREFIX)
                else "API_KEY"
            )
            raise ValueError(
                "API key is required when using API-based LLM provider. "
                f"Please set the {missing_var} environment variable."
            )

    def validate(self) -> bool:
        """Validate LLM provider configuration."""
        if not self.type:
            raise ValueError("LLM provider type cannot be empty")

        if self.type not in ["local", "api"]:
            raise ValueError("LLM provider type must be 'local' or 'api'")

        if self.type == "local":
            self._validate_local()
        else:
            self._validate_api()

        if self.fallback is not None:
            if self.fallback == self.type or self.fallback not in ["local", "api"]:
                raise ValueError("LLM fallback must be the other provider type")
            if self.fallback == "local":
                self._validate_local()
            else:
                self._validate_api()

        return True


@dataclass
class DatabaseConfig:
    """Configuration for the listing store."""

    url: str = "sqlite:///data/rental_hub.db"
    echo: bool = False

    def validate(self) -> bool:
        if not self.url or "://" not in self.url:
            raise ValueError(f"Invalid database URL: {self.url!r}")
        return True


@dataclass
class SourceConfig:
    """Configuration for one listing source."""

    name: str
    enabled: bool = True
    max_pages: int = 3
    page_delay: float = 3.0
    filters: Dict[str, str] = field(default_factory=dict)

    def validate(self) -> bool:
        if not self.name or not self.name.strip():
            raise ValueError("Source name cannot be empty")

        if not isinstance(self.max_pages, int) or self.max_pages <= 0:
            raise ValueError(f"Source {self.name}: max_pages must be a positive integer")

        if self.max_pages > 50:
            raise ValueError(f"Source {self.name}: max_pages cannot exceed 50")

        if self.page_delay < 0:
            raise ValueError(f"Source {self.name}: page_delay cannot be negative")

        return True


@dataclass
class CrawlerConfig:
    """Scheduling configuration for crawl runs."""

    interval_minutes: int = 30
    run_on_start: bool = True
    stale_after_days: int = 7

    def validate(self) -> bool:
        if not isinstance(self.interval_minutes, int) or self.interval_minutes <= 0:
            raise ValueError("Crawler interval must be a positive integer of minutes")

        if not isinstance(self.stale_after_days, int) or self.stale_after_days <= 0:
            raise ValueError("stale_after_days must be a positive integer")

        return True


@dataclass
class ExtractionConfig:
    """Configuration for the page extraction service."""

    timeout: int = 30
    max_page_chars: int = 20000
    user_agent: str = "Mozilla/5.0 (compatible; RentalHub/0.1)"

    def validate(self) -> bool:
        if self.timeout <= 0:
            raise ValueError("Extraction timeout must be positive")

        if self.max_page_chars < 1000:
            raise ValueError("max_page_chars must be at least 1000")

        return True


@dataclass
class SearchConfig:
    """Configuration for the search surface."""

    default_limit: int = 20
    max_limit: int = 100
    translation_timeout: int = 30

    def validate(self) -> bool:
        if self.default_limit <= 0 or self.max_limit <= 0:
            raise ValueError("Search limits must be positive")

        if self.default_limit > self.max_limit:
            raise ValueError("default_limit cannot exceed max_limit")

        if self.translation_timeout <= 0:
            raise ValueError("translation_timeout must be positive")

        return True


@dataclass
class LoggingConfig:
    """Configuration for logging output."""

    level: str = "INFO"
    directory: Optional[str] = "logs"

    def validate(self) -> bool:
        if self.level.upper() not in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
            raise ValueError(f"Invalid log level: {self.level}")
        return True


@dataclass
class Configuration:
    """System configuration."""

    llm_provider: LLMProviderConfig
    sources: Dict[str, SourceConfig]
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    crawler: CrawlerConfig = field(default_factory=CrawlerConfig)
    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def enabled_sources(self) -> Dict[str, SourceConfig]:
        return {name: source for name, source in self.sources.items() if source.enabled}

    def validate(self) -> bool:
        """Validate system configuration."""
        if not isinstance(self.sources, dict):
            raise ValueError("Sources must be a mapping of source name to settings")

        if not self.enabled_sources:
            raise ValueError("At least one source must be enabled")

        for source in self.sources.values():
            source.validate()

        self.llm_provider.validate()
        self.database.validate()
        self.crawler.validate()
        self.extraction.validate()
        self.search.validate()
        self.logging.validate()

        return True

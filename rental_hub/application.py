"""
Application wiring for the Taipei Rental Hub.

Builds every component from the configuration in dependency order and owns
their lifecycle: one-shot crawls, scheduled crawling with graceful
shutdown, and the search surface.
"""

import asyncio
import signal
import sys
from datetime import datetime
from typing import Any, Dict, Optional

from .components.extraction_service import LLMExtractionService
from .components.filter_engine import FilterEngine
from .components.llm_clients import LLMProvider, create_llm_provider
from .components.merge_engine import MergeEngine
from .components.notification_dispatcher import NotificationDispatcher
from .components.query_translator import QueryTranslator
from .components.source_adapters import ADAPTER_TYPES
from .models.config import Configuration
from .models.crawl import CrawlOptions, RunSummary
from .orchestrator import CrawlOrchestrator
from .services.config_manager import ConfigurationManager
from .services.database import Database
from .services.listing_store import ListingStore
from .services.run_store import CrawlRunStore
from .services.search_service import SearchService
from .utils.error_handling import (
    ErrorCategory,
    ErrorSeverity,
    get_error_tracker,
    with_error_handling,
)
from .utils.logging import get_logger, setup_logging


class RentalHubApplication:
    """
    Coordinates all system components.

    Either pass a ready Configuration or a path the ConfigurationManager
    can load it from.
    """

    def __init__(
        self,
        config_path: Optional[str] = None,
        config: Optional[Configuration] = None,
        provider: Optional[LLMProvider] = None,
    ):
        self.config_path = config_path
        self.config = config
        self.logger = get_logger("application")
        self.error_tracker = get_error_tracker()

        self._stop_event = asyncio.Event()
        self._startup_time: Optional[datetime] = None
        self._component_health: Dict[str, bool] = {}

        self.provider: Optional[LLMProvider] = provider
        self.database: Optional[Database] = None
        self.listing_store: Optional[ListingStore] = None
        self.run_store: Optional[CrawlRunStore] = None
        self.merge_engine: Optional[MergeEngine] = None
        self.crawler: Optional[CrawlOrchestrator] = None
        self.search_service: Optional[SearchService] = None

    @with_error_handling(
        component="application",
        category=ErrorCategory.CONFIGURATION,
        severity=ErrorSeverity.CRITICAL,
        fallback_value=False,
        suppress_exceptions=True,
    )
    async def initialize(self) -> bool:
        """
        Load configuration and build all components.

        Returns:
            True if initialization successful, False otherwise.
        """
        if self.config is None:
            self.config = ConfigurationManager(self.config_path).load_config()

        setup_logging(log_dir=self.config.logging.directory, log_level=self.config.logging.level)
        self.logger = get_logger("application")
        self.logger.info("Initializing Taipei Rental Hub...")

        self._initialize_components()

        self._startup_time = datetime.now()
        self.logger.info(
            "System initialization completed",
            {"sources": sorted(self.crawler.adapters), "components": sorted(self._component_health)},
        )
        return True

    def _initialize_components(self):
        config = self.config

        self.database = Database(config.database.url, echo=config.database.echo)
        self.database.create_tables()
        self.listing_store = ListingStore(self.database)
        self.run_store = CrawlRunStore(self.database)
        self._component_health["database"] = True

        if self.provider is None:
            self.provider = create_llm_provider(config.llm_provider)
        self._component_health["llm_provider"] = True

        dispatcher = NotificationDispatcher(favorites=self.listing_store, sink=self.listing_store)
        self.merge_engine = MergeEngine(self.listing_store, dispatcher=dispatcher)
        self._component_health["merge_engine"] = True

        adapters = {}
        default_options = {}
        for name, source in config.enabled_sources.items():
            adapter_type = ADAPTER_TYPES.get(name)
            if adapter_type is None:
                self.logger.warning(f"No adapter available for source {name}, skipping")
                continue
            adapters[name] = adapter_type(
                LLMExtractionService(self.provider, config.extraction),
                page_delay=source.page_delay,
            )
            default_options[name] = CrawlOptions(max_pages=source.max_pages, filters=dict(source.filters))

        if not adapters:
            raise ValueError("None of the enabled sources has an adapter")

        self.crawler = CrawlOrchestrator(adapters, self.merge_engine, self.run_store, default_options)
        self._component_health["crawler"] = True

        translator = QueryTranslator(self.provider, timeout=config.search.translation_timeout)
        filter_engine = FilterEngine(self.database, self.listing_store, max_limit=config.search.max_limit)
        self.search_service = SearchService(
            filter_engine,
            translator,
            self.listing_store,
            default_limit=config.search.default_limit,
        )
        self._component_health["search"] = True

    def _setup_signal_handlers(self):
        """Route SIGINT/SIGTERM to a graceful stop."""
        loop = asyncio.get_running_loop()
        signals = [signal.SIGINT, signal.SIGTERM] if sys.platform != "win32" else [signal.SIGINT]
        for signum in signals:
            try:
                loop.add_signal_handler(signum, self._signal_handler, signum)
            except (NotImplementedError, RuntimeError):
                signal.signal(signum, lambda received, frame: self._signal_handler(received))

    def _signal_handler(self, signum: int):
        self.logger.info("Received shutdown signal, stopping after current pages", {"signal": signum})
        self._stop_event.set()

    def request_stop(self):
        self._stop_event.set()

    async def run_once(self, source_options: Optional[Dict[str, Any]] = None) -> RunSummary:
        """One crawl of every enabled source (or the given ones)."""
        return await self.crawler.crawl_all(source_options, cancel_event=self._stop_event)

    async def run_scheduled(self):
        """Crawl on the configured interval until a shutdown signal arrives."""
        self._setup_signal_handlers()
        crawler_config = self.config.crawler

        stale_task = asyncio.create_task(self._stale_sweep_loop())
        try:
            await self.crawler.run_scheduled(
                interval_seconds=crawler_config.interval_minutes * 60,
                stop_event=self._stop_event,
                run_immediately=crawler_config.run_on_start,
            )
        finally:
            stale_task.cancel()
            await asyncio.gather(stale_task, return_exceptions=True)

    async def _stale_sweep_loop(self):
        """Daily soft-deactivation of listings no crawl has seen lately."""
        while not self._stop_event.is_set():
            self.deactivate_stale()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=24 * 60 * 60)
            except asyncio.TimeoutError:
                continue

    def deactivate_stale(self, days: Optional[int] = None) -> int:
        days = days or self.config.crawler.stale_after_days
        count = self.listing_store.deactivate_stale(days)
        self.logger.info("Deactivated stale listings", {"count": count, "older_than_days": days})
        return count

    async def shutdown(self):
        """Release the model client and database connections."""
        self.logger.info("Initiating graceful shutdown...")
        self._stop_event.set()

        try:
            if self.provider is not None:
                await self.provider.close()
            if self.database is not None:
                self.database.dispose()

            uptime = datetime.now() - self._startup_time if self._startup_time else None
            self.logger.info(f"System shutdown complete. Uptime: {uptime}")

        except Exception as e:
            self.logger.error(f"Error during shutdown: {e}", exc_info=True)

    def get_system_status(self) -> Dict[str, Any]:
        """Current system status information."""
        return {
            "startup_time": self._startup_time.isoformat() if self._startup_time else None,
            "uptime": str(datetime.now() - self._startup_time) if self._startup_time else None,
            "component_health": self._component_health.copy(),
            "config_loaded": self.config is not None,
            "crawler": self.crawler.get_status() if self.crawler else None,
            "errors": self.error_tracker.get_error_stats(),
        }

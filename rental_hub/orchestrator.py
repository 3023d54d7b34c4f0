"""
Crawl orchestrator for the Taipei Rental Hub.

Drives every registered source adapter through one crawl run, merging each
page before the next is requested and recording the run's lifecycle. Runs
can be triggered once or on a fixed interval; sources are isolated from
each other so one failing site never stops the rest.
"""

import asyncio
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Set, Tuple, Union

from .components.normalizer import normalize_record
from .interfaces import IMergeEngine, ISourceAdapter
from .models.crawl import (
    CrawlOptions,
    CrawlRun,
    CrawlStatus,
    FailureKind,
    PageResult,
    RunLogFilter,
    RunSummary,
    SourceRunResult,
)
from .services.run_store import CrawlRunStore
from .utils.error_handling import (
    ErrorCategory,
    ErrorSeverity,
    ExtractionFailure,
    NavigationFailure,
    get_error_tracker,
    with_error_handling,
)
from .utils.logging import get_logger

OptionsInput = Union[CrawlOptions, Dict[str, Any], None]


class CrawlOrchestrator:
    """
    Runs crawls for an explicit map of source adapters.

    A source has at most one crawl in flight inside this process; a request
    for a source that is already running is skipped rather than queued.
    """

    def __init__(
        self,
        adapters: Dict[str, ISourceAdapter],
        merge_engine: IMergeEngine,
        run_store: CrawlRunStore,
        default_options: Optional[Dict[str, CrawlOptions]] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.adapters = dict(adapters)
        self.merge_engine = merge_engine
        self.run_store = run_store
        self.default_options = dict(default_options or {})
        self.clock = clock

        self.logger = get_logger("crawler.orchestrator")
        self.error_tracker = get_error_tracker()
        self._active: Set[str] = set()

    @property
    def active_sources(self) -> Set[str]:
        return set(self._active)

    def _resolve_targets(
        self, source_options: Optional[Dict[str, OptionsInput]]
    ) -> Tuple[Dict[str, CrawlOptions], Dict[str, str]]:
        """Options per known source, plus an error per request that cannot run."""
        if source_options is None:
            requested: Dict[str, OptionsInput] = {name: None for name in self.adapters}
        else:
            requested = dict(source_options)

        targets: Dict[str, CrawlOptions] = {}
        rejected: Dict[str, str] = {}
        for name, options in requested.items():
            if name not in self.adapters:
                rejected[name] = f"Unknown source: {name}"
                continue
            try:
                if isinstance(options, CrawlOptions):
                    resolved = options
                elif options is None:
                    resolved = self.default_options.get(name, CrawlOptions())
                else:
                    resolved = CrawlOptions.from_dict(options)
                resolved.validate()
            except (TypeError, ValueError) as e:
                rejected[name] = f"Invalid options for {name}: {e}"
                continue
            targets[name] = resolved

        return targets, rejected

    async def crawl_all(
        self,
        source_options: Optional[Dict[str, OptionsInput]] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> RunSummary:
        """
        Crawl each requested source once, concurrently.

        Args:
            source_options: Options per source name; None crawls every registered
                source with its default options
            cancel_event: When set, adapters stop requesting further pages

        Returns:
            RunSummary across all requested sources
        """
        targets, rejected = self._resolve_targets(source_options)
        summary = RunSummary()

        for name, message in rejected.items():
            self.logger.warning(message)
            summary.add(SourceRunResult(source=name, status=None, error=message))

        results = await asyncio.gather(
            *(self.run_source(name, options, cancel_event) for name, options in targets.items())
        )
        for result in results:
            summary.add(result)

        self.logger.info("Crawl invocation finished", summary.to_dict())
        return summary

    async def run_source(
        self,
        source: str,
        options: Optional[CrawlOptions] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> SourceRunResult:
        """
        One crawl run of one source, from RUNNING to its terminal status.

        Never raises for source failures; those end the run as FAILED.
        Task cancellation ends the run as INTERRUPTED and is re-raised.
        """
        if source not in self.adapters:
            return SourceRunResult(source=source, status=None, error=f"Unknown source: {source}")

        if source in self._active:
            self.logger.info("Source already crawling, skipping this request", {"source": source})
            return SourceRunResult(source=source, status=None, skipped=True)

        adapter = self.adapters[source]
        options = options or self.default_options.get(source, CrawlOptions())
        result = SourceRunResult(source=source, status=CrawlStatus.RUNNING)
        self._active.add(source)

        try:
            run = self.run_store.create_run(source, self.clock())
            result.run_id = run.id
            self.logger.info("Crawl run started", {"source": source, "run_id": run.id, "max_pages": options.max_pages})

            interrupted = await self._consume_pages(adapter, options, cancel_event, result)
            status = CrawlStatus.INTERRUPTED if interrupted else CrawlStatus.COMPLETED
            self._finalize(result, status, error_message=result.note)

        except asyncio.CancelledError:
            self._finalize(result, CrawlStatus.INTERRUPTED, error_message="Crawl cancelled")
            raise

        except Exception as e:
            result.error = str(e) or type(e).__name__
            self.error_tracker.record_error(
                component="crawler.orchestrator",
                category=self._categorize(e),
                severity=ErrorSeverity.HIGH,
                message=f"Crawl of {source} failed: {result.error}",
                exception=e,
                context={"source": source, "run_id": result.run_id},
            )
            self._finalize(result, CrawlStatus.FAILED, error_message=result.error)

        finally:
            self._active.discard(source)

        return result

    async def _consume_pages(
        self,
        adapter: ISourceAdapter,
        options: CrawlOptions,
        cancel_event: Optional[asyncio.Event],
        result: SourceRunResult,
    ) -> bool:
        """Merge pages in order. Returns True when stopped by cancellation."""
        pages = adapter.crawl(options, cancel_event)
        try:
            async for page in pages:
                if page.failed:
                    if page.is_fatal:
                        raise self._page_error(page)
                    result.note = f"Stopped at page {page.page_number}: {page.error_message}"
                    self.logger.warning(result.note, {"source": result.source})
                    break

                await self._merge_page(adapter, page, result)

                if cancel_event is not None and cancel_event.is_set():
                    break
        finally:
            await pages.aclose()

        return cancel_event is not None and cancel_event.is_set()

    async def _merge_page(self, adapter: ISourceAdapter, page: PageResult, result: SourceRunResult):
        for raw in page.records:
            result.total_found += 1
            listing = normalize_record(raw, adapter.source, adapter.origin)
            try:
                listing.validate()
            except ValueError as e:
                result.skipped_records += 1
                self.logger.warning(
                    f"Skipping invalid record: {e}",
                    {"source": adapter.source, "page": page.page_number, "title": raw.title},
                )
                continue

            upsert = await self.merge_engine.upsert(listing)
            if upsert.is_new:
                result.new_count += 1
            else:
                result.updated_count += 1
            if upsert.price_changed:
                result.price_changes += 1

    @staticmethod
    def _page_error(page: PageResult) -> Exception:
        if page.failure is FailureKind.NAVIGATION:
            return NavigationFailure(page.error_message or "Navigation failed")
        return ExtractionFailure(page.error_message or "Extraction failed")

    @staticmethod
    def _categorize(error: Exception) -> ErrorCategory:
        if isinstance(error, NavigationFailure):
            return ErrorCategory.NETWORK
        if isinstance(error, ExtractionFailure):
            return ErrorCategory.EXTRACTION
        return ErrorCategory.SYSTEM

    def _finalize(self, result: SourceRunResult, status: CrawlStatus, error_message: Optional[str] = None):
        result.status = status
        if result.run_id is None:
            return

        self.run_store.finalize_run(
            result.run_id,
            status,
            completed_at=self.clock(),
            total_found=result.total_found,
            new_count=result.new_count,
            updated_count=result.updated_count,
            error_message=error_message,
        )
        self.logger.info(
            f"Crawl run {status.value.lower()}",
            {"source": result.source, **result.to_dict()},
        )

    # Scheduled mode

    async def run_scheduled(
        self,
        interval_seconds: float,
        stop_event: asyncio.Event,
        source_options: Optional[Dict[str, OptionsInput]] = None,
        run_immediately: bool = True,
    ):
        """
        Crawl on a fixed interval until stop_event is set.

        Each tick starts a crawl of every requested source; a source whose
        previous crawl is still running is skipped for that tick. On stop,
        in-flight crawls stop requesting pages, finish merging and end as
        INTERRUPTED.
        """
        self.logger.info(
            "Scheduled crawling started",
            {"interval_seconds": interval_seconds, "sources": list(source_options or self.adapters)},
        )
        in_flight: Set[asyncio.Task] = set()
        first_tick = run_immediately

        try:
            while not stop_event.is_set():
                if not first_tick and await self._wait_or_stop(stop_event, interval_seconds):
                    break
                first_tick = False

                task = asyncio.create_task(self._scheduled_tick(source_options, stop_event))
                in_flight.add(task)
                task.add_done_callback(in_flight.discard)

                if await self._wait_or_stop(stop_event, interval_seconds):
                    break
                first_tick = True
        finally:
            if not stop_event.is_set():
                # cancelled from outside
                for task in in_flight:
                    task.cancel()
            if in_flight:
                await asyncio.gather(*in_flight, return_exceptions=True)
            self.logger.info("Scheduled crawling stopped")

    @staticmethod
    async def _wait_or_stop(stop_event: asyncio.Event, timeout: float) -> bool:
        """Sleep up to timeout; True if stop_event fired meanwhile."""
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    @with_error_handling(
        component="crawler.orchestrator",
        category=ErrorCategory.SYSTEM,
        severity=ErrorSeverity.HIGH,
        suppress_exceptions=True,
    )
    async def _scheduled_tick(self, source_options, stop_event: asyncio.Event) -> Optional[RunSummary]:
        return await self.crawl_all(source_options, cancel_event=stop_event)

    # Run queries

    def get_run(self, run_id: int) -> CrawlRun:
        return self.run_store.get_run(run_id)

    def get_run_logs(self, run_filter: Optional[RunLogFilter] = None, page: int = 1, limit: int = 20) -> Dict[str, Any]:
        runs, total = self.run_store.list_runs(run_filter, page=page, limit=limit)
        return {
            "logs": [run.to_dict() for run in runs],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": -(-total // limit),
            },
        }

    def get_run_stats(self) -> Dict[str, Any]:
        return self.run_store.run_stats(now=self.clock())

    def get_status(self) -> Dict[str, Any]:
        running = self.run_store.running_runs()
        latest = self.run_store.latest_run()
        return {
            "isRunning": bool(self._active) or bool(running),
            "activeSources": sorted(self._active),
            "runningCrawlers": [run.to_dict() for run in running],
            "lastRun": latest.to_dict() if latest else None,
        }

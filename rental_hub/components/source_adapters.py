"""
Source adapters.

Each adapter knows how to page through one listing site. The shared
pagination loop lives in BaseSourceAdapter; concrete adapters supply the
page URLs and the extraction instructions for their site.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import AsyncIterator, Dict, Optional
from urllib.parse import urlencode

from ..interfaces import IExtractionService
from ..models.crawl import CrawlOptions, FailureKind, PageResult
from ..models.listing import RawRecord
from ..utils.error_handling import ExtractionFailure, NavigationFailure
from ..utils.logging import get_logger


class BaseSourceAdapter(ABC):
    """
    Pagination loop shared by all sources.

    ``crawl`` is an async generator: the next page is only requested after
    the consumer has finished with the previous one. Pagination ends on an
    empty page, when no next page is offered, at ``max_pages``, on a failed
    page, or once the cancellation event is set.
    """

    source: str = ""
    origin: str = ""
    default_filters: Dict[str, str] = {}

    def __init__(self, extraction_service: IExtractionService, page_delay: float = 3.0):
        self.extraction_service = extraction_service
        self.page_delay = page_delay
        self.logger = get_logger("crawler.adapter", {"source": self.source})

    @abstractmethod
    def build_page_url(self, options: CrawlOptions, page: int) -> str:
        """URL of the given 1-based result page."""
        pass

    @property
    @abstractmethod
    def instructions(self) -> str:
        """Extraction instructions for this site's result pages."""
        pass

    async def crawl(
        self, options: CrawlOptions, cancel_event: Optional[asyncio.Event] = None
    ) -> AsyncIterator[PageResult]:
        options.validate()

        async with self.extraction_service:
            page = 1
            while page <= options.max_pages:
                if cancel_event is not None and cancel_event.is_set():
                    self.logger.info("Cancellation requested, not requesting further pages", {"page": page})
                    return

                result = await self._crawl_page(options, page)
                yield result

                if result.failed:
                    return
                if not result.records:
                    self.logger.info("Empty page, pagination finished", {"page": page})
                    return
                if not result.has_next:
                    self.logger.info("No further page offered", {"page": page})
                    return

                page += 1
                if page <= options.max_pages:
                    await self._pause(cancel_event)

    async def _pause(self, cancel_event: Optional[asyncio.Event]):
        """Fixed delay between pages, cut short by cancellation."""
        if self.page_delay <= 0:
            return
        if cancel_event is None:
            await asyncio.sleep(self.page_delay)
            return
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=self.page_delay)
        except asyncio.TimeoutError:
            pass

    async def _crawl_page(self, options: CrawlOptions, page: int) -> PageResult:
        url = self.build_page_url(options, page)
        self.logger.info(f"Crawling page {page}", {"url": url})

        try:
            await self.extraction_service.navigate(url)
        except NavigationFailure as e:
            self.logger.warning(f"Navigation failed on page {page}: {e}", {"url": url})
            return PageResult(page_number=page, failure=FailureKind.NAVIGATION, error_message=str(e))

        try:
            items = await self.extraction_service.extract(self.instructions)
            has_next = await self.extraction_service.has_next_page()
        except ExtractionFailure as e:
            self.logger.warning(f"Extraction failed on page {page}: {e}", {"url": url})
            return PageResult(page_number=page, failure=FailureKind.EXTRACTION, error_message=str(e))

        try:
            records = [RawRecord.from_dict(item) for item in items]
        except (AttributeError, TypeError, ValueError) as e:
            self.logger.warning(f"Malformed record on page {page}: {e}", {"url": url})
            return PageResult(
                page_number=page, failure=FailureKind.EXTRACTION, error_message=f"Malformed record: {e}"
            )

        self.logger.info(
            f"Extracted {len(records)} records from page {page}",
            {"page": page, "records": len(records), "has_next": has_next},
        )
        return PageResult(page_number=page, records=records, has_next=has_next)


class Rental591Adapter(BaseSourceAdapter):
    """Adapter for rent.591.com.tw search results."""

    source = "RENTAL591"
    origin = "https://rent.591.com.tw"
    default_filters = {"region": "1", "kind": "0"}
    page_size = 30

    def build_page_url(self, options: CrawlOptions, page: int) -> str:
        params = {**self.default_filters, **options.filters}
        params = {key: value for key, value in params.items() if value not in (None, "")}
        params["firstRow"] = (page - 1) * self.page_size
        params["order"] = "posttime"
        params["orderType"] = "desc"
        return f"{self.origin}/?{urlencode(params)}"

    @property
    def instructions(self) -> str:
        return (
            "從這個 591 租屋搜尋結果頁面擷取所有租屋物件。"
            "每個物件請提供標題、月租金、押金、完整地址、行政區、鄰近捷運站、坪數、格局、"
            "樓層與總樓層、特色標籤、圖片網址、聯絡人與電話、物件詳細頁網址，"
            "以及網址中的物件編號 (sourceId)。"
        )


ADAPTER_TYPES = {Rental591Adapter.source: Rental591Adapter}

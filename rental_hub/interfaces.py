"""
Protocol interfaces for the Taipei Rental Hub.

This module defines the protocol interfaces that establish system
boundaries and enable dependency injection throughout the application.
"""

import asyncio
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol

from .models.crawl import CrawlOptions, PageResult
from .models.criteria import Criteria
from .models.listing import Listing, UpsertResult
from .models.notification import FanOutResult, Notification
from .models.search import SearchResult


class IExtractionService(Protocol):
    """Black-box page fetching and structured extraction."""

    async def __aenter__(self) -> "IExtractionService":
        ...

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        ...

    async def navigate(self, url: str) -> None:
        """Load a page. Raises NavigationFailure."""
        ...

    async def extract(self, instructions: str) -> List[Dict[str, Any]]:
        """Structured records of the current page. Raises ExtractionFailure."""
        ...

    async def has_next_page(self) -> bool:
        """Whether the current page offers a further page."""
        ...


class ISourceAdapter(Protocol):
    """Per-source crawler producing pages of raw records."""

    source: str
    origin: str

    def crawl(
        self, options: CrawlOptions, cancel_event: Optional[asyncio.Event] = None
    ) -> AsyncIterator[PageResult]:
        """Lazily yield pages until the source is exhausted or a limit is hit."""
        ...


class IPriceChangeDispatcher(Protocol):
    """Fan-out of price changes to interested users."""

    async def notify_price_change(self, listing: Listing, old_price: int, new_price: int) -> FanOutResult:
        ...


class IMergeEngine(Protocol):
    """Idempotent upsert of canonical listings."""

    async def upsert(self, listing: Listing) -> UpsertResult:
        ...


class IFavoriteLookup(Protocol):
    """Read-only view of which users favorited a listing."""

    def favorite_user_ids(self, listing_id: int) -> List[str]:
        ...


class INotificationSink(Protocol):
    """Create-only notification storage."""

    def create_notification(self, notification: Notification) -> Notification:
        ...


class IQueryTranslator(Protocol):
    """Free text to Criteria."""

    async def translate(self, text: str) -> Criteria:
        ...


class IFilterEngine(Protocol):
    """Deterministic execution of Criteria."""

    def execute(
        self,
        criteria: Criteria,
        page: int = 1,
        limit: int = 20,
        sort_by: str = "createdAt",
        sort_order: str = "desc",
    ) -> SearchResult:
        ...

"""
Data models for the Taipei Rental Hub.

This module contains the data classes used throughout the application for
representing listings, crawl runs, search criteria and configuration.
"""

from .config import (
    Configuration,
    CrawlerConfig,
    DatabaseConfig,
    ExtractionConfig,
    LLMProviderConfig,
    LoggingConfig,
    SearchConfig,
    SourceConfig,
)
from .crawl import (
    CrawlOptions,
    CrawlRun,
    CrawlStatus,
    FailureKind,
    PageResult,
    RunLogFilter,
    RunSummary,
    SourceRunResult,
)
from .criteria import Criteria
from .listing import FeatureTag, Listing, PriceHistoryEntry, RawRecord, UpsertResult
from .notification import FanOutResult, Notification
from .search import ListingStats, SearchQueryLog, SearchResult, Suggestion

__all__ = [
    "Configuration",
    "CrawlerConfig",
    "DatabaseConfig",
    "ExtractionConfig",
    "LLMProviderConfig",
    "LoggingConfig",
    "SearchConfig",
    "SourceConfig",
    "CrawlOptions",
    "CrawlRun",
    "CrawlStatus",
    "FailureKind",
    "PageResult",
    "RunLogFilter",
    "RunSummary",
    "SourceRunResult",
    "Criteria",
    "FeatureTag",
    "Listing",
    "PriceHistoryEntry",
    "RawRecord",
    "UpsertResult",
    "FanOutResult",
    "Notification",
    "ListingStats",
    "SearchQueryLog",
    "SearchResult",
    "Suggestion",
]

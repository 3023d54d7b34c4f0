"""
Service layer for the Taipei Rental Hub.

This module contains configuration loading, persistence of listings and
crawl runs, and the search surface.
"""

from .config_manager import ConfigurationManager
from .database import Database
from .listing_store import ListingStore
from .run_store import CrawlRunStore
from .search_service import SearchService

__all__ = [
    "ConfigurationManager",
    "Database",
    "ListingStore",
    "CrawlRunStore",
    "SearchService",
]

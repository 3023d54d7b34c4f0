"""
Core components for the Taipei Rental Hub.

This module contains the components that crawl listing sources, normalise
and merge listings, dispatch price-change notifications, translate
natural-language queries and execute filters.
"""

from .extraction_service import LLMExtractionService
from .filter_engine import FilterEngine
from .llm_clients import APILLMClient, FailoverLLMProvider, LLMProvider, LocalLLMClient, create_llm_provider
from .merge_engine import KeyedLock, MergeEngine
from .normalizer import normalize_record
from .notification_dispatcher import NotificationDispatcher
from .query_translator import QueryTranslator
from .source_adapters import ADAPTER_TYPES, BaseSourceAdapter, Rental591Adapter

__all__ = [
    "LLMExtractionService",
    "FilterEngine",
    "LLMProvider",
    "LocalLLMClient",
    "APILLMClient",
    "FailoverLLMProvider",
    "create_llm_provider",
    "KeyedLock",
    "MergeEngine",
    "normalize_record",
    "NotificationDispatcher",
    "QueryTranslator",
    "ADAPTER_TYPES",
    "BaseSourceAdapter",
    "Rental591Adapter",
]

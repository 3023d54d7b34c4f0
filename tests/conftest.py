"""
Pytest configuration and shared fixtures.

This module provides common fixtures and configuration for all tests
in the Taipei Rental Hub test suite.
"""

import os
import tempfile
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from rental_hub.components.llm_clients import LLMProvider, LLMResponse
from rental_hub.models.crawl import PageResult
from rental_hub.models.listing import FeatureTag, Listing, RawRecord
from rental_hub.services.database import Database
from rental_hub.services.listing_store import ListingStore
from rental_hub.services.run_store import CrawlRunStore
from rental_hub.utils.error_handling import ExtractionFailure, NavigationFailure


class FakeClock:
    """Deterministic clock; every call returns the current time, advance() moves it."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 3, 1, 9, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class StubLLMProvider(LLMProvider):
    """LLM provider answering from a script of responses or exceptions."""

    name = "stub"

    def __init__(self, responses: Optional[List[Any]] = None):
        super().__init__({})
        self.responses = list(responses or [])
        self.prompts: List[str] = []
        self.closed = False

    async def generate(self, prompt: str, system_prompt: Optional[str] = None) -> LLMResponse:
        self.prompts.append(prompt)
        response = self.responses.pop(0) if self.responses else "{}"
        if isinstance(response, Exception):
            raise response
        return LLMResponse(content=response, provider="stub", model="stub", response_time=0.01)

    def test_connection(self) -> bool:
        return True

    async def close(self):
        self.closed = True


class FakeExtractionService:
    """
    Extraction service serving scripted pages.

    Each page is either a list of record dicts, or a NavigationFailure /
    ExtractionFailure instance raised from navigate / extract.
    """

    def __init__(self, pages: List[Any], has_next: Optional[List[bool]] = None):
        self.pages = pages
        self.has_next = has_next
        self.visited: List[str] = []
        self.entered = 0
        self.exited = 0
        self._current: Any = None

    async def __aenter__(self):
        self.entered += 1
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.exited += 1

    async def navigate(self, url: str):
        index = len(self.visited)
        self.visited.append(url)
        self._current = self.pages[index] if index < len(self.pages) else []
        if isinstance(self._current, NavigationFailure):
            raise self._current

    async def extract(self, instructions: str) -> List[Dict[str, Any]]:
        if isinstance(self._current, ExtractionFailure):
            raise self._current
        return list(self._current)

    async def has_next_page(self) -> bool:
        index = len(self.visited) - 1
        if self.has_next is not None:
            return self.has_next[index]
        return index + 1 < len(self.pages)


class ScriptedAdapter:
    """Source adapter yielding prepared PageResults, optionally pausing between pages."""

    def __init__(self, source: str, pages: List[PageResult], origin: str = "https://rent.example.tw"):
        self.source = source
        self.origin = origin
        self.pages = pages
        self.requested: List[int] = []
        self.gate = None  # asyncio.Event awaited before each page when set
        self.closed = False

    async def crawl(self, options, cancel_event=None):
        try:
            for page in self.pages[: options.max_pages]:
                if cancel_event is not None and cancel_event.is_set():
                    return
                if self.gate is not None:
                    await self.gate.wait()
                self.requested.append(page.page_number)
                yield page
                if page.failed or not page.has_next:
                    return
        finally:
            self.closed = True


def raw_record(source_id: str, price: Any = 18000, **overrides) -> RawRecord:
    """RawRecord with sensible defaults for a Taipei listing."""
    values = {
        "title": f"大安區溫馨套房 {source_id}",
        "price": price,
        "address": "台北市大安區復興南路一段100號",
        "near_mrt": "忠孝復興",
        "area": "10坪",
        "features": ["近捷運", "有電梯", "可開伙"],
        "images": ["//img.example.tw/a.jpg"],
        "url": f"/rent-detail-{source_id}.html",
        "source_id": source_id,
    }
    values.update(overrides)
    return RawRecord(**values)


def make_listing(source_id: str = "1001", price: int = 18000, source: str = "RENTAL591", **overrides) -> Listing:
    """Canonical listing ready for the merge engine."""
    values = {
        "source": source,
        "source_id": source_id,
        "title": f"大安區溫馨套房 {source_id}",
        "price": price,
        "url": f"https://rent.591.com.tw/rent-detail-{source_id}.html",
        "district": "大安區",
        "address": "台北市大安區復興南路一段100號",
        "near_mrt": "忠孝復興",
        "area": 10.0,
        "room_type": "套房",
        "has_elevator": True,
        "has_cooking": True,
        "images": ["https://img.example.tw/a.jpg"],
        "features": [FeatureTag(name="近捷運", category="交通")],
    }
    values.update(overrides)
    return Listing(**values)


@pytest.fixture
def clock():
    """Fixed, advanceable clock."""
    return FakeClock()


@pytest.fixture
def database():
    """Fresh in-memory database with all tables."""
    db = Database("sqlite://")
    db.create_tables()
    yield db
    db.dispose()


@pytest.fixture
def listing_store(database):
    return ListingStore(database)


@pytest.fixture
def run_store(database):
    return CrawlRunStore(database)


@pytest.fixture
def stub_provider():
    return StubLLMProvider()


@pytest.fixture
def sample_config_data():
    """Valid raw configuration dictionary."""
    return {
        "database": {"url": "sqlite://"},
        "llm_provider": {
            "type": "local",
            "local": {"model": "llama3.1", "base_url": "http://localhost:11434"},
        },
        "sources": {
            "RENTAL591": {
                "enabled": True,
                "max_pages": 2,
                "page_delay": 0,
                "filters": {"region": "1"},
            }
        },
        "crawler": {"interval_minutes": 15, "run_on_start": True, "stale_after_days": 5},
        "search": {"default_limit": 10, "max_limit": 50, "translation_timeout": 5},
        "logging": {"level": "DEBUG", "directory": None},
    }


# Temporary directory fixtures
@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


# Environment fixtures
@pytest.fixture
def mock_env_vars():
    """Mock environment variables for testing."""
    env_vars = {
        "OPENAI_API_KEY": "test_openai_key",
        "ANTHROPIC_API_KEY": "test_anthropic_key",
    }

    original_values = {}
    for key, value in env_vars.items():
        original_values[key] = os.environ.get(key)
        os.environ[key] = value

    yield env_vars

    for key, original_value in original_values.items():
        if original_value is None:
            os.environ.pop(key, None)
        else:
            os.environ[key] = original_value


# Pytest configuration
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "slow: mark test as slow running")
    config.addinivalue_line("markers", "integration: mark test as integration test")
    config.addinivalue_line("markers", "unit: mark test as unit test")


def pytest_collection_modifyitems(config, items):
    """Add the unit marker to every test not marked otherwise."""
    for item in items:
        if not any(marker.name in ["integration", "slow"] for marker in item.iter_markers()):
            item.add_marker(pytest.mark.unit)

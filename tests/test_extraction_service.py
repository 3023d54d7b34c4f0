"""
Tests for the LLM-backed page extraction service.
"""

import json
from unittest.mock import AsyncMock, patch

import aiohttp
import pytest

from conftest import StubLLMProvider
from rental_hub.components.extraction_service import LLMExtractionService
from rental_hub.models.config import ExtractionConfig
from rental_hub.utils.error_handling import ExtractionFailure, NavigationFailure

LIST_PAGE = """
<html><head><script>var tracking = 1;</script><style>.x{}</style></head>
<body>
  <div class="item">
    <a href="/rent-detail-111.html">大安區 獨立套房</a>
    <span>18,500 元/月</span>
    <img src="//img.591.com.tw/111.jpg">
  </div>
  <div class="pageBar">
    <a class="pageNext" href="/?firstRow=30">下一頁</a>
  </div>
</body></html>
"""

LAST_PAGE = """
<html><body>
  <div class="item"><a href="/rent-detail-222.html">雅房</a></div>
  <div class="pageBar"><a class="pageNext last" href="#">下一頁</a></div>
</body></html>
"""


@pytest.fixture
def provider():
    return StubLLMProvider()


@pytest.fixture
def service(provider):
    return LLMExtractionService(provider, ExtractionConfig(timeout=5))


async def load(service, html):
    with patch.object(service, "_fetch", AsyncMock(return_value=html)):
        await service.navigate("https://rent.591.com.tw/?region=1")


class TestNavigation:
    """Test page loading."""

    @pytest.mark.asyncio
    async def test_navigate_outside_context_fails(self, service):
        with pytest.raises(NavigationFailure):
            await service.navigate("https://rent.591.com.tw/")

    @pytest.mark.asyncio
    async def test_network_error_becomes_navigation_failure(self, service):
        async with service:
            with patch.object(service, "_fetch", AsyncMock(side_effect=aiohttp.ClientError("refused"))):
                with pytest.raises(NavigationFailure, match="refused"):
                    await service.navigate("https://rent.591.com.tw/")

    @pytest.mark.asyncio
    async def test_context_closes_session(self, service):
        async with service:
            assert service.session is not None

        assert service.session is None

    @pytest.mark.asyncio
    async def test_page_text_inlines_links_and_drops_scripts(self, service):
        async with service:
            await load(service, LIST_PAGE)
            text = service.page_text()

        assert "tracking" not in text
        assert "[/rent-detail-111.html]" in text
        assert "[img //img.591.com.tw/111.jpg]" in text

    @pytest.mark.asyncio
    async def test_page_text_truncated(self, provider):
        service = LLMExtractionService(provider, ExtractionConfig(max_page_chars=1000))
        async with service:
            await load(service, f"<html><body><p>{'租' * 5000}</p></body></html>")

            assert len(service.page_text()) == 1000


class TestExtraction:
    """Test structured extraction."""

    @pytest.mark.asyncio
    async def test_extract_records(self, service, provider):
        provider.responses = [
            json.dumps({"properties": [{"title": "大安區 獨立套房", "price": "18,500", "sourceId": "111"}]})
        ]

        async with service:
            await load(service, LIST_PAGE)
            records = await service.extract("擷取租屋物件")

        assert records == [{"title": "大安區 獨立套房", "price": "18,500", "sourceId": "111"}]
        assert "擷取租屋物件" in provider.prompts[0]
        assert "/rent-detail-111.html" in provider.prompts[0]

    @pytest.mark.asyncio
    async def test_extract_json_wrapped_in_prose(self, service, provider):
        provider.responses = ['以下是結果:\n```json\n{"properties": [{"title": "雅房"}]}\n```']

        async with service:
            await load(service, LIST_PAGE)
            records = await service.extract("擷取")

        assert records == [{"title": "雅房"}]

    @pytest.mark.asyncio
    async def test_extract_skips_non_objects(self, service, provider):
        provider.responses = ['{"properties": [{"title": "雅房"}, "garbage", 3]}']

        async with service:
            await load(service, LIST_PAGE)
            records = await service.extract("擷取")

        assert records == [{"title": "雅房"}]

    @pytest.mark.asyncio
    async def test_unparseable_response(self, service, provider):
        provider.responses = ["抱歉，我無法處理"]

        async with service:
            await load(service, LIST_PAGE)
            with pytest.raises(ExtractionFailure):
                await service.extract("擷取")

    @pytest.mark.asyncio
    async def test_provider_error(self, service, provider):
        provider.responses = [RuntimeError("rate limited")]

        async with service:
            await load(service, LIST_PAGE)
            with pytest.raises(ExtractionFailure, match="rate limited"):
                await service.extract("擷取")

    @pytest.mark.asyncio
    async def test_unexpected_provider_error(self, service, provider):
        provider.responses = [ValueError("Expecting value: line 1 column 1")]

        async with service:
            await load(service, LIST_PAGE)
            with pytest.raises(ExtractionFailure, match="Expecting value"):
                await service.extract("擷取")

    @pytest.mark.asyncio
    async def test_extract_without_page(self, service):
        with pytest.raises(ExtractionFailure):
            await service.extract("擷取")


class TestNextPage:
    """Test next-page detection."""

    @pytest.mark.asyncio
    async def test_enabled_next_link(self, service):
        async with service:
            await load(service, LIST_PAGE)
            assert await service.has_next_page() is True

    @pytest.mark.asyncio
    async def test_last_page_marker(self, service):
        async with service:
            await load(service, LAST_PAGE)
            assert await service.has_next_page() is False

    @pytest.mark.asyncio
    async def test_disabled_button(self, service):
        async with service:
            await load(service, '<html><body><button disabled>下一頁</button></body></html>')
            assert await service.has_next_page() is False

    @pytest.mark.asyncio
    async def test_no_pagination(self, service):
        async with service:
            await load(service, "<html><body><p>沒有結果</p></body></html>")
            assert await service.has_next_page() is False

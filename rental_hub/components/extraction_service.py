"""
Page extraction service.

Fetches listing pages over HTTP and asks a language model to turn their
visible content into structured records. Source adapters only see the
navigate / extract / has_next_page contract.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

import aiohttp
from bs4 import BeautifulSoup

from ..models.config import ExtractionConfig
from ..utils.error_handling import (
    ErrorCategory,
    ExtractionFailure,
    NavigationFailure,
    RetryConfig,
    with_error_handling,
)
from ..utils.json_parsing import parse_json_object
from .llm_clients import LLMProvider

logger = logging.getLogger(__name__)

RECORD_SCHEMA = """請以 JSON 物件回覆，格式如下，不要加入其他文字:
{"properties": [{"title": "", "price": "", "deposit": "", "district": "", "address": "",
"nearMRT": "", "area": "", "roomType": "", "floor": "", "totalFloors": "",
"features": [], "images": [], "contactName": "", "contactPhone": "", "url": "", "sourceId": ""}]}
無法判斷的欄位請填 null。"""

SYSTEM_PROMPT = "You extract rental listings from web page text and answer with JSON only."

NEXT_PAGE_MARKERS = ("下一頁",)

NAVIGATION_RETRY = RetryConfig(
    max_attempts=2,
    base_delay=1.0,
    jitter=False,
    retry_on=(aiohttp.ClientError, asyncio.TimeoutError),
)


class LLMExtractionService:
    """
    Extraction service backed by aiohttp and an LLM provider.

    Usage::

        async with LLMExtractionService(provider, config) as service:
            await service.navigate(url)
            records = await service.extract(instructions)
            more = await service.has_next_page()
    """

    def __init__(
        self,
        provider: LLMProvider,
        config: Optional[ExtractionConfig] = None,
        next_page_markers: Sequence[str] = NEXT_PAGE_MARKERS,
    ):
        self.provider = provider
        self.config = config or ExtractionConfig()
        self.next_page_markers = tuple(next_page_markers)
        self.session: Optional[aiohttp.ClientSession] = None
        self._soup: Optional[BeautifulSoup] = None
        self._current_url: Optional[str] = None

    async def __aenter__(self):
        if self.session is None:
            timeout = aiohttp.ClientTimeout(total=self.config.timeout)
            self.session = aiohttp.ClientSession(
                timeout=timeout,
                headers={"User-Agent": self.config.user_agent, "Accept-Language": "zh-TW,zh;q=0.9"},
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        if self.session is not None:
            await self.session.close()
            self.session = None

    @with_error_handling(
        component="crawler.adapter",
        category=ErrorCategory.NETWORK,
        retry_config=NAVIGATION_RETRY,
    )
    async def _fetch(self, url: str) -> str:
        async with self.session.get(url) as response:
            response.raise_for_status()
            return await response.text()

    async def navigate(self, url: str):
        """
        Load a page and keep it as the current document.

        Raises:
            NavigationFailure: If the page cannot be fetched.
        """
        if self.session is None:
            raise NavigationFailure("Extraction service used outside its context")

        try:
            html = await self._fetch(url)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NavigationFailure(f"Could not load {url}: {e}") from e

        self._soup = BeautifulSoup(html, "html.parser")
        self._current_url = url

    def page_text(self) -> str:
        """Visible text of the current page with link targets inlined."""
        if self._soup is None:
            return ""

        soup = BeautifulSoup(str(self._soup), "html.parser")
        for tag in soup(["script", "style", "noscript", "svg", "iframe"]):
            tag.decompose()
        for link in soup.find_all("a", href=True):
            link.replace_with(f"{link.get_text(' ', strip=True)} [{link['href']}]")
        for image in soup.find_all("img", src=True):
            image.replace_with(f" [img {image['src']}] ")

        text = soup.get_text("\n", strip=True)
        return text[: self.config.max_page_chars]

    async def extract(self, instructions: str) -> List[Dict[str, Any]]:
        """
        Ask the language model for the records on the current page.

        Raises:
            ExtractionFailure: If there is no page or the model output is unusable.
        """
        if self._soup is None:
            raise ExtractionFailure("No page loaded")

        prompt = f"{instructions}\n\n{RECORD_SCHEMA}\n\n頁面網址: {self._current_url}\n頁面內容:\n{self.page_text()}"

        try:
            response = await asyncio.wait_for(
                self.provider.generate(prompt, system_prompt=SYSTEM_PROMPT),
                timeout=self.config.timeout * 2,
            )
        except asyncio.TimeoutError as e:
            raise ExtractionFailure(f"Extraction timed out for {self._current_url}") from e
        except Exception as e:
            raise ExtractionFailure(f"Extraction request failed: {e}") from e

        try:
            data = parse_json_object(response.content)
        except ValueError as e:
            raise ExtractionFailure(f"Unparseable extraction response: {e}") from e

        records = data.get("properties")
        if records is None:
            records = data.get("listings", [])
        if not isinstance(records, list):
            raise ExtractionFailure("Extraction response 'properties' is not a list")

        return [record for record in records if isinstance(record, dict)]

    async def has_next_page(self) -> bool:
        """True when an enabled next-page link or button is on the current page."""
        if self._soup is None:
            return False

        for element in self._soup.find_all(["a", "button"]):
            text = element.get_text(strip=True)
            if not any(marker in text for marker in self.next_page_markers):
                continue
            classes = element.get("class") or []
            if "disabled" in classes or "last" in classes:
                continue
            if element.has_attr("disabled") or element.get("aria-disabled") == "true":
                continue
            return True

        return False

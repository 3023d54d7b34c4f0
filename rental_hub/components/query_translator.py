"""
Natural-language query translation.

Turns a free-text rental request into a Criteria by asking a language
model to fill a fixed, enumerated schema. Fields the model cannot determine
stay null; nothing outside the schema is accepted.
"""

import asyncio
from typing import Optional

from ..models.criteria import CRITERIA_FIELDS, Criteria
from ..utils.error_handling import TranslationFailure
from ..utils.json_parsing import parse_json_object
from ..utils.logging import get_logger
from .llm_clients import LLMProvider

QUERY_PLACEHOLDER = "{query}"

DEFAULT_PROMPT_TEMPLATE = """你是台北租屋搜尋助理。請將使用者的租屋需求轉換為搜尋條件。

使用者需求: {query}

請只回覆一個 JSON 物件，包含以下欄位:
- district: 行政區名稱 (例如 "大安區")
- minPrice: 最低月租金 (數字)
- maxPrice: 最高月租金 (數字)
- minArea: 最小坪數 (數字)
- maxArea: 最大坪數 (數字)
- roomType: 房型 (例如 "套房"、"雅房"、"2房1廳")
- nearMRT: 鄰近的捷運站名稱
- hasParking: 需要車位時為 true
- hasPet: 需要可養寵物時為 true
- hasCooking: 需要可開伙時為 true
- hasElevator: 需要電梯時為 true
- hasBalcony: 需要陽台時為 true
- hasWasher: 需要洗衣機時為 true

無法從需求中判斷的欄位請設為 null，不要猜測。"""

SYSTEM_PROMPT = "You convert rental search requests into JSON search criteria. Reply with JSON only."


class QueryTranslator:
    """Language-model backed translation of free text into Criteria."""

    def __init__(
        self,
        provider: LLMProvider,
        prompt_template: Optional[str] = None,
        timeout: float = 30,
    ):
        template = prompt_template or DEFAULT_PROMPT_TEMPLATE
        if QUERY_PLACEHOLDER not in template:
            raise ValueError(f"Prompt template must contain {QUERY_PLACEHOLDER}")

        self.provider = provider
        self.prompt_template = template
        self.timeout = timeout
        self.logger = get_logger("query.translator")

    def build_prompt(self, text: str) -> str:
        return self.prompt_template.replace(QUERY_PLACEHOLDER, text.strip())

    async def translate(self, text: str) -> Criteria:
        """
        Translate free text into Criteria.

        Raises:
            ValueError: If text is empty.
            TranslationFailure: If the model fails or its reply holds no JSON object.
        """
        if not text or not text.strip():
            raise ValueError("Search text cannot be empty")

        prompt = self.build_prompt(text)

        try:
            response = await asyncio.wait_for(
                self.provider.generate(prompt, system_prompt=SYSTEM_PROMPT),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise TranslationFailure(f"Translation timed out after {self.timeout}s") from e
        except Exception as e:
            raise TranslationFailure(f"Translation request failed: {e}") from e

        try:
            data = parse_json_object(response.content)
        except ValueError as e:
            self.logger.warning(
                "Unparseable translation response",
                {"query": text, "response": response.content[:500], "error": str(e)},
            )
            raise TranslationFailure(f"Could not parse criteria: {e}", raw_response=response.content) from e

        allowed = set(CRITERIA_FIELDS) | set(CRITERIA_FIELDS.values())
        ignored = sorted(key for key in data if key not in allowed)
        if ignored:
            self.logger.debug("Ignoring fields outside the criteria schema", {"fields": ignored})

        criteria = Criteria.from_dict(data)
        self.logger.info(
            "Translated query",
            {"query": text, "criteria": criteria.to_dict(), "response_time": response.response_time},
        )
        return criteria

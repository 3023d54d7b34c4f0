"""
LLM provider clients.

The query translator and the page extraction service both talk to a
language model through the LLMProvider interface defined here, backed by
either a local Ollama instance or an external API service, with optional
failover between the two.
"""

import logging
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

import aiohttp
import anthropic
import openai
import requests

from ..models.config import LLMProviderConfig

logger = logging.getLogger(__name__)


@dataclass
class LLMResponse:
    """Raw response from LLM provider."""

    content: str
    provider: str
    model: str
    response_time: float
    tokens_used: Optional[int] = None


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    name = "llm"

    def __init__(self, config: Dict[str, Any]):
        self.config = config
        self.timeout = config.get("timeout", 30)
        self.max_tokens = config.get("max_tokens", 1024)
        self.temperature = config.get("temperature", 0.1)

    @abstractmethod
    async def generate(self, prompt: str, system_prompt: Optional[str] = None) -> LLMResponse:
        """Send a prompt and return the model's response."""
        pass

    @abstractmethod
    def test_connection(self) -> bool:
        """Test connection to the LLM provider."""
        pass

    async def close(self):
        """Release any client resources."""


class LocalLLMClient(LLMProvider):
    """Client for locally hosted models served by Ollama."""

    name = "local"

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        # Use config first, then environment variable, then localhost fallback
        self.base_url = (config.get("base_url") or os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")).rstrip("/")
        self.model = config["model"]
        # Local models are slower; allow more time by default
        self.timeout = config.get("timeout", 60)

    async def generate(self, prompt: str, system_prompt: Optional[str] = None) -> LLMResponse:
        """Generate a completion using the local Ollama model."""
        start_time = time.time()
        payload = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "format": "json",
            "options": {
                "temperature": self.temperature,
                "num_predict": self.max_tokens,
            },
        }
        if system_prompt:
            payload["system"] = system_prompt

        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(f"{self.base_url}/api/generate", json=payload) as response:
                    response.raise_for_status()
                    result = await response.json()
        except aiohttp.ClientError as e:
            logger.error(f"Local LLM request failed: {e}")
            raise RuntimeError(f"Local LLM request failed: {e}") from e
        except ValueError as e:
            logger.error(f"Local LLM returned an unreadable body: {e}")
            raise RuntimeError(f"Local LLM returned an unreadable body: {e}") from e

        return LLMResponse(
            content=result.get("response", ""),
            provider="local",
            model=self.model,
            response_time=time.time() - start_time,
            tokens_used=result.get("eval_count"),
        )

    def test_connection(self) -> bool:
        """Test connection to local Ollama instance."""
        try:
            response = requests.get(f"{self.base_url}/api/tags", timeout=5)
            response.raise_for_status()

            model_names = [model["name"] for model in response.json().get("models", [])]
            if not any(name == self.model or name.startswith(f"{self.model}:") for name in model_names):
                logger.warning(f"Model {self.model} not found in available models: {model_names}")
                return False

            return True

        except requests.exceptions.RequestException as e:
            logger.error(f"Local LLM connection test failed: {e}")
            return False


class APILLMClient(LLMProvider):
    """Client for external API-based LLM services."""

    name = "api"

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self.provider = config["provider"]
        self.model = config["model"]
        self.api_key = config.get("api_key")
        # Optional gateway or proxy in front of the provider
        self.base_url = config.get("base_url")

        self.openai_client: Optional[openai.AsyncOpenAI] = None
        self.anthropic_client: Optional[anthropic.AsyncAnthropic] = None

        if self.provider == "openai":
            self.openai_client = openai.AsyncOpenAI(api_key=self.api_key, base_url=self.base_url)
        elif self.provider == "anthropic":
            self.anthropic_client = anthropic.AsyncAnthropic(api_key=self.api_key, base_url=self.base_url)
        else:
            raise ValueError(f"Unsupported API provider: {self.provider}")

    async def generate(self, prompt: str, system_prompt: Optional[str] = None) -> LLMResponse:
        """Generate a completion using the external API service."""
        start_time = time.time()

        try:
            if self.provider == "openai":
                return await self._generate_openai(prompt, system_prompt, start_time)
            return await self._generate_anthropic(prompt, system_prompt, start_time)

        except (openai.OpenAIError, anthropic.AnthropicError) as e:
            logger.error(f"API LLM request failed: {e}")
            raise RuntimeError(f"API LLM request failed: {e}") from e

    async def _generate_openai(self, prompt: str, system_prompt: Optional[str], start_time: float) -> LLMResponse:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        response = await self.openai_client.chat.completions.create(
            model=self.model,
            messages=messages,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            timeout=self.timeout,
        )

        return LLMResponse(
            content=response.choices[0].message.content or "",
            provider="openai",
            model=self.model,
            response_time=time.time() - start_time,
            tokens_used=response.usage.total_tokens if response.usage else None,
        )

    async def _generate_anthropic(self, prompt: str, system_prompt: Optional[str], start_time: float) -> LLMResponse:
        kwargs: Dict[str, Any] = {}
        if system_prompt:
            kwargs["system"] = system_prompt

        response = await self.anthropic_client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            messages=[{"role": "user", "content": prompt}],
            timeout=self.timeout,
            **kwargs,
        )

        text = "".join(block.text for block in response.content if getattr(block, "type", "") == "text")
        return LLMResponse(
            content=text,
            provider="anthropic",
            model=self.model,
            response_time=time.time() - start_time,
            tokens_used=response.usage.input_tokens + response.usage.output_tokens,
        )

    def test_connection(self) -> bool:
        """Test connection to API service with a one-token request."""
        try:
            if self.provider == "openai":
                openai.OpenAI(api_key=self.api_key, base_url=self.base_url).chat.completions.create(
                    model=self.model,
                    messages=[{"role": "user", "content": "Test"}],
                    max_tokens=1,
                    timeout=5,
                )
            else:
                anthropic.Anthropic(api_key=self.api_key, base_url=self.base_url).messages.create(
                    model=self.model,
                    max_tokens=1,
                    messages=[{"role": "user", "content": "Test"}],
                    timeout=5,
                )
            return True

        except (openai.OpenAIError, anthropic.AnthropicError) as e:
            logger.error(f"API LLM connection test failed: {e}")
            return False

    async def close(self):
        if self.openai_client is not None:
            await self.openai_client.close()
        if self.anthropic_client is not None:
            await self.anthropic_client.close()


class FailoverLLMProvider(LLMProvider):
    """Primary provider with a fallback tried when the primary raises."""

    name = "failover"

    def __init__(self, primary: LLMProvider, fallback: LLMProvider):
        super().__init__({})
        self.primary = primary
        self.fallback = fallback

    async def generate(self, prompt: str, system_prompt: Optional[str] = None) -> LLMResponse:
        try:
            return await self.primary.generate(prompt, system_prompt)
        except Exception as e:
            logger.warning(f"Primary LLM provider failed: {e}")
            logger.info("Attempting fallback LLM provider")
            return await self.fallback.generate(prompt, system_prompt)

    def test_connection(self) -> bool:
        return self.primary.test_connection() or self.fallback.test_connection()

    async def close(self):
        await self.primary.close()
        await self.fallback.close()


def create_llm_provider(config: LLMProviderConfig) -> LLMProvider:
    """Build the configured provider, wrapped with failover when a fallback is set."""

    def build(provider_type: str) -> LLMProvider:
        if provider_type == "local":
            logger.info(f"Configured local LLM provider: {config.local['model']}")
            return LocalLLMClient(config.local)
        logger.info(f"Configured API LLM provider: {config.api['provider']}")
        return APILLMClient(config.api)

    primary = build(config.type)
    if config.fallback:
        return FailoverLLMProvider(primary, build(config.fallback))
    return primary

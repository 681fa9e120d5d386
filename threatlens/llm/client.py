"""
LLM provider clients.

Each provider turns a (system, user) prompt pair into raw response text.
Provider selection is explicit: callers resolve an ``LLMOverride`` first
and build the provider from it.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional

import httpx
from openai import AsyncOpenAI
from pydantic import BaseModel

from threatlens.config import Settings, get_settings


logger = logging.getLogger(__name__)


class ProviderName(str, Enum):
    ANTHROPIC = "anthropic"
    OPENAI = "openai"


class LLMOverride(BaseModel):
    """Resolved provider configuration for one analysis run."""

    provider: ProviderName
    api_key: str

    def __repr__(self) -> str:
        # Never expose the key in logs or tracebacks
        return f"LLMOverride(provider={self.provider.value!r}, api_key='***')"

    __str__ = __repr__


def resolve_llm_config(
    explicit: Optional[LLMOverride] = None,
    stored: Optional[LLMOverride] = None,
    settings: Optional[Settings] = None,
) -> Optional[LLMOverride]:
    """
    Pick the LLM configuration for a run.

    Precedence: explicit override > stored per-user setting > environment
    (Anthropic key first, then OpenAI key).

    Returns:
        The resolved override, or None when no credentials exist and the
        LLM phase should be skipped.
    """
    if explicit is not None and explicit.api_key:
        return explicit
    if stored is not None and stored.api_key:
        return stored

    settings = settings or get_settings()
    if settings.anthropic_api_key:
        return LLMOverride(provider=ProviderName.ANTHROPIC, api_key=settings.anthropic_api_key)
    if settings.openai_api_key:
        return LLMOverride(provider=ProviderName.OPENAI, api_key=settings.openai_api_key)
    return None


class LLMProvider(ABC):
    """Contextual log analysis capability of one LLM vendor."""

    name: str = "unknown"

    @abstractmethod
    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        """
        Send one request and return the response text.

        Raises:
            Exception: Any transport or API error, unclassified
        """
        pass


class OpenAIProvider(LLMProvider):
    """
    Async client for OpenAI chat completions.
    """

    name = "openai"

    def __init__(self, api_key: str, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.model = self.settings.openai_model
        self.client = AsyncOpenAI(
            api_key=api_key,
            timeout=httpx.Timeout(self.settings.llm_timeout_seconds, connect=10.0),
            max_retries=0,
        )

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=self.settings.llm_temperature,
            max_tokens=self.settings.llm_max_tokens,
        )
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""


class AnthropicProvider(LLMProvider):
    """
    Client for the Anthropic Messages API over plain HTTP.
    """

    name = "anthropic"

    API_URL = "https://api.anthropic.com/v1/messages"
    API_VERSION = "2023-06-01"

    def __init__(
        self,
        api_key: str,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self.model = self.settings.anthropic_model
        self._api_key = api_key
        self._transport = transport

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        payload = {
            "model": self.model,
            "max_tokens": self.settings.llm_max_tokens,
            "temperature": self.settings.llm_temperature,
            "system": system_prompt,
            "messages": [{"role": "user", "content": user_prompt}],
        }
        headers = {
            "x-api-key": self._api_key,
            "anthropic-version": self.API_VERSION,
            "content-type": "application/json",
        }
        timeout = httpx.Timeout(self.settings.llm_timeout_seconds, connect=10.0)

        async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
            response = await client.post(self.API_URL, json=payload, headers=headers)
            response.raise_for_status()
            data = response.json()

        blocks = data.get("content") or []
        return "".join(block.get("text", "") for block in blocks if block.get("type") == "text")


def create_provider(override: LLMOverride, settings: Optional[Settings] = None) -> LLMProvider:
    """Build the provider client for a resolved configuration."""
    if override.provider == ProviderName.ANTHROPIC:
        return AnthropicProvider(override.api_key, settings=settings)
    return OpenAIProvider(override.api_key, settings=settings)

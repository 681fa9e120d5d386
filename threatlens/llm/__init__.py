"""
LLM integration module.
"""

from threatlens.llm.client import (
    AnthropicProvider,
    LLMOverride,
    LLMProvider,
    OpenAIProvider,
    ProviderName,
    create_provider,
    resolve_llm_config,
)
from threatlens.llm.chunker import Chunk, chunk_lines
from threatlens.llm.parser import parse_llm_response
from threatlens.llm.analyzer import LLMAnalysisResult, LLMOrchestrator
from threatlens.llm.prompts import PromptTemplates

__all__ = [
    "AnthropicProvider",
    "LLMOverride",
    "LLMProvider",
    "OpenAIProvider",
    "ProviderName",
    "create_provider",
    "resolve_llm_config",
    "Chunk",
    "chunk_lines",
    "parse_llm_response",
    "LLMAnalysisResult",
    "LLMOrchestrator",
    "PromptTemplates",
]

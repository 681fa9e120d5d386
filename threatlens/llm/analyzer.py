"""
LLM orchestrator - chunked contextual analysis of one log file.
"""

import logging
from typing import Awaitable, Callable, Iterable, List, Optional

from pydantic import BaseModel, Field

from threatlens.config import Settings, get_settings
from threatlens.errors import ProviderFailure, UpstreamProviderError, classify_provider_error
from threatlens.llm.chunker import Chunk, chunk_lines
from threatlens.llm.client import LLMOverride, LLMProvider, create_provider
from threatlens.llm.parser import extract_json, parse_llm_response
from threatlens.llm.prompts import PromptTemplates
from threatlens.models.finding import Finding


logger = logging.getLogger(__name__)


FindingsCallback = Callable[[List[Finding]], Awaitable[None]]
ProviderFactory = Callable[[LLMOverride], LLMProvider]

MAX_SUMMARY_CHARS = 5000


class LLMAnalysisResult(BaseModel):
    findings: List[Finding] = Field(default_factory=list)
    llm_available: bool = False
    llm_completed: bool = False
    chunks_total: int = 0
    chunks_failed: int = 0
    warnings: List[str] = Field(default_factory=list)


class LLMOrchestrator:
    """
    Orchestrates LLM-based log analysis.

    Splits the file into chunks, asks the provider about each one and
    normalizes the responses. A failing chunk is classified, logged and
    reported as a warning; it never aborts the remaining chunks.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        provider_factory: Optional[ProviderFactory] = None,
        techniques: Iterable[str] = (),
    ):
        self.settings = settings or get_settings()
        self._provider_factory = provider_factory or (
            lambda override: create_provider(override, settings=self.settings)
        )
        self.techniques = list(techniques)

    async def analyze(
        self,
        lines: List[str],
        override: Optional[LLMOverride],
        on_findings: Optional[FindingsCallback] = None,
    ) -> LLMAnalysisResult:
        """
        Analyze log lines with the configured provider.

        Args:
            lines: File lines in order
            override: Resolved provider configuration, None to skip
            on_findings: Awaited with each chunk's findings as soon as
                they are parsed, so callers can persist incrementally

        Returns:
            LLMAnalysisResult; ``llm_completed`` is true only when every
            chunk succeeded
        """
        if override is None:
            logger.info("[LLM] No provider configured, skipping LLM analysis")
            return LLMAnalysisResult(llm_available=False)

        provider = self._provider_factory(override)
        chunks = chunk_lines(
            lines,
            max_chars=self.settings.llm_chunk_max_chars,
            overlap_lines=self.settings.llm_chunk_overlap_lines,
        )
        result = LLMAnalysisResult(llm_available=True, chunks_total=len(chunks))
        logger.info("[LLM] Analyzing %d lines in %d chunks with %s", len(lines), len(chunks), provider.name)

        failures: List[ProviderFailure] = []
        for chunk in chunks:
            try:
                findings = await self._analyze_chunk(provider, chunk, lines)
            except Exception as e:
                failure = classify_provider_error(e)
                failures.append(failure)
                logger.warning(
                    "[LLM] Chunk %d (lines %d-%d) failed: %s",
                    chunk.id, chunk.start_line, chunk.end_line, failure.value,
                )
                continue

            result.findings.extend(findings)
            if findings and on_findings is not None:
                await on_findings(findings)

        result.chunks_failed = len(failures)
        result.llm_completed = not failures
        if failures:
            reasons = sorted({f.message for f in failures})
            result.warnings.append(
                f"LLM analysis incomplete: {len(failures)} of {len(chunks)} chunks failed ({'; '.join(reasons)})"
            )

        logger.info(
            "[LLM] Analysis finished: %d findings, %d/%d chunks failed",
            len(result.findings), result.chunks_failed, result.chunks_total,
        )
        return result

    async def _analyze_chunk(self, provider: LLMProvider, chunk: Chunk, lines: List[str]) -> List[Finding]:
        user_prompt = PromptTemplates.format_chunk_prompt(
            content=chunk.content,
            start_line=chunk.start_line,
            end_line=chunk.end_line,
            total_lines=len(lines),
            techniques=self.techniques,
        )
        raw = await provider.complete(PromptTemplates.SYSTEM, user_prompt)
        return parse_llm_response(raw, chunk, lines)

    async def test_connection(self, override: LLMOverride) -> str:
        """
        Verify that the configured credentials work.

        Returns:
            The provider name on success

        Raises:
            UpstreamProviderError: With a sanitized, classified message
        """
        provider = self._provider_factory(override)
        try:
            raw = await provider.complete(PromptTemplates.SYSTEM, PromptTemplates.CONNECTION_TEST)
        except Exception as e:
            error = UpstreamProviderError.from_exception(e, provider=provider.name)
            logger.warning("[LLM] Connection test with %s failed: %s", provider.name, error.failure.value)
            raise error from e

        if not raw.strip():
            logger.warning("[LLM] Connection test with %s returned an empty response", provider.name)
            raise UpstreamProviderError(ProviderFailure.UNKNOWN, provider=provider.name)

        logger.debug("[LLM] Connection test response: %s", extract_json(raw)[:100])
        return provider.name

    async def summarize(self, findings: List[Finding], total_lines: int, override: LLMOverride) -> str:
        """
        Ask the provider for an executive summary of the merged findings.

        Args:
            findings: Rule-based and LLM findings of one analysis
            total_lines: Number of lines in the analyzed file
            override: Resolved provider configuration

        Returns:
            The summary text, truncated to ``MAX_SUMMARY_CHARS``

        Raises:
            UpstreamProviderError: Request failed or came back empty
        """
        provider = self._provider_factory(override)
        prompt = PromptTemplates.format_summary_prompt(findings, total_lines)
        try:
            raw = await provider.complete(PromptTemplates.SUMMARY_SYSTEM, prompt)
        except Exception as e:
            error = UpstreamProviderError.from_exception(e, provider=provider.name)
            logger.warning("[LLM] Summary request to %s failed: %s", provider.name, error.failure.value)
            raise error from e

        summary = raw.strip()
        if not summary:
            raise UpstreamProviderError(ProviderFailure.MALFORMED_RESPONSE, provider=provider.name)
        return summary[:MAX_SUMMARY_CHARS]

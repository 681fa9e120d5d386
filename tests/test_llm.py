"""
Tests for chunking, response parsing, provider resolution and the LLM orchestrator.
"""

import json
from typing import List

import httpx
import pytest

from threatlens.config import Settings
from threatlens.detection import compute_fingerprint
from threatlens.errors import (
    MalformedResponseError,
    ProviderFailure,
    UpstreamProviderError,
    classify_provider_error,
)
from threatlens.llm import (
    AnthropicProvider,
    Chunk,
    LLMOrchestrator,
    LLMOverride,
    OpenAIProvider,
    ProviderName,
    chunk_lines,
    create_provider,
    parse_llm_response,
    resolve_llm_config,
)
from threatlens.models.finding import Finding, FindingSource, Severity, ThreatCategory

from conftest import FakeProvider


OVERRIDE = LLMOverride(provider=ProviderName.OPENAI, api_key="sk-test-secret")


def ten_lines() -> List[str]:
    return [f"line{i:05d}x" for i in range(10)]


def llm_item(line_number, **overrides) -> dict:
    item = {
        "title": "Suspicious request",
        "description": "Request looks like an injection attempt",
        "severity": "HIGH",
        "category": "XSS",
        "lineNumber": line_number,
        "evidence": f"payload-{line_number}",
        "confidence": 0.8,
    }
    item.update(overrides)
    return item


class TestChunker:
    """Tests for chunk_lines."""

    def test_overlapping_chunks(self):
        chunks = chunk_lines(ten_lines(), max_chars=50, overlap_lines=1)

        assert [(c.start_line, c.end_line) for c in chunks] == [(1, 4), (4, 7), (7, 10)]
        assert chunks[0].content.splitlines()[0] == "1: line00000x"
        assert [c.id for c in chunks] == [0, 1, 2]

    def test_whole_file_in_one_chunk(self):
        chunks = chunk_lines(ten_lines())
        assert len(chunks) == 1
        assert (chunks[0].start_line, chunks[0].end_line) == (1, 10)

    def test_long_line_is_truncated(self):
        chunks = chunk_lines(["a" * 3000, "short"], max_chars=12000)

        first = chunks[0].content.splitlines()[0]
        assert first.endswith("...[truncated]")
        assert len(first) < 3000

    def test_always_makes_progress(self):
        chunks = chunk_lines(["x" * 100] * 3, max_chars=50, overlap_lines=5)
        assert [(c.start_line, c.end_line) for c in chunks] == [(1, 1), (2, 2), (3, 3)]

    def test_empty_input(self):
        assert chunk_lines([]) == []


class TestResponseParser:
    """Tests for parse_llm_response."""

    def setup_method(self):
        self.lines = [
            "10.0.0.1 GET /",
            "2024-01-15T04:15:22Z 10.0.0.2 GET /items?id=1 UNION SELECT",
            "10.0.0.3 GET /about",
        ]
        self.chunk = Chunk(id=0, start_line=1, end_line=3, content="")

    def test_code_fence(self):
        raw = "```json\n" + json.dumps([llm_item(
            2, severity="critical", category="sql_injection", evidence="UNION SELECT", confidence=1.7,
        )]) + "\n```"

        findings = parse_llm_response(raw, self.chunk, self.lines)

        assert len(findings) == 1
        finding = findings[0]
        assert finding.severity == Severity.CRITICAL
        assert finding.category == ThreatCategory.SQL_INJECTION
        assert finding.confidence == 1.0
        assert finding.source == FindingSource.LLM
        assert finding.line_number == 2
        assert finding.line_content == self.lines[1]
        assert finding.event_timestamp is not None
        assert finding.fingerprint == compute_fingerprint(ThreatCategory.SQL_INJECTION, 2, "UNION SELECT")

    def test_array_embedded_in_prose(self):
        raw = "Here is what I found:\n" + json.dumps([llm_item(1)]) + "\nLet me know."
        assert len(parse_llm_response(raw, self.chunk, self.lines)) == 1

    def test_fallbacks(self):
        raw = json.dumps([llm_item(99, severity="urgent", category="weird", confidence="very")])

        finding = parse_llm_response(raw, self.chunk, self.lines)[0]

        assert finding.severity == Severity.MEDIUM
        assert finding.category == ThreatCategory.OTHER
        assert finding.confidence == 0.7
        assert finding.line_number is None
        assert finding.line_content is None

    def test_fingerprint_falls_back_to_title(self):
        raw = json.dumps([llm_item(None, evidence=None)])
        finding = parse_llm_response(raw, self.chunk, self.lines)[0]
        assert finding.fingerprint == compute_fingerprint(ThreatCategory.XSS, None, "Suspicious request")

    def test_malformed_items_are_skipped(self):
        incomplete = llm_item(1)
        del incomplete["title"]
        raw = json.dumps([incomplete, "not an object", llm_item(3, title="   "), llm_item(2)])

        findings = parse_llm_response(raw, self.chunk, self.lines)

        assert [f.line_number for f in findings] == [2]

    def test_empty_array_is_a_valid_answer(self):
        assert parse_llm_response("```json\n[]\n```", self.chunk, self.lines) == []

    @pytest.mark.parametrize("raw", [
        "I could not find anything suspicious.",
        '{"title": "not wrapped in an array"}',
        "[not json",
        "",
    ])
    def test_unusable_responses_raise(self, raw):
        with pytest.raises(MalformedResponseError):
            parse_llm_response(raw, self.chunk, self.lines)


class TestProviderResolution:
    """Tests for resolve_llm_config and provider construction."""

    def test_explicit_wins(self):
        stored = LLMOverride(provider=ProviderName.ANTHROPIC, api_key="stored")
        settings = Settings(anthropic_api_key="env-a")
        assert resolve_llm_config(explicit=OVERRIDE, stored=stored, settings=settings) == OVERRIDE

    def test_blank_explicit_falls_through_to_stored(self):
        blank = LLMOverride(provider=ProviderName.OPENAI, api_key="")
        stored = LLMOverride(provider=ProviderName.ANTHROPIC, api_key="stored")
        assert resolve_llm_config(explicit=blank, stored=stored, settings=Settings()) == stored

    def test_environment_prefers_anthropic(self):
        settings = Settings(anthropic_api_key="env-a", openai_api_key="env-o")
        resolved = resolve_llm_config(settings=settings)
        assert resolved.provider == ProviderName.ANTHROPIC
        assert resolved.api_key == "env-a"

    def test_environment_openai(self):
        resolved = resolve_llm_config(settings=Settings(openai_api_key="env-o"))
        assert resolved.provider == ProviderName.OPENAI

    def test_nothing_configured(self):
        assert resolve_llm_config(settings=Settings()) is None

    def test_key_is_masked(self):
        assert "sk-test-secret" not in repr(OVERRIDE)
        assert "sk-test-secret" not in str(OVERRIDE)
        assert "***" in repr(OVERRIDE)

    def test_create_provider(self):
        anthropic = create_provider(LLMOverride(provider=ProviderName.ANTHROPIC, api_key="k"))
        openai = create_provider(OVERRIDE)
        assert isinstance(anthropic, AnthropicProvider)
        assert isinstance(openai, OpenAIProvider)


class TestAnthropicProvider:
    """The Anthropic client over a mocked HTTP transport."""

    @pytest.mark.asyncio
    async def test_complete_joins_text_blocks(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["key"] = request.headers["x-api-key"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"content": [
                {"type": "text", "text": "[]"},
                {"type": "tool_use", "id": "x"},
            ]})

        provider = AnthropicProvider("ak-1", transport=httpx.MockTransport(handler))
        text = await provider.complete("system", "user prompt")

        assert text == "[]"
        assert seen["key"] == "ak-1"
        assert seen["body"]["system"] == "system"
        assert seen["body"]["messages"] == [{"role": "user", "content": "user prompt"}]

    @pytest.mark.asyncio
    async def test_http_error_is_classified(self):
        provider = AnthropicProvider(
            "bad", transport=httpx.MockTransport(lambda request: httpx.Response(401, json={}))
        )

        with pytest.raises(httpx.HTTPStatusError) as exc_info:
            await provider.complete("system", "user")

        assert classify_provider_error(exc_info.value) == ProviderFailure.INVALID_CREDENTIALS


class TestLLMOrchestrator:
    """Tests for LLMOrchestrator."""

    def _orchestrator(self, provider, techniques=()):
        settings = Settings(llm_chunk_max_chars=50, llm_chunk_overlap_lines=1)
        return LLMOrchestrator(settings=settings, provider_factory=lambda override: provider, techniques=techniques)

    @pytest.mark.asyncio
    async def test_skipped_without_provider(self, fake_provider):
        result = await self._orchestrator(fake_provider).analyze(ten_lines(), None)

        assert result.llm_available is False
        assert result.llm_completed is False
        assert result.findings == []
        assert fake_provider.prompts == []

    @pytest.mark.asyncio
    async def test_all_chunks_succeed(self):
        provider = FakeProvider(lambda index, prompt: json.dumps([llm_item(index * 3 + 1)]))

        result = await self._orchestrator(provider).analyze(ten_lines(), OVERRIDE)

        assert result.llm_available is True
        assert result.llm_completed is True
        assert result.chunks_total == 3
        assert [f.line_number for f in result.findings] == [1, 4, 7]
        assert result.warnings == []
        assert "Lines 1 to 4 of a 10-line file" in provider.prompts[0]
        assert "4: line00003x" in provider.prompts[1]

    @pytest.mark.asyncio
    async def test_failing_chunk_does_not_abort(self):
        def handler(index, prompt):
            if index == 1:
                raise RuntimeError("Error code: 401 Unauthorized (key sk-test-secret)")
            return json.dumps([llm_item(index * 3 + 2)])

        batches = []

        async def on_findings(findings):
            batches.append([f.line_number for f in findings])

        result = await self._orchestrator(FakeProvider(handler)).analyze(ten_lines(), OVERRIDE, on_findings)

        assert result.llm_completed is False
        assert result.chunks_failed == 1
        assert batches == [[2], [8]]
        assert result.warnings == ["LLM analysis incomplete: 1 of 3 chunks failed (Invalid API key)"]
        assert "sk-test-secret" not in result.warnings[0]

    @pytest.mark.asyncio
    async def test_empty_chunks_do_not_call_back(self, fake_provider):
        batches = []

        async def on_findings(findings):
            batches.append(findings)

        result = await self._orchestrator(fake_provider).analyze(ten_lines(), OVERRIDE, on_findings)

        assert result.llm_completed is True
        assert batches == []
        assert len(fake_provider.prompts) == 3

    @pytest.mark.asyncio
    async def test_prose_answer_counts_as_failed_chunk(self):
        provider = FakeProvider(lambda index, prompt: "Sorry, I cannot help with that.")

        result = await self._orchestrator(provider).analyze(["single line"], OVERRIDE)

        assert result.llm_available is True
        assert result.llm_completed is False
        assert (result.chunks_total, result.chunks_failed) == (1, 1)
        assert result.findings == []
        assert result.warnings == [
            "LLM analysis incomplete: 1 of 1 chunks failed (Provider returned a malformed response)"
        ]

    @pytest.mark.asyncio
    async def test_prompt_lists_known_techniques(self, fake_provider):
        orchestrator = self._orchestrator(
            fake_provider, techniques=["T1190 - Exploit Public-Facing Application"]
        )
        await orchestrator.analyze(["single line"], OVERRIDE)
        assert "T1190 - Exploit Public-Facing Application" in fake_provider.prompts[0]

    @pytest.mark.asyncio
    async def test_connection_success(self):
        provider = FakeProvider(lambda index, prompt: '["ok"]')
        assert await self._orchestrator(provider).test_connection(OVERRIDE) == "fake"

    @pytest.mark.asyncio
    async def test_connection_failure_is_sanitized(self):
        def handler(index, prompt):
            raise RuntimeError("401 Unauthorized: key sk-test-secret rejected")

        with pytest.raises(UpstreamProviderError) as exc_info:
            await self._orchestrator(FakeProvider(handler)).test_connection(OVERRIDE)

        error = exc_info.value
        assert error.failure == ProviderFailure.INVALID_CREDENTIALS
        assert error.message == "Invalid API key"
        assert error.provider == "fake"
        assert "sk-test-secret" not in json.dumps(error.to_dict())

    @pytest.mark.asyncio
    async def test_connection_empty_response(self):
        provider = FakeProvider(lambda index, prompt: "   ")
        with pytest.raises(UpstreamProviderError) as exc_info:
            await self._orchestrator(provider).test_connection(OVERRIDE)
        assert exc_info.value.failure == ProviderFailure.UNKNOWN

    @pytest.mark.asyncio
    async def test_summarize(self):
        provider = FakeProvider(lambda index, prompt: "  Two critical SQL injection attempts.  ")
        findings = [
            Finding(
                severity=Severity.CRITICAL,
                category=ThreatCategory.SQL_INJECTION,
                title="SQL Injection: UNION SELECT",
                description="d",
                line_number=4,
                source=FindingSource.RULE_BASED,
            ),
            Finding(
                severity=Severity.LOW,
                category=ThreatCategory.RECONNAISSANCE,
                title="Unusual crawl",
                description="d",
                source=FindingSource.LLM,
            ),
        ]

        summary = await self._orchestrator(provider).summarize(findings, 10, OVERRIDE)

        assert summary == "Two critical SQL injection attempts."
        prompt = provider.prompts[0]
        assert "10-line log file" in prompt
        assert "- CRITICAL: 1" in prompt
        assert "- [CRITICAL] SQL Injection: UNION SELECT (line 4, RULE_BASED)" in prompt
        assert "- [LOW] Unusual crawl (multiple lines, LLM)" in prompt

    @pytest.mark.asyncio
    async def test_summarize_failures_are_sanitized(self):
        def handler(index, prompt):
            raise RuntimeError("429 Too Many Requests for key sk-test-secret")

        with pytest.raises(UpstreamProviderError) as exc_info:
            await self._orchestrator(FakeProvider(handler)).summarize([], 3, OVERRIDE)
        assert exc_info.value.failure == ProviderFailure.RATE_LIMITED

        empty = FakeProvider(lambda index, prompt: "")
        with pytest.raises(UpstreamProviderError) as exc_info:
            await self._orchestrator(empty).summarize([], 3, OVERRIDE)
        assert exc_info.value.failure == ProviderFailure.MALFORMED_RESPONSE


@pytest.mark.parametrize("error, expected", [
    (Exception("Invalid API key provided"), ProviderFailure.INVALID_CREDENTIALS),
    (TimeoutError(), ProviderFailure.TIMEOUT),
    (Exception("connection refused"), ProviderFailure.TIMEOUT),
    (Exception("The model gpt-9 was not found"), ProviderFailure.NOT_FOUND),
    (Exception("403 Forbidden"), ProviderFailure.ACCESS_DENIED),
    (OSError("getaddrinfo failed"), ProviderFailure.UNREACHABLE),
    (Exception("429 Too Many Requests"), ProviderFailure.RATE_LIMITED),
    (MalformedResponseError("chunk 0 response is not valid JSON"), ProviderFailure.MALFORMED_RESPONSE),
    (ValueError("boom"), ProviderFailure.UNKNOWN),
])
def test_classify_provider_error(error, expected):
    assert classify_provider_error(error) == expected

"""
Tests for the analysis pipeline state machine, against a temporary database.
"""

import json
import os
import uuid
from typing import List, Optional

import pytest

from threatlens.analysis import AnalysisPipeline
from threatlens.analysis.pipeline import NO_PROVIDER_WARNING
from threatlens.database import AnalysisResultRepository, FindingRepository, UploadRepository
from threatlens.detection import RuleEngine
from threatlens.errors import ConflictError, ForbiddenError, NotFoundError
from threatlens.llm import LLMOrchestrator, LLMOverride, ProviderName
from threatlens.models.finding import Finding, FindingSource, Severity, ThreatCategory
from threatlens.models.upload import AnalysisResult, AnalysisStatus, UploadStatus

from conftest import FakeProvider, access_line


OVERRIDE = LLMOverride(provider=ProviderName.OPENAI, api_key="test-key")

LINES = [
    access_line("10.0.0.5", "/items?id=1 UNION SELECT password FROM users", 200),
    access_line("10.0.0.6", "/index.html", 200),
]


def llm_response(*items: dict) -> str:
    return json.dumps(list(items))


def answering(chunk_response: str, summary: str = "Overall risk is high.") -> FakeProvider:
    """A provider that answers chunk prompts and summary prompts differently."""

    def handler(index, prompt):
        if "executive summary" in prompt:
            return summary
        return chunk_response

    return FakeProvider(handler)


RECON_ITEM = {
    "title": "Unusual crawl",
    "description": "Page fetched by an unknown client",
    "severity": "LOW",
    "category": "RECONNAISSANCE",
    "lineNumber": 2,
    "evidence": "GET /index.html",
    "confidence": 0.4,
}

SQLI_DUPLICATE_ITEM = {
    "title": "SQL injection",
    "description": "UNION based extraction",
    "severity": "CRITICAL",
    "category": "SQL_INJECTION",
    "lineNumber": 1,
    "evidence": "union   SELECT",
}


class CountingEngine(RuleEngine):
    def __init__(self):
        super().__init__()
        self.calls = 0

    def analyze(self, raw_lines):
        self.calls += 1
        return super().analyze(raw_lines)


class Harness:
    """A pipeline whose background submissions are collected and run on demand."""

    def __init__(self, storage, provider: FakeProvider, override: Optional[LLMOverride] = OVERRIDE, engine=None):
        self.jobs = []
        self.engine = engine or RuleEngine()

        async def resolver(user_id: str) -> Optional[LLMOverride]:
            return override

        self.pipeline = AnalysisPipeline(
            engine=self.engine,
            orchestrator=LLMOrchestrator(provider_factory=lambda o: provider),
            storage=storage,
            submit=self.submit,
            settings_resolver=resolver,
        )

    def submit(self, key, func, *args):
        self.jobs.append((func, args))
        return True

    async def drain(self):
        while self.jobs:
            func, args = self.jobs.pop(0)
            await func(*args)


async def findings_for(upload_id: str) -> List[Finding]:
    result = await AnalysisResultRepository.get_by_upload(upload_id)
    return await FindingRepository.list_for_result(result.id)


def partial_rule_finding(matched: str = "partial") -> Finding:
    return Finding(
        severity=Severity.LOW,
        category=ThreatCategory.OTHER,
        title="Left over from an interrupted run",
        description="partial",
        line_number=1,
        matched_pattern=matched,
        source=FindingSource.RULE_BASED,
        fingerprint=f"partial-{matched}",
    )


class TestStart:
    """Validation and state transitions in ``start``."""

    @pytest.mark.asyncio
    async def test_unknown_upload(self, database, storage, fake_provider):
        harness = Harness(storage, fake_provider)
        with pytest.raises(NotFoundError):
            await harness.pipeline.start(str(uuid.uuid4()), "alice")

    @pytest.mark.asyncio
    async def test_other_users_upload(self, database, storage, fake_provider, make_upload):
        upload = await make_upload(LINES)
        harness = Harness(storage, fake_provider)

        with pytest.raises(ForbiddenError):
            await harness.pipeline.start(upload.id, "mallory")

        assert (await UploadRepository.get(upload.id)).status == UploadStatus.PENDING

    @pytest.mark.asyncio
    async def test_already_analyzing(self, database, storage, fake_provider, make_upload):
        upload = await make_upload(LINES, status=UploadStatus.ANALYZING)
        harness = Harness(storage, fake_provider)

        with pytest.raises(ConflictError):
            await harness.pipeline.start(upload.id, "alice")
        assert harness.jobs == []

    @pytest.mark.asyncio
    async def test_start_transitions_and_submits(self, database, storage, fake_provider, make_upload):
        upload = await make_upload(LINES)
        harness = Harness(storage, fake_provider)

        outcome = await harness.pipeline.start(upload.id, "alice")

        assert outcome.started is True
        assert outcome.status == UploadStatus.ANALYZING
        assert (await UploadRepository.get(upload.id)).status == UploadStatus.ANALYZING
        result = await AnalysisResultRepository.get_by_upload(upload.id)
        assert result.id == outcome.analysis_result_id
        assert result.status == AnalysisStatus.IN_PROGRESS
        assert result.rule_based_completed is False
        assert len(harness.jobs) == 1

    @pytest.mark.asyncio
    async def test_claim_admits_one_winner(self, database, make_upload):
        upload = await make_upload(LINES)

        first = await UploadRepository.claim_for_analysis(upload.id, UploadStatus.PENDING)
        second = await UploadRepository.claim_for_analysis(upload.id, UploadStatus.PENDING)

        assert (first, second) == (True, False)
        assert (await UploadRepository.get(upload.id)).status == UploadStatus.ANALYZING

    @pytest.mark.asyncio
    async def test_claim_removes_previous_result_atomically(self, database, make_upload):
        upload = await make_upload(LINES, status=UploadStatus.COMPLETED)
        old = await AnalysisResultRepository.create(AnalysisResult(
            id=str(uuid.uuid4()),
            upload_id=upload.id,
            rule_based_completed=True,
        ))
        await FindingRepository.insert_many(old.id, [partial_rule_finding("old")])

        assert await UploadRepository.claim_for_analysis(upload.id, UploadStatus.PENDING) is False
        assert await AnalysisResultRepository.get_by_upload(upload.id) is not None

        assert await UploadRepository.claim_for_analysis(upload.id, UploadStatus.COMPLETED) is True
        # An ANALYZING upload never keeps the old phase marker
        assert await AnalysisResultRepository.get_by_upload(upload.id) is None
        assert await FindingRepository.list_for_result(old.id) == []


class TestFullRun:
    """End-to-end runs through both phases."""

    @pytest.mark.asyncio
    async def test_completes_with_rule_and_llm_findings(self, database, storage, make_upload):
        provider = answering(llm_response(RECON_ITEM))
        upload = await make_upload(LINES)
        harness = Harness(storage, provider)

        await harness.pipeline.start(upload.id, "alice")
        await harness.drain()

        assert (await UploadRepository.get(upload.id)).status == UploadStatus.COMPLETED
        result = await AnalysisResultRepository.get_by_upload(upload.id)
        assert result.status == AnalysisStatus.COMPLETED
        assert result.rule_based_completed is True
        assert result.llm_available is True
        assert result.llm_completed is True
        assert result.warnings == []
        assert result.overall_summary == "Overall risk is high."
        assert "SQL Injection" in provider.prompts[-1]
        assert result.total_lines_analyzed == 2
        assert result.analysis_ended_at is not None

        findings = await FindingRepository.list_for_result(result.id)
        assert result.total_findings == len(findings)
        assert result.critical_count == sum(1 for f in findings if f.severity == Severity.CRITICAL)
        assert findings[0].severity == Severity.CRITICAL

        sqli = [f for f in findings if f.category == ThreatCategory.SQL_INJECTION]
        assert sqli and all(f.source == FindingSource.RULE_BASED for f in sqli)

        llm = [f for f in findings if f.source == FindingSource.LLM]
        assert len(llm) == 1
        assert llm[0].line_number == 2
        assert llm[0].mitre_technique == "T1595 - Active Scanning"
        assert llm[0].mitre_tactic == "Reconnaissance"

    @pytest.mark.asyncio
    async def test_llm_duplicate_of_rule_finding_is_dropped(self, database, storage, make_upload):
        provider = FakeProvider(lambda index, prompt: llm_response(SQLI_DUPLICATE_ITEM))
        upload = await make_upload(LINES)
        harness = Harness(storage, provider)

        await harness.pipeline.start(upload.id, "alice")
        await harness.drain()

        findings = await findings_for(upload.id)
        assert [f for f in findings if f.source == FindingSource.LLM] == []
        assert len({f.fingerprint for f in findings}) == len(findings)

    @pytest.mark.asyncio
    async def test_completed_upload_returns_existing_result(self, database, storage, fake_provider, make_upload):
        upload = await make_upload(LINES)
        harness = Harness(storage, fake_provider)
        first = await harness.pipeline.start(upload.id, "alice")
        await harness.drain()

        again = await harness.pipeline.start(upload.id, "alice")

        assert again.started is False
        assert again.status == UploadStatus.COMPLETED
        assert again.analysis_result_id == first.analysis_result_id
        assert harness.jobs == []

    @pytest.mark.asyncio
    async def test_reanalyze_replaces_result(self, database, storage, fake_provider, make_upload):
        upload = await make_upload(LINES)
        harness = Harness(storage, fake_provider)
        first = await harness.pipeline.start(upload.id, "alice")
        await harness.drain()
        first_count = len(await findings_for(upload.id))

        second = await harness.pipeline.start(upload.id, "alice", reanalyze=True)
        await harness.drain()

        assert second.started is True
        assert second.analysis_result_id != first.analysis_result_id
        assert await FindingRepository.list_for_result(first.analysis_result_id) == []
        assert len(await findings_for(upload.id)) == first_count

    @pytest.mark.asyncio
    async def test_run_skips_upload_that_is_not_analyzing(self, database, storage, fake_provider, make_upload):
        upload = await make_upload(LINES)
        harness = Harness(storage, fake_provider)

        await harness.pipeline.run(upload.id)

        assert (await UploadRepository.get(upload.id)).status == UploadStatus.PENDING
        assert await AnalysisResultRepository.get_by_upload(upload.id) is None


class TestResume:
    """Resuming interrupted runs at the right phase."""

    async def _interrupted(self, make_upload, rule_done: bool) -> AnalysisResult:
        upload = await make_upload(LINES, status=UploadStatus.ANALYZING)
        return await AnalysisResultRepository.create(AnalysisResult(
            id=str(uuid.uuid4()),
            upload_id=upload.id,
            rule_based_completed=rule_done,
        ))

    @pytest.mark.asyncio
    async def test_completed_rule_phase_is_not_rerun(self, database, storage, fake_provider, make_upload):
        result = await self._interrupted(make_upload, rule_done=True)
        await FindingRepository.insert_many(result.id, [partial_rule_finding("kept")])
        engine = CountingEngine()
        harness = Harness(storage, fake_provider, engine=engine)

        await harness.pipeline.run(result.upload_id)

        assert engine.calls == 0
        assert len(fake_provider.prompts) == 2
        assert "executive summary" in fake_provider.prompts[1]
        findings = await FindingRepository.list_for_result(result.id)
        assert [f.matched_pattern for f in findings] == ["kept"]
        assert (await UploadRepository.get(result.upload_id)).status == UploadStatus.COMPLETED
        stored = await AnalysisResultRepository.get_by_upload(result.upload_id)
        assert stored.status == AnalysisStatus.COMPLETED
        assert stored.total_lines_analyzed == 2

    @pytest.mark.asyncio
    async def test_incomplete_rule_phase_discards_partial_findings(self, database, storage, fake_provider, make_upload):
        result = await self._interrupted(make_upload, rule_done=False)
        await FindingRepository.insert_many(result.id, [partial_rule_finding()])
        engine = CountingEngine()
        harness = Harness(storage, fake_provider, engine=engine)

        await harness.pipeline.run(result.upload_id)

        assert engine.calls == 1
        findings = await FindingRepository.list_for_result(result.id)
        assert "partial" not in [f.matched_pattern for f in findings]
        assert any(f.category == ThreatCategory.SQL_INJECTION for f in findings)

    @pytest.mark.asyncio
    async def test_resume_without_result_runs_from_scratch(self, database, storage, fake_provider, make_upload):
        upload = await make_upload(LINES, status=UploadStatus.ANALYZING)
        harness = Harness(storage, fake_provider)

        assert await harness.pipeline.resume(upload.id) is True
        await harness.drain()

        result = await AnalysisResultRepository.get_by_upload(upload.id)
        assert result.status == AnalysisStatus.COMPLETED
        assert result.rule_based_completed is True

    @pytest.mark.asyncio
    async def test_resume_ignores_finished_uploads(self, database, storage, fake_provider, make_upload):
        upload = await make_upload(LINES, status=UploadStatus.COMPLETED)
        harness = Harness(storage, fake_provider)

        assert await harness.pipeline.resume(upload.id) is False
        assert await harness.pipeline.resume(str(uuid.uuid4())) is False
        assert harness.jobs == []


class TestDegradedRuns:
    """Failures and missing providers."""

    @pytest.mark.asyncio
    async def test_unreadable_file_fails_analysis(self, database, storage, fake_provider, make_upload):
        upload = await make_upload(LINES)
        os.remove(upload.storage_path)
        harness = Harness(storage, fake_provider)

        await harness.pipeline.start(upload.id, "alice")
        await harness.drain()

        assert (await UploadRepository.get(upload.id)).status == UploadStatus.FAILED
        result = await AnalysisResultRepository.get_by_upload(upload.id)
        assert result.status == AnalysisStatus.FAILED
        assert result.error_message == "The uploaded log file could not be read"
        assert upload.storage_path not in result.error_message

    @pytest.mark.asyncio
    async def test_failed_upload_without_result_can_restart(self, database, storage, fake_provider, make_upload):
        upload = await make_upload(LINES, status=UploadStatus.FAILED)
        harness = Harness(storage, fake_provider)

        outcome = await harness.pipeline.start(upload.id, "alice")

        assert outcome.started is True

    @pytest.mark.asyncio
    async def test_all_chunks_failing_still_completes(self, database, storage, make_upload):
        def handler(index, prompt):
            raise RuntimeError("boom")

        upload = await make_upload(LINES)
        harness = Harness(storage, FakeProvider(handler))

        await harness.pipeline.start(upload.id, "alice")
        await harness.drain()

        assert (await UploadRepository.get(upload.id)).status == UploadStatus.COMPLETED
        result = await AnalysisResultRepository.get_by_upload(upload.id)
        assert result.status == AnalysisStatus.COMPLETED
        assert result.llm_available is True
        assert result.llm_completed is False
        assert result.warnings == ["LLM analysis incomplete: 1 of 1 chunks failed (Provider request failed)"]
        assert result.total_findings > 0

    @pytest.mark.asyncio
    async def test_no_provider_configured(self, database, storage, fake_provider, make_upload):
        upload = await make_upload(LINES)
        harness = Harness(storage, fake_provider, override=None)

        await harness.pipeline.start(upload.id, "alice")
        await harness.drain()

        result = await AnalysisResultRepository.get_by_upload(upload.id)
        assert result.status == AnalysisStatus.COMPLETED
        assert result.llm_available is False
        assert result.llm_completed is False
        assert result.warnings == [NO_PROVIDER_WARNING]
        assert fake_provider.prompts == []

    @pytest.mark.asyncio
    async def test_prose_answers_leave_llm_incomplete(self, database, storage, make_upload):
        upload = await make_upload(LINES)
        provider = FakeProvider(lambda index, prompt: "Sorry, I cannot help with that.")
        harness = Harness(storage, provider)

        await harness.pipeline.start(upload.id, "alice")
        await harness.drain()

        result = await AnalysisResultRepository.get_by_upload(upload.id)
        assert result.status == AnalysisStatus.COMPLETED
        assert result.llm_available is True
        assert result.llm_completed is False
        assert result.warnings == [
            "LLM analysis incomplete: 1 of 1 chunks failed (Provider returned a malformed response)"
        ]
        assert result.overall_summary is None
        assert len(provider.prompts) == 1

    @pytest.mark.asyncio
    async def test_failed_summary_is_a_warning(self, database, storage, make_upload):
        def handler(index, prompt):
            if "executive summary" in prompt:
                raise RuntimeError("request timed out")
            return "[]"

        upload = await make_upload(LINES)
        harness = Harness(storage, FakeProvider(handler))

        await harness.pipeline.start(upload.id, "alice")
        await harness.drain()

        result = await AnalysisResultRepository.get_by_upload(upload.id)
        assert result.status == AnalysisStatus.COMPLETED
        assert result.llm_completed is True
        assert result.overall_summary is None
        assert result.warnings == [
            "LLM summary unavailable (Connection timed out - check your endpoint URL)"
        ]


class TestReanalyzeAll:
    """Bulk re-analysis of a user's finished uploads."""

    @pytest.mark.asyncio
    async def test_requeues_completed_uploads_only(self, database, storage, make_upload):
        harness = Harness(storage, answering("[]"))
        finished = []
        for _ in range(2):
            upload = await make_upload(LINES)
            await harness.pipeline.start(upload.id, "alice")
            await harness.drain()
            finished.append(await AnalysisResultRepository.get_by_upload(upload.id))
        pending = await make_upload(LINES)
        bobs = await make_upload(LINES, user_id="bob", status=UploadStatus.COMPLETED)

        outcomes = await harness.pipeline.reanalyze_all("alice")

        assert {o.upload_id for o in outcomes} == {r.upload_id for r in finished}
        assert all(o.started and o.status == UploadStatus.ANALYZING for o in outcomes)
        assert len(harness.jobs) == 2
        assert (await UploadRepository.get(pending.id)).status == UploadStatus.PENDING
        assert (await UploadRepository.get(bobs.id)).status == UploadStatus.COMPLETED

        await harness.drain()
        for old in finished:
            result = await AnalysisResultRepository.get_by_upload(old.upload_id)
            assert result.id != old.id
            assert result.status == AnalysisStatus.COMPLETED
            assert await FindingRepository.list_for_result(old.id) == []

    @pytest.mark.asyncio
    async def test_nothing_to_reanalyze(self, database, storage, fake_provider, make_upload):
        await make_upload(LINES)
        harness = Harness(storage, fake_provider)

        assert await harness.pipeline.reanalyze_all("alice") == []
        assert harness.jobs == []

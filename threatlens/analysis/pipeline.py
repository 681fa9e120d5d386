"""
Analysis pipeline - the per-upload state machine.

PENDING -> ANALYZING -> COMPLETED | FAILED. While ANALYZING, the
result's ``rule_based_completed`` marker splits the run into a rule
phase and an LLM phase so an interrupted run resumes at the right one.
"""

import logging
import uuid
from typing import Any, Awaitable, Callable, List, Optional

from pydantic import BaseModel

from threatlens.analysis.merger import merge_findings
from threatlens.config import Settings, get_settings
from threatlens.database import AnalysisResultRepository, FindingRepository, UploadRepository
from threatlens.detection import RuleEngine
from threatlens.detection.patterns import PatternLibrary
from threatlens.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ThreatLensError,
    UpstreamProviderError,
)
from threatlens.llm import LLMOrchestrator, LLMOverride, resolve_llm_config
from threatlens.models.finding import Finding, FindingSource, Severity, utcnow
from threatlens.models.upload import AnalysisResult, AnalysisStatus, Upload, UploadStatus
from threatlens.storage import LocalLogStorage


logger = logging.getLogger(__name__)


SubmitFunc = Callable[..., Any]
SettingsResolver = Callable[[str], Awaitable[Optional[LLMOverride]]]

NO_PROVIDER_WARNING = "LLM analysis skipped: no provider configured"


class StartOutcome(BaseModel):
    """What ``start`` did. ``started`` is False when an existing result was returned."""

    upload_id: str
    analysis_result_id: str
    status: UploadStatus
    started: bool
    message: str


async def no_stored_settings(user_id: str) -> Optional[LLMOverride]:
    """Default settings resolver: no per-user provider configuration."""
    return None


class AnalysisPipeline:
    """
    Drives one upload through rule-based and LLM analysis.

    ``start`` validates and transitions state, then hands ``run`` to the
    worker and returns. Everything after that is observable only
    through the persisted Upload and AnalysisResult.
    """

    def __init__(
        self,
        engine: RuleEngine,
        orchestrator: LLMOrchestrator,
        storage: LocalLogStorage,
        submit: SubmitFunc,
        settings_resolver: Optional[SettingsResolver] = None,
        library: Optional[PatternLibrary] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            engine: Rule engine for the deterministic phase
            orchestrator: LLM orchestrator for the contextual phase
            storage: Where uploaded files are read from
            submit: ``submit(key, func, *args)`` of a background worker
            settings_resolver: Looks up a user's stored LLM configuration
            library: MITRE vocabulary source for merging; defaults to the engine's
            settings: Application settings
        """
        self.engine = engine
        self.orchestrator = orchestrator
        self.storage = storage
        self._submit = submit
        self._settings_resolver = settings_resolver or no_stored_settings
        self.library = library or engine.library
        self.settings = settings or get_settings()

    async def start(self, upload_id: str, user_id: str, reanalyze: bool = False) -> StartOutcome:
        """
        Begin analysis of an upload.

        Raises:
            NotFoundError: No such upload
            ForbiddenError: Caller does not own the upload
            ConflictError: Analysis already running, or another trigger won the race
        """
        upload = await UploadRepository.get(upload_id)
        if upload is None:
            raise NotFoundError("Upload not found")
        if upload.user_id != user_id:
            raise ForbiddenError("You do not have access to this upload")
        if upload.status == UploadStatus.ANALYZING:
            raise ConflictError("Analysis already in progress")

        if upload.status in (UploadStatus.COMPLETED, UploadStatus.FAILED) and not reanalyze:
            existing = await AnalysisResultRepository.get_by_upload(upload_id)
            if existing is not None:
                return StartOutcome(
                    upload_id=upload_id,
                    analysis_result_id=existing.id,
                    status=upload.status,
                    started=False,
                    message="Analysis already finished; pass reanalyze=true to run it again",
                )

        # Single conditional update: a concurrent trigger sees rowcount 0
        if not await UploadRepository.claim_for_analysis(upload_id, upload.status):
            raise ConflictError("Analysis already in progress")

        result = await self._create_result(upload_id)

        self._submit(upload_id, self.run, upload_id)
        logger.info("[Pipeline] Analysis queued for upload %s (result %s)", upload_id, result.id)

        return StartOutcome(
            upload_id=upload_id,
            analysis_result_id=result.id,
            status=UploadStatus.ANALYZING,
            started=True,
            message="Analysis started; poll the upload for progress",
        )

    async def reanalyze_all(self, user_id: str) -> List[StartOutcome]:
        """
        Re-run analysis for every COMPLETED upload of a user, oldest first.

        Each upload is claimed and queued in turn; one that another trigger
        claimed in the meantime is skipped.
        """
        outcomes: List[StartOutcome] = []
        for upload in await UploadRepository.list_for_user(user_id, UploadStatus.COMPLETED):
            try:
                outcomes.append(await self.start(upload.id, user_id, reanalyze=True))
            except ConflictError:
                logger.info("[Pipeline] Upload %s was claimed concurrently, skipping", upload.id)

        logger.info("[Pipeline] Re-analysis queued for %d uploads of %s", len(outcomes), user_id)
        return outcomes

    async def resume(self, upload_id: str) -> bool:
        """
        Re-submit an interrupted run.

        Returns:
            False when the upload is no longer ANALYZING
        """
        upload = await UploadRepository.get(upload_id)
        if upload is None or upload.status != UploadStatus.ANALYZING:
            return False
        logger.info("[Pipeline] Resuming analysis of upload %s", upload_id)
        self._submit(upload_id, self.run, upload_id)
        return True

    async def run(self, upload_id: str):
        """
        Execute the remaining phases for an ANALYZING upload.

        A missing result starts from scratch; a result whose rule phase
        is marked complete goes straight to the LLM phase.
        """
        upload = await UploadRepository.get(upload_id)
        if upload is None or upload.status != UploadStatus.ANALYZING:
            logger.warning("[Pipeline] Upload %s is not ANALYZING, skipping run", upload_id)
            return

        result = await AnalysisResultRepository.get_by_upload(upload_id)
        try:
            if result is None:
                result = await self._create_result(upload_id)

            lines: Optional[List[str]] = None
            if not result.rule_based_completed:
                lines = await self.run_rule_phase(upload, result)
            else:
                logger.info("[Pipeline] Rule phase already complete for upload %s", upload_id)

            await self.run_llm_phase(upload, result, lines)
        except Exception as e:
            logger.exception("[Pipeline] Analysis of upload %s failed", upload_id)
            await self._fail(upload, result, e)

    async def run_rule_phase(self, upload: Upload, result: AnalysisResult) -> List[str]:
        """
        Run the rule engine and durably mark the phase complete.

        Partial rule findings from an interrupted attempt are discarded
        first; rule output is deterministic, so regenerating is safe.

        Returns:
            The file lines, for reuse by the LLM phase
        """
        removed = await FindingRepository.delete_by_source(result.id, FindingSource.RULE_BASED)
        if removed:
            logger.info("[Pipeline] Discarded %d partial rule findings for upload %s", removed, upload.id)

        lines = await self.storage.read_lines(upload.storage_path)
        engine_result = self.engine.analyze(lines)
        inserted = await FindingRepository.insert_many(result.id, engine_result.findings)

        result.rule_based_completed = True
        result.total_lines_analyzed = engine_result.total_lines
        await AnalysisResultRepository.update(result)
        await UploadRepository.touch(upload.id)

        logger.info(
            "[Pipeline] Rule phase complete for upload %s: %d findings over %d lines",
            upload.id, inserted, engine_result.total_lines,
        )
        return lines

    async def run_llm_phase(
        self,
        upload: Upload,
        result: AnalysisResult,
        lines: Optional[List[str]] = None,
    ):
        """
        Run the LLM orchestrator, merge each batch and finalize the result.
        """
        if lines is None:
            lines = await self.storage.read_lines(upload.storage_path)

        stored = await self._settings_resolver(upload.user_id)
        override = resolve_llm_config(stored=stored, settings=self.settings)

        async def persist(batch: List[Finding]):
            existing = await FindingRepository.fingerprints(result.id)
            merged = merge_findings([], batch, existing_fingerprints=existing, library=self.library)
            if merged:
                await FindingRepository.insert_many(result.id, merged)
            await UploadRepository.touch(upload.id)

        llm_result = await self.orchestrator.analyze(lines, override, on_findings=persist)

        counts = await FindingRepository.count_by_severity(result.id)
        result.total_findings = sum(counts.values())
        result.critical_count = counts[Severity.CRITICAL]
        result.high_count = counts[Severity.HIGH]
        result.medium_count = counts[Severity.MEDIUM]
        result.low_count = counts[Severity.LOW]
        result.info_count = counts[Severity.INFO]
        result.llm_available = llm_result.llm_available
        result.llm_completed = llm_result.llm_completed
        result.warnings = list(llm_result.warnings)
        if not llm_result.llm_available:
            result.warnings.append(NO_PROVIDER_WARNING)
        if not result.total_lines_analyzed:
            result.total_lines_analyzed = len(lines)

        result.overall_summary = None
        if override is not None and llm_result.chunks_failed < llm_result.chunks_total:
            result.overall_summary = await self._summarize(result, override)

        result.status = AnalysisStatus.COMPLETED
        result.analysis_ended_at = utcnow()
        await AnalysisResultRepository.update(result)
        await UploadRepository.set_status(upload.id, UploadStatus.COMPLETED)

        logger.info(
            "[Pipeline] Analysis complete for upload %s: %d findings (LLM %s)",
            upload.id, result.total_findings,
            "complete" if result.llm_completed else ("partial" if result.llm_available else "skipped"),
        )

    async def _summarize(self, result: AnalysisResult, override: LLMOverride) -> Optional[str]:
        findings = await FindingRepository.list_for_result(result.id)
        try:
            return await self.orchestrator.summarize(findings, result.total_lines_analyzed, override)
        except UpstreamProviderError as e:
            result.warnings.append(f"LLM summary unavailable ({e.message})")
            return None

    async def _create_result(self, upload_id: str) -> AnalysisResult:
        result = AnalysisResult(
            id=str(uuid.uuid4()),
            upload_id=upload_id,
            rule_based_completed=False,
            analysis_started_at=utcnow(),
        )
        return await AnalysisResultRepository.create(result)

    async def _fail(self, upload: Upload, result: Optional[AnalysisResult], error: Exception):
        if result is not None:
            result.status = AnalysisStatus.FAILED
            result.error_message = _error_message(error)
            result.analysis_ended_at = utcnow()
            await AnalysisResultRepository.update(result)
        await UploadRepository.set_status(upload.id, UploadStatus.FAILED)


def _error_message(error: Exception) -> str:
    """Caller-safe description of a phase failure."""
    if isinstance(error, ThreatLensError):
        return error.message
    if isinstance(error, OSError):
        return "The uploaded log file could not be read"
    return "Unexpected error during analysis"

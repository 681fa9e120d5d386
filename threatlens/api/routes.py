"""
FastAPI API routes.
"""

import logging
import math
import uuid
from datetime import date, datetime
from pathlib import Path
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, File, Query, Response, UploadFile
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from threatlens import __version__
from threatlens.analysis import AnalysisPipeline
from threatlens.api.dependencies import (
    get_admission_guard,
    get_current_user,
    get_orchestrator,
    get_pipeline,
    get_rule_engine,
    get_storage,
)
from threatlens.api.rate_limit import AdmissionGuard
from threatlens.config import get_settings
from threatlens.database import AnalysisResultRepository, FindingRepository, UploadRepository
from threatlens.detection import RuleEngine
from threatlens.errors import ForbiddenError, NotFoundError, RateLimitedError, ValidationError
from threatlens.llm import LLMOrchestrator, LLMOverride, ProviderName, resolve_llm_config
from threatlens.models.finding import FindingSource, Severity, ThreatCategory
from threatlens.models.upload import AnalysisStatus, Upload, UploadStatus
from threatlens.storage import LocalLogStorage


logger = logging.getLogger(__name__)

router = APIRouter()


MAX_PAGE_SIZE = 100


class CamelModel(BaseModel):
    """Response/request base: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# Request/Response Models
class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str


class PatternInfo(CamelModel):
    label: str
    title: str
    category: str
    kind: str
    severity: str
    confidence: float
    description: str
    pattern: Optional[str] = None
    mitre_tactic: Optional[str] = None
    mitre_technique: Optional[str] = None


class RuleInfo(CamelModel):
    rule_id: str
    rule_name: str
    description: str
    category: str
    mitre_tactic: Optional[str] = None
    mitre_technique: Optional[str] = None


class RulesResponse(CamelModel):
    patterns: List[PatternInfo]
    rules: List[RuleInfo]
    patterns_by_category: Dict[str, int]


class AnalysisSummary(CamelModel):
    id: str
    status: AnalysisStatus
    rule_based_completed: bool
    llm_available: bool
    llm_completed: bool
    total_lines_analyzed: int
    total_findings: int
    critical_count: int
    high_count: int
    medium_count: int
    low_count: int
    info_count: int
    warnings: List[str]
    overall_summary: Optional[str] = None
    error_message: Optional[str] = None
    analysis_started_at: Optional[datetime] = None
    analysis_ended_at: Optional[datetime] = None


class UploadResponse(CamelModel):
    id: str
    file_name: str
    file_size: int
    status: UploadStatus
    created_at: datetime
    updated_at: datetime
    analysis: Optional[AnalysisSummary] = None


class AnalyzeResponse(CamelModel):
    upload_id: str
    analysis_result_id: str
    status: UploadStatus
    message: str


class ReanalyzeAllResponse(CamelModel):
    message: str
    total: int
    upload_ids: List[str]


class FindingResponse(CamelModel):
    id: str
    analysis_result_id: str
    severity: Severity
    category: ThreatCategory
    title: str
    description: str
    line_number: Optional[int] = None
    line_content: Optional[str] = None
    matched_pattern: Optional[str] = None
    source: FindingSource
    fingerprint: str
    recommendation: Optional[str] = None
    confidence: Optional[float] = None
    mitre_tactic: Optional[str] = None
    mitre_technique: Optional[str] = None
    event_timestamp: Optional[datetime] = None
    created_at: datetime


class FindingPage(CamelModel):
    findings: List[FindingResponse]
    page: int
    limit: int
    total: int
    total_pages: int


class ConnectionTestRequest(CamelModel):
    provider: Optional[ProviderName] = None
    api_key: Optional[str] = Field(default=None, repr=False)


class ConnectionTestResponse(CamelModel):
    success: bool
    provider: str
    message: str


# Routes
@router.get("/api/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse(status="healthy", version=__version__)


@router.get("/api/rules", response_model=RulesResponse)
async def list_rules(engine: RuleEngine = Depends(get_rule_engine)):
    """List the Pattern Library and all active statistical rules."""
    patterns = [PatternInfo.model_validate(entry) for entry in engine.library.describe()]
    by_category: Dict[str, int] = {}
    for pattern in patterns:
        by_category[pattern.category] = by_category.get(pattern.category, 0) + 1

    return RulesResponse(
        patterns=patterns,
        rules=[RuleInfo.model_validate(rule) for rule in engine.get_rule_info()],
        patterns_by_category=by_category,
    )


@router.post("/api/uploads", response_model=UploadResponse, status_code=201)
async def create_upload(
    file: UploadFile = File(...),
    user_id: str = Depends(get_current_user),
    storage: LocalLogStorage = Depends(get_storage),
):
    """
    Store an uploaded log file for later analysis.

    The file must have an allowed extension, be non-empty and fit within
    the configured size limit.
    """
    settings = get_settings()
    file_name = Path(file.filename or "").name
    extension = Path(file_name).suffix.lower()
    if extension not in settings.allowed_extensions:
        raise ValidationError(
            f"Unsupported file type. Allowed: {', '.join(settings.allowed_extensions)}"
        )

    data = await file.read()
    if not data:
        raise ValidationError("Uploaded file is empty")
    if len(data) > settings.max_upload_bytes:
        raise ValidationError(f"File exceeds the {settings.max_upload_bytes} byte limit")

    upload_id = str(uuid.uuid4())
    storage_path = await storage.save(user_id, upload_id, file_name, data)
    upload = await UploadRepository.create(Upload(
        id=upload_id,
        user_id=user_id,
        file_name=file_name,
        file_size=len(data),
        storage_path=storage_path,
    ))

    logger.info("Upload %s created by %s (%s, %d bytes)", upload.id, user_id, file_name, len(data))
    return UploadResponse.model_validate(upload)


@router.get("/api/uploads/{upload_id}", response_model=UploadResponse)
async def get_upload(upload_id: str, user_id: str = Depends(get_current_user)):
    """Get an upload with its analysis status. Clients poll this while ANALYZING."""
    upload = await _owned_upload(upload_id, user_id)
    result = await AnalysisResultRepository.get_by_upload(upload_id)

    response = UploadResponse.model_validate(upload)
    if result is not None:
        response.analysis = AnalysisSummary.model_validate(result)
    return response


@router.post("/api/uploads/{upload_id}/analyze", response_model=AnalyzeResponse, status_code=202)
async def analyze_upload(
    upload_id: str,
    response: Response,
    reanalyze: bool = False,
    user_id: str = Depends(get_current_user),
    guard: AdmissionGuard = Depends(get_admission_guard),
    pipeline: AnalysisPipeline = Depends(get_pipeline),
):
    """
    Start analysis of an upload.

    Returns 202 once the run is queued, or 200 with the existing result
    when the upload was already analyzed and ``reanalyze`` is not set.
    """
    _admit(guard, user_id)

    outcome = await pipeline.start(upload_id, user_id, reanalyze=reanalyze)
    if not outcome.started:
        response.status_code = 200

    return AnalyzeResponse(
        upload_id=outcome.upload_id,
        analysis_result_id=outcome.analysis_result_id,
        status=outcome.status,
        message=outcome.message,
    )


@router.post("/api/uploads/reanalyze-all", response_model=ReanalyzeAllResponse, status_code=202)
async def reanalyze_all_uploads(
    response: Response,
    user_id: str = Depends(get_current_user),
    guard: AdmissionGuard = Depends(get_admission_guard),
    pipeline: AnalysisPipeline = Depends(get_pipeline),
):
    """
    Re-analyze every COMPLETED upload of the caller.

    Counts as one analysis request against the admission guard. Returns
    200 with ``total`` 0 when there is nothing to re-analyze.
    """
    _admit(guard, user_id)

    outcomes = await pipeline.reanalyze_all(user_id)
    if not outcomes:
        response.status_code = 200
        return ReanalyzeAllResponse(message="No completed uploads to re-analyze", total=0, upload_ids=[])

    return ReanalyzeAllResponse(
        message=f"Re-analysis started for {len(outcomes)} uploads",
        total=len(outcomes),
        upload_ids=[outcome.upload_id for outcome in outcomes],
    )


@router.get("/api/uploads/{upload_id}/findings", response_model=List[FindingResponse])
async def list_upload_findings(upload_id: str, user_id: str = Depends(get_current_user)):
    """All findings of one upload's analysis, most severe first."""
    await _owned_upload(upload_id, user_id)
    result = await AnalysisResultRepository.get_by_upload(upload_id)
    if result is None:
        return []
    findings = await FindingRepository.list_for_result(result.id)
    return [FindingResponse.model_validate(f) for f in findings]


@router.get("/api/findings", response_model=FindingPage)
async def list_findings(
    page: int = Query(1, ge=1),
    limit: int = Query(25, ge=1),
    severity: Optional[Severity] = None,
    category: Optional[ThreatCategory] = None,
    source: Optional[FindingSource] = None,
    search: Optional[str] = Query(None, max_length=200),
    date_start: Optional[date] = Query(None, alias="dateStart"),
    date_end: Optional[date] = Query(None, alias="dateEnd"),
    user_id: str = Depends(get_current_user),
):
    """
    Paginated findings across the caller's uploads.

    Args:
        page: 1-based page number
        limit: Page size, capped at 100
        severity: Filter by severity
        category: Filter by threat category
        source: Filter by RULE_BASED or LLM
        search: Case-insensitive substring of title or description
        date_start: Earliest event date (YYYY-MM-DD), inclusive
        date_end: Latest event date (YYYY-MM-DD), inclusive
    """
    if date_start and date_end and date_start > date_end:
        raise ValidationError("dateStart must not be after dateEnd")

    limit = min(limit, MAX_PAGE_SIZE)
    findings, total = await FindingRepository.query_for_user(
        user_id,
        page=page,
        limit=limit,
        severity=severity,
        category=category,
        source=source,
        search=search.strip() if search else None,
        date_start=date_start,
        date_end=date_end,
    )

    return FindingPage(
        findings=[FindingResponse.model_validate(f) for f in findings],
        page=page,
        limit=limit,
        total=total,
        total_pages=math.ceil(total / limit) if total else 0,
    )


@router.post("/api/settings/test-connection", response_model=ConnectionTestResponse)
async def test_connection(
    request: ConnectionTestRequest,
    user_id: str = Depends(get_current_user),
    orchestrator: LLMOrchestrator = Depends(get_orchestrator),
):
    """
    Check LLM provider credentials.

    Uses the key in the request when given, otherwise the environment
    default. Failures come back as a sanitized upstream_provider error.
    """
    explicit = None
    if request.api_key:
        if request.provider is None:
            raise ValidationError("provider is required when apiKey is given")
        explicit = LLMOverride(provider=request.provider, api_key=request.api_key)

    override = resolve_llm_config(explicit=explicit)
    if override is None:
        raise ValidationError("No LLM provider configured")

    provider = await orchestrator.test_connection(override)
    return ConnectionTestResponse(success=True, provider=provider, message="Connection successful")


def _admit(guard: AdmissionGuard, user_id: str):
    admission = guard.check(user_id)
    if not admission.allowed:
        raise RateLimitedError(
            "Too many analysis requests, try again later",
            retry_after_ms=admission.retry_after_ms,
        )


async def _owned_upload(upload_id: str, user_id: str) -> Upload:
    upload = await UploadRepository.get(upload_id)
    if upload is None:
        raise NotFoundError("Upload not found")
    if upload.user_id != user_id:
        raise ForbiddenError("You do not have access to this upload")
    return upload

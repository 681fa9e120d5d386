"""
Upload and AnalysisResult models - the persisted pipeline state.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from threatlens.models.finding import utcnow


class UploadStatus(str, Enum):
    """Upload lifecycle. Mutated only by the analysis pipeline."""

    PENDING = "PENDING"
    ANALYZING = "ANALYZING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class AnalysisStatus(str, Enum):
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class Upload(BaseModel):
    """An uploaded log file owned by one user."""

    id: str
    user_id: str
    file_name: str
    file_size: int
    storage_path: str
    status: UploadStatus = UploadStatus.PENDING
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class AnalysisResult(BaseModel):
    """
    One-to-one with an Upload.

    ``rule_based_completed`` is the durable phase marker: once it is
    true the rule phase never runs again for this result, and a resumed
    run goes straight to the LLM phase.
    """

    id: str
    upload_id: str
    status: AnalysisStatus = AnalysisStatus.IN_PROGRESS
    rule_based_completed: bool = False
    llm_available: bool = False
    llm_completed: bool = False
    total_lines_analyzed: int = 0
    total_findings: int = 0
    critical_count: int = 0
    high_count: int = 0
    medium_count: int = 0
    low_count: int = 0
    info_count: int = 0
    warnings: List[str] = Field(default_factory=list)
    overall_summary: Optional[str] = None
    error_message: Optional[str] = None
    analysis_started_at: Optional[datetime] = None
    analysis_ended_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

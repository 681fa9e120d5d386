"""
Pydantic models for ThreatLens.
"""

from threatlens.models.log_entry import LogFormat, LogLine
from threatlens.models.finding import (
    Finding,
    FindingSource,
    Severity,
    ThreatCategory,
    sort_findings,
)
from threatlens.models.upload import (
    AnalysisResult,
    AnalysisStatus,
    Upload,
    UploadStatus,
)

__all__ = [
    "LogFormat",
    "LogLine",
    "Finding",
    "FindingSource",
    "Severity",
    "ThreatCategory",
    "sort_findings",
    "AnalysisResult",
    "AnalysisStatus",
    "Upload",
    "UploadStatus",
]

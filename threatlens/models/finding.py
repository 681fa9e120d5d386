"""
Finding model - one detected security-relevant event, from either source.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Severity(str, Enum):
    """Finding severity. CRITICAL is the most severe."""

    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    INFO = "INFO"

    @property
    def rank(self) -> int:
        """Sort index: lower is more severe (CRITICAL = 0)."""
        return _SEVERITY_RANK[self]

    @classmethod
    def ordered(cls) -> List["Severity"]:
        return sorted(cls, key=lambda s: s.rank)


_SEVERITY_RANK = {
    Severity.CRITICAL: 0,
    Severity.HIGH: 1,
    Severity.MEDIUM: 2,
    Severity.LOW: 3,
    Severity.INFO: 4,
}


class ThreatCategory(str, Enum):
    """Threat categories. OTHER is only used for unclassifiable LLM output."""

    SQL_INJECTION = "SQL_INJECTION"
    XSS = "XSS"
    BRUTE_FORCE = "BRUTE_FORCE"
    DIRECTORY_TRAVERSAL = "DIRECTORY_TRAVERSAL"
    COMMAND_INJECTION = "COMMAND_INJECTION"
    SUSPICIOUS_STATUS_CODE = "SUSPICIOUS_STATUS_CODE"
    MALICIOUS_USER_AGENT = "MALICIOUS_USER_AGENT"
    RATE_ANOMALY = "RATE_ANOMALY"
    PRIVILEGE_ESCALATION = "PRIVILEGE_ESCALATION"
    DATA_EXFILTRATION = "DATA_EXFILTRATION"
    RECONNAISSANCE = "RECONNAISSANCE"
    OTHER = "OTHER"


class FindingSource(str, Enum):
    RULE_BASED = "RULE_BASED"
    LLM = "LLM"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Finding(BaseModel):
    """
    A single security finding.

    Findings are append-only once persisted. ``fingerprint`` is the
    dedup key within one analysis result and is a deterministic function
    of (category, line number, normalized matched content).
    """

    id: Optional[str] = None
    analysis_result_id: Optional[str] = None
    severity: Severity
    category: ThreatCategory
    title: str
    description: str
    line_number: Optional[int] = None
    line_content: Optional[str] = None
    matched_pattern: Optional[str] = Field(
        default=None,
        description="Text that triggered the finding",
    )
    source: FindingSource
    fingerprint: str = ""
    recommendation: Optional[str] = None
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    mitre_tactic: Optional[str] = None
    mitre_technique: Optional[str] = None
    event_timestamp: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "severity": "CRITICAL",
                "category": "SQL_INJECTION",
                "title": "SQL Injection Detected: UNION SELECT",
                "description": "UNION-based SQL injection attempting to extract data from other tables",
                "line_number": 42,
                "line_content": '203.0.113.5 - - [10/Oct/2023:13:55:36 +0000] "GET /item?id=1 UNION SELECT pass FROM users HTTP/1.1" 200 512',
                "matched_pattern": "UNION SELECT",
                "source": "RULE_BASED",
                "fingerprint": "3f9a1c0b7d2e4a55",
                "confidence": 0.95,
                "mitre_tactic": "Initial Access",
                "mitre_technique": "T1190 - Exploit Public-Facing Application",
            }
        }
    )


def sort_findings(findings: List[Finding]) -> List[Finding]:
    """Order by severity (CRITICAL first), then line number (unnumbered last)."""
    return sorted(
        findings,
        key=lambda f: (
            f.severity.rank,
            f.line_number is None,
            f.line_number or 0,
        ),
    )

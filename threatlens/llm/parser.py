"""
Normalize raw LLM responses into findings.
"""

import json
import logging
import re
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from threatlens.detection.fingerprint import fingerprint_for, truncate_line
from threatlens.errors import MalformedResponseError
from threatlens.llm.chunker import Chunk
from threatlens.models.finding import Finding, FindingSource, Severity, ThreatCategory
from threatlens.parsers.fields import extract_timestamp


logger = logging.getLogger(__name__)


DEFAULT_CONFIDENCE = 0.7

_CODE_FENCE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
_ARRAY = re.compile(r"\[[\s\S]*\]")


class LLMFindingItem(BaseModel):
    """One finding as returned by the model; unknown keys are ignored."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    title: str
    description: str
    severity: str
    category: str
    line_number: Optional[Any] = Field(default=None, alias="lineNumber")
    evidence: Optional[str] = None
    recommendation: Optional[str] = None
    confidence: Optional[Any] = None
    mitre_tactic: Optional[str] = Field(default=None, alias="mitreTactic")
    mitre_technique: Optional[str] = Field(default=None, alias="mitreTechnique")

    @field_validator("title", "description", "severity", "category")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not str(value).strip():
            raise ValueError("must not be blank")
        return str(value).strip()


def extract_json(raw: str) -> str:
    """Pull the JSON payload out of a response (code fence, bare array, or as-is)."""
    fenced = _CODE_FENCE.search(raw)
    if fenced:
        return fenced.group(1).strip()
    array = _ARRAY.search(raw)
    if array:
        return array.group(0)
    return raw.strip()


def _severity(value: str) -> Severity:
    try:
        return Severity(value.strip().upper())
    except ValueError:
        return Severity.MEDIUM


def _category(value: str) -> ThreatCategory:
    try:
        return ThreatCategory(value.strip().upper())
    except ValueError:
        return ThreatCategory.OTHER


def _confidence(value: Any) -> float:
    if isinstance(value, bool) or value is None:
        return DEFAULT_CONFIDENCE
    try:
        number = float(value)
    except (TypeError, ValueError):
        return DEFAULT_CONFIDENCE
    return max(0.0, min(1.0, number))


def _line_number(value: Any, chunk: Chunk) -> Optional[int]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if chunk.contains(number) else None


def parse_llm_response(raw: str, chunk: Chunk, lines: List[str]) -> List[Finding]:
    """
    Convert one chunk's response into LLM-sourced findings.

    Malformed items are skipped. A response that is not a JSON array is
    a failed request, not an empty one.

    Args:
        raw: Response text from the provider
        chunk: The chunk the response refers to
        lines: All file lines, used to fill ``line_content``

    Returns:
        Findings with fingerprints computed

    Raises:
        MalformedResponseError: The payload is not valid JSON or not an array
    """
    try:
        parsed = json.loads(extract_json(raw))
    except json.JSONDecodeError as e:
        raise MalformedResponseError(f"chunk {chunk.id} response is not valid JSON") from e

    if not isinstance(parsed, list):
        raise MalformedResponseError(f"chunk {chunk.id} response is not a JSON array")

    findings: List[Finding] = []
    for raw_item in parsed:
        if not isinstance(raw_item, dict):
            continue
        try:
            item = LLMFindingItem.model_validate(raw_item)
        except ValidationError:
            logger.debug("[LLM] Chunk %d: skipped malformed finding item", chunk.id)
            continue

        line_number = _line_number(item.line_number, chunk)
        line_content = None
        event_timestamp = None
        if line_number is not None and line_number <= len(lines):
            line_content = truncate_line(lines[line_number - 1])
            event_timestamp = extract_timestamp(lines[line_number - 1])

        finding = Finding(
            severity=_severity(item.severity),
            category=_category(item.category),
            title=item.title[:500],
            description=item.description[:2000],
            line_number=line_number,
            line_content=line_content,
            matched_pattern=(item.evidence or "").strip()[:500] or None,
            source=FindingSource.LLM,
            recommendation=item.recommendation[:1000] if item.recommendation else None,
            confidence=_confidence(item.confidence),
            mitre_tactic=item.mitre_tactic or None,
            mitre_technique=item.mitre_technique or None,
            event_timestamp=event_timestamp,
        )
        finding.fingerprint = fingerprint_for(finding)
        findings.append(finding)

    return findings

"""
Deterministic finding fingerprints.

The rule engine and the finding merger must agree on this function:
it is the dedup key within one analysis result.
"""

import hashlib
import re
from typing import Optional, Union

from threatlens.models.finding import Finding, ThreatCategory


MAX_FINGERPRINT_CONTENT = 200
MAX_LINE_CONTENT = 500

_WHITESPACE = re.compile(r"\s+")


def normalize_content(content: Optional[str]) -> str:
    """Lower-case, collapse whitespace, strip and truncate."""
    if not content:
        return ""
    collapsed = _WHITESPACE.sub(" ", content.lower()).strip()
    return collapsed[:MAX_FINGERPRINT_CONTENT]


def compute_fingerprint(
    category: Union[ThreatCategory, str],
    line_number: Optional[int],
    content: Optional[str],
) -> str:
    """
    SHA-256 of ``CATEGORY:line:content``, truncated to 16 hex chars.

    Args:
        category: Threat category of the finding
        line_number: Line number, or None for aggregate findings
        content: Matched text; normalized before hashing

    Returns:
        16-character lowercase hex string
    """
    category_value = category.value if isinstance(category, ThreatCategory) else str(category)
    line_part = "" if line_number is None else str(line_number)
    payload = f"{category_value}:{line_part}:{normalize_content(content)}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:16]


def fingerprint_for(finding: Finding) -> str:
    """Fingerprint of a finding from its matched text, falling back to the title."""
    return compute_fingerprint(
        finding.category,
        finding.line_number,
        finding.matched_pattern or finding.title,
    )


def truncate_line(line: str, max_length: int = MAX_LINE_CONTENT) -> str:
    """Truncate a line for display in findings."""
    if len(line) <= max_length:
        return line
    return line[:max_length] + "..."

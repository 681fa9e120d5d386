"""
Pattern Library building blocks.

Every detector, whatever its origin, is a ``PatternEntry`` with the same
shape. The rule engine only ever iterates entries; adding a detector
means adding an entry.
"""

import re
from enum import Enum
from typing import Callable, Iterable, List, Optional, Pattern, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict

from threatlens.models.finding import Severity, ThreatCategory
from threatlens.parsers.fields import STATUS_CODE_PATTERN, extract_user_agent


# A matcher is a pure function over one normalized line that returns the
# matched text, or None when the line does not match.
Matcher = Callable[[str], Optional[str]]


class PatternKind(str, Enum):
    """Variant tag for pattern entries."""

    # Emits one finding per matching line
    SIGNATURE = "SIGNATURE"
    # Marks a line as a failed authentication for the per-IP aggregator
    AUTH_FAILURE = "AUTH_FAILURE"


class PatternEntry(BaseModel):
    """
    A single declarative detector.

    ``title`` is the finding title; ``pattern`` is the human-readable
    source of the matcher (the regex, usually), shown in rule listings.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    label: str
    title: str
    category: ThreatCategory
    severity: Severity
    confidence: float
    description: str
    matcher: Matcher
    pattern: str
    mitre_tactic: Optional[str] = None
    mitre_technique: Optional[str] = None
    recommendation: Optional[str] = None
    kind: PatternKind = PatternKind.SIGNATURE

    def match(self, line: str) -> Optional[str]:
        return self.matcher(line)


def regex_matcher(regex: Pattern) -> Matcher:
    """Matcher returning the first regex match in the line."""

    def _match(line: str) -> Optional[str]:
        found = regex.search(line)
        return found.group(0) if found else None

    return _match


def status_matcher(code: int) -> Matcher:
    """Matcher for an HTTP response with the given status code."""
    wanted = str(code)

    def _match(line: str) -> Optional[str]:
        found = STATUS_CODE_PATTERN.search(line)
        if found and found.group(1) == wanted:
            return found.group(0).strip()
        return None

    return _match


def user_agent_matcher(regex: Pattern) -> Matcher:
    """
    Matcher applied to the request's User-Agent.

    Falls back to the whole line when no user agent can be located, so
    tool signatures in non-HTTP logs are still seen.
    """

    def _match(line: str) -> Optional[str]:
        user_agent = extract_user_agent(line)
        found = regex.search(user_agent if user_agent is not None else line)
        return found.group(0) if found else None

    return _match


def empty_user_agent_matcher(line: str) -> Optional[str]:
    user_agent = extract_user_agent(line)
    if user_agent is not None and not user_agent.strip():
        return '""'
    return None


# (regex, label, severity, confidence, description)
SignatureSpec = Tuple[Pattern, str, Severity, float, str]


def signature_entries(
    category: ThreatCategory,
    title_prefix: str,
    mitre_tactic: str,
    mitre_technique: str,
    recommendation: str,
    specs: Sequence[SignatureSpec],
    matcher_factory: Callable[[Pattern], Matcher] = regex_matcher,
) -> List[PatternEntry]:
    """Build the entries of one category sharing MITRE mapping and advice."""
    return [
        PatternEntry(
            label=label,
            title=f"{title_prefix}: {label}",
            category=category,
            severity=severity,
            confidence=confidence,
            description=description,
            matcher=matcher_factory(regex),
            pattern=regex.pattern,
            mitre_tactic=mitre_tactic,
            mitre_technique=mitre_technique,
            recommendation=recommendation,
        )
        for regex, label, severity, confidence, description in specs
    ]


def entries_from_regexes(
    patterns: Iterable[Union[str, Pattern]],
    kind: PatternKind,
    category: ThreatCategory,
    label_prefix: str,
    severity: Severity,
    confidence: float,
    description: str,
    mitre_tactic: Optional[str] = None,
    mitre_technique: Optional[str] = None,
) -> List[PatternEntry]:
    """
    Convert an untyped list of regexes into pattern entries.

    Labels are synthesized as ``"<prefix> #N: <regex>"`` (1-based N).
    String patterns are compiled case-insensitively.
    """
    entries = []
    for number, raw in enumerate(patterns, start=1):
        regex = raw if isinstance(raw, re.Pattern) else re.compile(raw, re.IGNORECASE)
        label = f"{label_prefix} #{number}: {regex.pattern}"
        entries.append(
            PatternEntry(
                label=label,
                title=label,
                category=category,
                severity=severity,
                confidence=confidence,
                description=description,
                matcher=regex_matcher(regex),
                pattern=regex.pattern,
                mitre_tactic=mitre_tactic,
                mitre_technique=mitre_technique,
                kind=kind,
            )
        )
    return entries

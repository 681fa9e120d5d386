"""
The Pattern Library: lookup over all declarative detectors.
"""

import re
from collections import OrderedDict
from typing import Dict, Iterable, List, Optional, Tuple

from threatlens.detection.patterns.base import PatternEntry, PatternKind
from threatlens.models.finding import ThreatCategory


# Category-level MITRE mapping for findings that do not come from a
# specific entry (statistical rules, LLM findings).
CATEGORY_MITRE: Dict[ThreatCategory, Tuple[str, str]] = {
    ThreatCategory.SQL_INJECTION: ("Initial Access", "T1190 - Exploit Public-Facing Application"),
    ThreatCategory.XSS: ("Initial Access", "T1189 - Drive-by Compromise"),
    ThreatCategory.BRUTE_FORCE: ("Credential Access", "T1110 - Brute Force"),
    ThreatCategory.DIRECTORY_TRAVERSAL: ("Collection", "T1005 - Data from Local System"),
    ThreatCategory.COMMAND_INJECTION: ("Execution", "T1059 - Command and Scripting Interpreter"),
    ThreatCategory.SUSPICIOUS_STATUS_CODE: ("Reconnaissance", "T1595 - Active Scanning"),
    ThreatCategory.MALICIOUS_USER_AGENT: ("Reconnaissance", "T1595 - Active Scanning"),
    ThreatCategory.RATE_ANOMALY: ("Impact", "T1498 - Network Denial of Service"),
    ThreatCategory.PRIVILEGE_ESCALATION: ("Privilege Escalation", "T1548 - Abuse Elevation Control Mechanism"),
    ThreatCategory.DATA_EXFILTRATION: ("Exfiltration", "T1048 - Exfiltration Over Alternative Protocol"),
    ThreatCategory.RECONNAISSANCE: ("Reconnaissance", "T1595 - Active Scanning"),
}

_TECHNIQUE_ID = re.compile(r"\bT\d{4}(?:\.\d{3})?\b")


def technique_id(technique: Optional[str]) -> Optional[str]:
    """Extract the ATT&CK id (e.g. ``T1110.003``) from a technique string."""
    if not technique:
        return None
    match = _TECHNIQUE_ID.search(technique)
    return match.group(0) if match else None


class PatternLibrary:
    """
    Read-only collection of pattern entries.

    The library has no behavior beyond lookup; the rule engine asks it
    for signatures and indicators and never branches on where an entry
    came from.
    """

    def __init__(self, entries: Iterable[PatternEntry], extra_techniques: Iterable[Tuple[str, str]] = ()):
        self._entries: List[PatternEntry] = list(entries)
        self._extra_techniques = list(extra_techniques)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries)

    def add(self, entry: PatternEntry) -> None:
        """Register an additional entry."""
        self._entries.append(entry)

    def signatures(self) -> List[PatternEntry]:
        return self.indicators(PatternKind.SIGNATURE)

    def indicators(self, kind: PatternKind) -> List[PatternEntry]:
        return [e for e in self._entries if e.kind == kind]

    def by_category(self) -> "OrderedDict[ThreatCategory, List[PatternEntry]]":
        grouped: "OrderedDict[ThreatCategory, List[PatternEntry]]" = OrderedDict()
        for entry in self._entries:
            grouped.setdefault(entry.category, []).append(entry)
        return grouped

    def mitre_for(self, category: ThreatCategory) -> Tuple[Optional[str], Optional[str]]:
        """Default (tactic, technique) for a category, or (None, None)."""
        if category in CATEGORY_MITRE:
            return CATEGORY_MITRE[category]
        for entry in self._entries:
            if entry.category == category and entry.mitre_technique:
                return entry.mitre_tactic, entry.mitre_technique
        return None, None

    def mitre_vocabulary(self) -> Dict[str, str]:
        """
        Every technique known to the library, keyed by ATT&CK id.

        Returns:
            Mapping of technique id to the full technique string
        """
        vocabulary: Dict[str, str] = {}
        pairs = [(e.mitre_tactic, e.mitre_technique) for e in self._entries]
        pairs.extend(CATEGORY_MITRE.values())
        pairs.extend(self._extra_techniques)
        for _, technique in pairs:
            tid = technique_id(technique)
            if tid and tid not in vocabulary:
                vocabulary[tid] = technique
        return vocabulary

    def tactic_for(self, technique: str) -> Optional[str]:
        """Tactic paired with a full technique string anywhere in the library."""
        pairs = [(e.mitre_tactic, e.mitre_technique) for e in self._entries]
        pairs.extend(CATEGORY_MITRE.values())
        pairs.extend(self._extra_techniques)
        for tactic, known in pairs:
            if known == technique and tactic:
                return tactic
        return None

    def describe(self) -> List[dict]:
        """Serializable listing of every entry, grouped by category order."""
        listing = []
        for category, entries in self.by_category().items():
            for entry in entries:
                listing.append({
                    "label": entry.label,
                    "title": entry.title,
                    "category": category.value,
                    "kind": entry.kind.value,
                    "severity": entry.severity.value,
                    "confidence": entry.confidence,
                    "description": entry.description,
                    "pattern": entry.pattern,
                    "mitre_tactic": entry.mitre_tactic,
                    "mitre_technique": entry.mitre_technique,
                })
        return listing


def load_default_library() -> PatternLibrary:
    """Build the library from every built-in pattern module."""
    from threatlens.detection.patterns.command_injection import COMMAND_INJECTION_PATTERNS
    from threatlens.detection.patterns.data_exfiltration import DATA_EXFILTRATION_PATTERNS
    from threatlens.detection.patterns.directory_traversal import DIRECTORY_TRAVERSAL_PATTERNS
    from threatlens.detection.patterns.failed_auth import FAILED_AUTH_PATTERNS
    from threatlens.detection.patterns.malicious_agents import MALICIOUS_AGENT_PATTERNS
    from threatlens.detection.patterns.privilege_escalation import PRIVILEGE_ESCALATION_PATTERNS
    from threatlens.detection.patterns.sql_injection import SQL_INJECTION_PATTERNS
    from threatlens.detection.patterns.suspicious_status import SUSPICIOUS_STATUS_PATTERNS
    from threatlens.detection.patterns.xss import XSS_PATTERNS

    entries: List[PatternEntry] = []
    for group in (
        SQL_INJECTION_PATTERNS,
        XSS_PATTERNS,
        FAILED_AUTH_PATTERNS,
        DIRECTORY_TRAVERSAL_PATTERNS,
        COMMAND_INJECTION_PATTERNS,
        SUSPICIOUS_STATUS_PATTERNS,
        MALICIOUS_AGENT_PATTERNS,
        PRIVILEGE_ESCALATION_PATTERNS,
        DATA_EXFILTRATION_PATTERNS,
    ):
        entries.extend(group)

    return PatternLibrary(
        entries,
        extra_techniques=[
            ("Credential Access", "T1110.003 - Brute Force: Password Spraying"),
            ("Reconnaissance", "T1595.003 - Active Scanning: Wordlist Scanning"),
            ("Impact", "T1499 - Endpoint Denial of Service"),
        ],
    )

"""
Finding merger - combines rule-based and LLM findings without duplicates.
"""

import logging
from typing import Iterable, List, Optional, Set

from threatlens.detection.fingerprint import fingerprint_for
from threatlens.detection.patterns import PatternLibrary, load_default_library, technique_id
from threatlens.models.finding import Finding, FindingSource, sort_findings


logger = logging.getLogger(__name__)


def merge_findings(
    rule_findings: Iterable[Finding],
    llm_findings: Iterable[Finding],
    existing_fingerprints: Iterable[str] = (),
    library: Optional[PatternLibrary] = None,
) -> List[Finding]:
    """
    Merge both sources into one collision-free list.

    Rule-based findings win every fingerprint collision. LLM findings
    that repeat a rule finding, an earlier LLM finding (overlapping
    chunks), or anything in ``existing_fingerprints`` are dropped.

    Args:
        rule_findings: Findings from the rule engine
        llm_findings: Findings from the LLM orchestrator
        existing_fingerprints: Fingerprints already persisted for the result
        library: Source of the MITRE vocabulary for LLM findings

    Returns:
        New findings to persist, most severe first, then by line number
    """
    library = library or load_default_library()
    vocabulary = library.mitre_vocabulary()
    seen: Set[str] = set(existing_fingerprints)
    merged: List[Finding] = []
    dropped = 0

    for finding in rule_findings:
        finding.fingerprint = fingerprint_for(finding)
        if finding.fingerprint in seen:
            dropped += 1
            continue
        seen.add(finding.fingerprint)
        merged.append(finding)

    for finding in llm_findings:
        finding.fingerprint = fingerprint_for(finding)
        if finding.fingerprint in seen:
            dropped += 1
            continue
        seen.add(finding.fingerprint)
        _apply_vocabulary(finding, library, vocabulary)
        merged.append(finding)

    if dropped:
        logger.debug("Merger dropped %d duplicate findings", dropped)
    return sort_findings(merged)


def _apply_vocabulary(finding: Finding, library: PatternLibrary, vocabulary: dict) -> None:
    """Map an LLM finding's technique onto the library's vocabulary."""
    if finding.source != FindingSource.LLM:
        return

    known = vocabulary.get(technique_id(finding.mitre_technique) or "")
    if known:
        finding.mitre_technique = known
        if not finding.mitre_tactic:
            finding.mitre_tactic = library.tactic_for(known)
        return

    # Missing or unknown technique: fall back to the category default
    tactic, technique = library.mitre_for(finding.category)
    finding.mitre_tactic = tactic
    finding.mitre_technique = technique

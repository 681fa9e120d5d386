"""
Rule engine - applies the Pattern Library and statistical rules to a file.
"""

import logging
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from threatlens.detection.aggregator import SourceAggregator
from threatlens.detection.fingerprint import fingerprint_for, truncate_line
from threatlens.detection.patterns import PatternEntry, PatternKind, PatternLibrary, load_default_library
from threatlens.detection.rules import (
    BruteForceRule,
    BurstRule,
    DirectoryEnumerationRule,
    ErrorRatioRule,
    PasswordSprayRule,
    RateVolumeRule,
    StatisticalRule,
)
from threatlens.models.finding import Finding, FindingSource
from threatlens.models.log_entry import LogFormat, LogLine
from threatlens.parsers import ParserOrchestrator


logger = logging.getLogger(__name__)


class RuleEngineResult(BaseModel):
    findings: List[Finding] = Field(default_factory=list)
    total_lines: int = 0
    skipped_lines: int = 0
    log_format: LogFormat = LogFormat.PLAIN


class RuleEngine:
    """
    Runs deterministic detection over one uploaded file.

    The engine:
    1. Parses and normalizes every line
    2. Evaluates every signature in the Pattern Library per line
    3. Feeds per-IP counters while doing so
    4. Evaluates statistical rules once the whole file has been seen
    5. Deduplicates by fingerprint, first occurrence wins

    Identical input always yields identical findings.
    """

    def __init__(
        self,
        library: Optional[PatternLibrary] = None,
        rules: Optional[List[StatisticalRule]] = None,
        parser: Optional[ParserOrchestrator] = None,
    ):
        """
        Initialize the rule engine.

        Args:
            library: Pattern library. If None, uses the built-in library.
            rules: Statistical rules. If None, uses default rules.
            parser: Parser orchestrator. If None, a new one is created.
        """
        self.library = library or load_default_library()
        self.rules = rules if rules is not None else self._get_default_rules()
        self.parser = parser or ParserOrchestrator()

    def _get_default_rules(self) -> List[StatisticalRule]:
        """Get the default set of statistical rules."""
        return [
            BruteForceRule(),
            PasswordSprayRule(),
            DirectoryEnumerationRule(),
            RateVolumeRule(),
            ErrorRatioRule(),
            BurstRule(),
        ]

    def analyze(self, raw_lines: List[str]) -> RuleEngineResult:
        """
        Run all detectors against the lines of one file.

        Args:
            raw_lines: File content split into lines, in file order

        Returns:
            RuleEngineResult with deduplicated findings and line counts
        """
        parsed = self.parser.parse(raw_lines)
        signatures = self.library.signatures()
        auth_indicators = self.library.indicators(PatternKind.AUTH_FAILURE)

        aggregator = SourceAggregator()
        findings: Dict[str, Finding] = {}

        # 1. Stateless signatures, one pass
        for line in parsed.lines:
            for entry in signatures:
                matched = entry.match(line.normalized)
                if matched is None:
                    continue
                finding = self._signature_finding(entry, line, matched)
                findings.setdefault(finding.fingerprint, finding)

            failed_auth = any(
                indicator.match(line.normalized) is not None for indicator in auth_indicators
            )
            aggregator.observe(line, failed_auth=failed_auth)

        # 2. Statistical rules over the aggregated state
        for state in aggregator.states():
            for rule in self.rules:
                try:
                    finding = rule.evaluate(state)
                except Exception:
                    # Log error but continue with other rules
                    logger.exception("Error running rule %s for %s", rule.rule_id, state.ip)
                    continue
                if finding is not None:
                    findings.setdefault(finding.fingerprint, finding)

        logger.info(
            "Rule engine processed %d lines (%s): %d findings from %d sources",
            len(parsed.lines), parsed.log_format.value, len(findings), len(aggregator),
        )

        return RuleEngineResult(
            findings=list(findings.values()),
            total_lines=len(parsed.lines),
            skipped_lines=parsed.skipped_lines,
            log_format=parsed.log_format,
        )

    @staticmethod
    def _signature_finding(entry: PatternEntry, line: LogLine, matched: str) -> Finding:
        finding = Finding(
            severity=entry.severity,
            category=entry.category,
            title=entry.title,
            description=entry.description,
            line_number=line.number,
            line_content=truncate_line(line.raw),
            matched_pattern=matched,
            source=FindingSource.RULE_BASED,
            recommendation=entry.recommendation,
            confidence=entry.confidence,
            mitre_tactic=entry.mitre_tactic,
            mitre_technique=entry.mitre_technique,
            event_timestamp=line.timestamp,
        )
        finding.fingerprint = fingerprint_for(finding)
        return finding

    def add_rule(self, rule: StatisticalRule):
        """Add a custom statistical rule."""
        self.rules.append(rule)

    def remove_rule(self, rule_id: str):
        """Remove a rule by ID."""
        self.rules = [r for r in self.rules if r.rule_id != rule_id]

    def get_rule_info(self) -> List[dict]:
        """Get information about all loaded statistical rules."""
        return [rule.info() for rule in self.rules]

"""
Abstract base class for statistical detection rules.
"""

from abc import ABC, abstractmethod
from typing import Optional

from threatlens.detection.aggregator import IpAggregationState
from threatlens.detection.fingerprint import fingerprint_for, truncate_line
from threatlens.models.finding import Finding, FindingSource, Severity, ThreatCategory


class StatisticalRule(ABC):
    """
    Abstract base class for rules evaluated after the full pass.

    Each rule must define:
    - rule_id: Unique identifier
    - rule_name: Human-readable name
    - description: What the rule detects
    - category, mitre_tactic, mitre_technique: Finding classification
    - evaluate(): Core detection logic over one IP's aggregated state

    A rule yields at most one finding per IP.
    """

    rule_id: str
    rule_name: str
    description: str
    category: ThreatCategory
    mitre_tactic: str
    mitre_technique: str
    recommendation: str = ""

    @abstractmethod
    def evaluate(self, state: IpAggregationState) -> Optional[Finding]:
        """
        Evaluate one source IP against this rule.

        Args:
            state: Aggregated counters for the IP

        Returns:
            A finding if the rule's threshold is met, None otherwise
        """
        pass

    def build_finding(
        self,
        state: IpAggregationState,
        severity: Severity,
        confidence: float,
        title: str,
        description: str,
    ) -> Finding:
        """Create the aggregate finding for an IP with this rule's metadata."""
        sample = state.sample_line
        finding = Finding(
            severity=severity,
            category=self.category,
            title=title,
            description=description,
            line_number=None,
            line_content=truncate_line(sample) if sample else None,
            # Stable per (rule, ip) so reruns produce the same fingerprint
            matched_pattern=f"{self.rule_id}:{state.ip}",
            source=FindingSource.RULE_BASED,
            recommendation=self.recommendation,
            confidence=confidence,
            mitre_tactic=self.mitre_tactic,
            mitre_technique=self.mitre_technique,
            event_timestamp=state.first_seen,
        )
        finding.fingerprint = fingerprint_for(finding)
        return finding

    def info(self) -> dict:
        return {
            "rule_id": self.rule_id,
            "rule_name": self.rule_name,
            "description": self.description,
            "category": self.category.value,
            "mitre_tactic": self.mitre_tactic,
            "mitre_technique": self.mitre_technique,
        }

"""
Directory enumeration detection rule.
"""

from typing import Optional

from threatlens.config import get_settings
from threatlens.detection.aggregator import IpAggregationState
from threatlens.detection.rules.base import StatisticalRule
from threatlens.models.finding import Finding, Severity, ThreatCategory


class DirectoryEnumerationRule(StatisticalRule):
    """
    Detects directory and file enumeration.

    Counts every 404 response per source IP, repeated paths included.
    Emits one finding per IP however far past the threshold it goes.

    MITRE ATT&CK:
    - Tactic: Reconnaissance
    - Technique: T1595.003 (Wordlist Scanning)
    """

    rule_id = "DIRECTORY_ENUM_001"
    rule_name = "Directory Enumeration"
    description = "Excessive 404 Not Found responses from single source"
    category = ThreatCategory.RECONNAISSANCE
    mitre_tactic = "Reconnaissance"
    mitre_technique = "T1595.003 - Active Scanning: Wordlist Scanning"
    recommendation = (
        "Implement rate limiting per IP address. Deploy a WAF with bot detection capabilities. Use honeypot "
        "URLs to detect scanners. Consider blocking IPs that generate excessive 404 errors. Review web server "
        "configuration to minimize information leakage in error responses."
    )

    def __init__(self, threshold: Optional[int] = None):
        settings = get_settings()
        self.threshold = settings.directory_enum_threshold if threshold is None else threshold

    def evaluate(self, state: IpAggregationState) -> Optional[Finding]:
        count = state.not_found_count
        if count < self.threshold:
            return None

        paths = len(state.not_found_paths)
        path_info = f" across {paths} distinct paths" if paths else ""
        return self.build_finding(
            state,
            severity=Severity.HIGH,
            confidence=0.85,
            title=f"Directory Enumeration: {count} 404 responses for IP {state.ip}",
            description=(
                f"IP address {state.ip} has triggered {count} 404 Not Found responses{path_info}, "
                "which is a strong indicator of directory and file enumeration using automated tools."
            ),
        )

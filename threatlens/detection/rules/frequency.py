"""
Request rate anomaly rules: volume, error ratio and bursts.
"""

from datetime import timedelta
from typing import Optional

from threatlens.config import get_settings
from threatlens.detection.aggregator import IpAggregationState
from threatlens.detection.rules.base import StatisticalRule
from threatlens.models.finding import Finding, Severity, ThreatCategory


class RateVolumeRule(StatisticalRule):
    """
    Detects abnormal request volume from a single IP.

    Severity escalates with volume (100 MEDIUM, 500 HIGH, 1000 CRITICAL
    by default). Only the highest tier reached is reported.

    MITRE ATT&CK:
    - Tactic: Impact
    - Technique: T1498 (Network Denial of Service)
    """

    rule_id = "RATE_VOLUME_001"
    rule_name = "High Request Volume"
    description = "Request volume from single source exceeds threshold"
    category = ThreatCategory.RATE_ANOMALY
    mitre_tactic = "Impact"
    mitre_technique = "T1498 - Network Denial of Service"
    recommendation = (
        "Implement rate limiting per IP address using a reverse proxy or WAF. Consider deploying a CDN with "
        "DDoS protection. Use progressive rate limiting that increases restrictions as request volume grows. "
        "Set up automated IP blocking for extreme cases. Review if the IP belongs to a legitimate service "
        "(search engine crawler, monitoring tool) before blocking."
    )

    def __init__(
        self,
        medium: Optional[int] = None,
        high: Optional[int] = None,
        critical: Optional[int] = None,
    ):
        settings = get_settings()
        self.medium = settings.rate_volume_medium if medium is None else medium
        self.high = settings.rate_volume_high if high is None else high
        self.critical = settings.rate_volume_critical if critical is None else critical

    def severity_for(self, total: int) -> Optional[Severity]:
        if total >= self.critical:
            return Severity.CRITICAL
        if total >= self.high:
            return Severity.HIGH
        if total >= self.medium:
            return Severity.MEDIUM
        return None

    def evaluate(self, state: IpAggregationState) -> Optional[Finding]:
        total = state.total_requests
        severity = self.severity_for(total)
        if severity is None:
            return None

        rate_info = ""
        if len(state.timestamps) >= 2:
            duration = (max(state.timestamps) - min(state.timestamps)).total_seconds()
            if duration > 0:
                rate_info = (
                    f" Average rate: {total / duration:.1f} requests/second over {round(duration)}s."
                )

        return self.build_finding(
            state,
            severity=severity,
            confidence=0.85,
            title=f"High Request Volume: {total} requests from {state.ip}",
            description=(
                f"IP address {state.ip} generated {total} requests across the analyzed log period, "
                f"exceeding the threshold of {self.medium}.{rate_info} This may indicate automated "
                "scanning, denial-of-service attack, or bot activity."
            ),
        )


class ErrorRatioRule(StatisticalRule):
    """
    Detects sources whose traffic is mostly error responses.

    MITRE ATT&CK:
    - Tactic: Reconnaissance
    - Technique: T1595 (Active Scanning)
    """

    rule_id = "ERROR_RATIO_001"
    rule_name = "High Error Rate"
    description = "Most responses to a single source are 4xx/5xx errors"
    category = ThreatCategory.RATE_ANOMALY
    mitre_tactic = "Reconnaissance"
    mitre_technique = "T1595 - Active Scanning"
    recommendation = (
        "Investigate the types of errors being generated (authentication failures, 404s, server errors). "
        "Consider temporarily blocking the IP. Implement CAPTCHA challenges for IPs with high error rates. "
        "Review if this is a misconfigured legitimate client."
    )

    def __init__(self, ratio: Optional[float] = None, min_requests: Optional[int] = None):
        settings = get_settings()
        self.ratio = settings.error_ratio_threshold if ratio is None else ratio
        self.min_requests = settings.error_ratio_min_requests if min_requests is None else min_requests

    def evaluate(self, state: IpAggregationState) -> Optional[Finding]:
        if state.total_requests < self.min_requests:
            return None
        if state.error_ratio < self.ratio:
            return None

        percent = round(state.error_ratio * 100)
        return self.build_finding(
            state,
            severity=Severity.HIGH,
            confidence=0.8,
            title=f"High Error Rate: {percent}% errors from {state.ip}",
            description=(
                f"IP address {state.ip} has a {percent}% error response rate ({state.error_count} errors "
                f"out of {state.total_requests} requests). A high error rate typically indicates automated "
                "scanning, fuzzing, or brute-force activity where most requests hit invalid endpoints or "
                "fail authentication."
            ),
        )


class BurstRule(StatisticalRule):
    """
    Detects short bursts of requests (20 within 5 seconds by default).

    Requires timestamps; lines without one do not count toward bursts.

    MITRE ATT&CK:
    - Tactic: Impact
    - Technique: T1498 (Network Denial of Service)
    """

    rule_id = "RATE_BURST_001"
    rule_name = "Request Burst"
    description = "Many requests from single source within a few seconds"
    category = ThreatCategory.RATE_ANOMALY
    mitre_tactic = "Impact"
    mitre_technique = "T1498 - Network Denial of Service"
    recommendation = (
        "Deploy rate limiting with short window detection (e.g., max 20 requests per 5 seconds). Use "
        "adaptive rate limiting that responds to bursts. Consider implementing request queuing or "
        "throttling. Evaluate if a CDN with burst protection would be appropriate."
    )

    def __init__(self, threshold: Optional[int] = None, window_seconds: Optional[int] = None):
        settings = get_settings()
        self.threshold = settings.burst_threshold if threshold is None else threshold
        self.window_seconds = settings.burst_window_seconds if window_seconds is None else window_seconds

    def evaluate(self, state: IpAggregationState) -> Optional[Finding]:
        if len(state.timestamps) < self.threshold:
            return None

        burst = state.max_requests_within(timedelta(seconds=self.window_seconds))
        if burst < self.threshold:
            return None

        return self.build_finding(
            state,
            severity=Severity.HIGH,
            confidence=0.85,
            title=f"Request Burst: {burst} requests in {self.window_seconds}s from {state.ip}",
            description=(
                f"IP address {state.ip} sent {burst} requests within a {self.window_seconds}-second window, "
                "indicating an automated burst of traffic. This pattern is consistent with scripted attacks, "
                "brute-force tools, or denial-of-service attempts."
            ),
        )

"""
Brute force and password spray detection rules.
"""

from typing import Optional

from threatlens.config import get_settings
from threatlens.detection.aggregator import IpAggregationState
from threatlens.detection.rules.base import StatisticalRule
from threatlens.models.finding import Finding, Severity, ThreatCategory


class BruteForceRule(StatisticalRule):
    """
    Detects brute force login attempts.

    Triggers when the number of failed-authentication lines from one
    source IP reaches the threshold (10 by default) anywhere in the file.

    MITRE ATT&CK:
    - Tactic: Credential Access
    - Technique: T1110 (Brute Force)
    """

    rule_id = "BRUTE_FORCE_001"
    rule_name = "Brute Force Login Attack"
    description = "Multiple failed authentication attempts from single source"
    category = ThreatCategory.BRUTE_FORCE
    mitre_tactic = "Credential Access"
    mitre_technique = "T1110 - Brute Force"
    recommendation = (
        "Implement account lockout policies after repeated failed attempts. Deploy rate limiting on "
        "authentication endpoints. Use CAPTCHA challenges after a few failures. Consider IP-based blocking "
        "or temporary bans. Enable multi-factor authentication (MFA) for all accounts. Monitor for "
        "credential stuffing using leaked password databases."
    )

    def __init__(self, threshold: Optional[int] = None):
        settings = get_settings()
        self.threshold = settings.brute_force_threshold if threshold is None else threshold

    def evaluate(self, state: IpAggregationState) -> Optional[Finding]:
        count = state.failed_auth_count
        if count < self.threshold:
            return None

        return self.build_finding(
            state,
            severity=Severity.HIGH,
            confidence=0.9,
            title=f"Brute Force Attack: {count} failed auth attempts from {state.ip}",
            description=(
                f"IP address {state.ip} has generated {count} failed authentication attempts. "
                "This pattern is consistent with a brute force or credential stuffing attack "
                "targeting user accounts."
            ),
        )


class PasswordSprayRule(StatisticalRule):
    """
    Detects password spraying: one source trying many distinct accounts.

    Independent of the brute force count; five usernames with only a
    handful of failures still trigger.

    MITRE ATT&CK:
    - Tactic: Credential Access
    - Technique: T1110.003 (Password Spraying)
    """

    rule_id = "PASSWORD_SPRAY_001"
    rule_name = "Password Spray"
    description = "Failed authentication against many distinct accounts from single source"
    category = ThreatCategory.BRUTE_FORCE
    mitre_tactic = "Credential Access"
    mitre_technique = "T1110.003 - Brute Force: Password Spraying"
    recommendation = (
        "Enforce multi-factor authentication for all accounts. Alert on a single source failing against "
        "many usernames. Block or challenge the source IP. Audit the targeted accounts for successful "
        "logins following the failures and reset any weak passwords."
    )

    def __init__(self, threshold: Optional[int] = None):
        settings = get_settings()
        self.threshold = settings.password_spray_threshold if threshold is None else threshold

    def evaluate(self, state: IpAggregationState) -> Optional[Finding]:
        distinct = len(state.usernames)
        if distinct < self.threshold:
            return None

        targeted = ", ".join(sorted(state.usernames)[:10])
        return self.build_finding(
            state,
            severity=Severity.CRITICAL,
            confidence=0.95,
            title=f"Password Spray: {distinct} accounts targeted from {state.ip}",
            description=(
                f"IP address {state.ip} failed authentication against {distinct} distinct accounts "
                f"({targeted}). Trying few passwords across many accounts is characteristic of "
                "password spraying, which evades per-account lockout."
            ),
        )

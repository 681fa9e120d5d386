"""
Failed-authentication indicators.

These lines do not produce findings on their own; the aggregator counts
them per source IP and the brute-force rules decide.
"""

from threatlens.detection.patterns.base import PatternKind, entries_from_regexes
from threatlens.models.finding import Severity, ThreatCategory


# Kept as a plain regex list so new indicators are a one-line change.
FAILED_AUTH_REGEXES = [
    r"Failed password",
    r"authentication fail(ed|ure)",
    r"invalid credentials",
    r"Login failed",
    r"Access denied",
    r"unauthorized",
    r"bad password",
    r"invalid password",
    r"failed login",
    r"auth.*fail",
    r"incorrect password",
    r"account locked",
    r"too many authentication failures",
    r"password mismatch",
    r"FAILED LOGIN",
    r"\b401\b.*\b(POST|PUT)\b.*/(login|auth|signin|session)",
]

FAILED_AUTH_PATTERNS = entries_from_regexes(
    FAILED_AUTH_REGEXES,
    kind=PatternKind.AUTH_FAILURE,
    category=ThreatCategory.BRUTE_FORCE,
    label_prefix="Failed auth",
    severity=Severity.INFO,
    confidence=0.5,
    description="Failed authentication attempt",
    mitre_tactic="Credential Access",
    mitre_technique="T1110 - Brute Force",
)

"""
Suspicious HTTP response status codes.

Per-line status findings are low-confidence context; the per-IP
statistical rules decide whether the volume of errors is an attack.
"""

from threatlens.detection.patterns.base import PatternEntry, status_matcher
from threatlens.models.finding import Severity, ThreatCategory


_RECOMMENDATION = (
    "Investigate the source IP and requested resource. Review application logs for the root cause of error "
    "responses. Ensure error pages do not leak sensitive information such as stack traces, internal paths, "
    "or version numbers."
)

_RECON = ("Reconnaissance", "T1595 - Active Scanning")
_CREDENTIALS = ("Credential Access", "T1110 - Brute Force")
_IMPACT = ("Impact", "T1499 - Endpoint Denial of Service")

# (code, label, severity, description, (tactic, technique))
_STATUS_MAP = [
    (400, "400 Bad Request", Severity.LOW,
     "Bad request response may indicate malformed attack payloads or fuzzing activity", _RECON),
    (401, "401 Unauthorized", Severity.LOW,
     "Unauthorized response indicating failed authentication attempt", _CREDENTIALS),
    (403, "403 Forbidden", Severity.LOW,
     "Forbidden response may indicate access control bypass attempt or directory enumeration", _RECON),
    (404, "404 Not Found", Severity.LOW,
     "Not found response may indicate directory enumeration or resource discovery scanning", _RECON),
    (405, "405 Method Not Allowed", Severity.LOW,
     "Method not allowed response may indicate HTTP verb tampering attempts", _RECON),
    (500, "500 Internal Server Error", Severity.MEDIUM,
     "Internal server error that may be triggered by malicious input causing application exceptions", _IMPACT),
    (502, "502 Bad Gateway", Severity.MEDIUM,
     "Bad gateway error that may indicate backend service disruption or SSRF exploitation", _IMPACT),
    (503, "503 Service Unavailable", Severity.MEDIUM,
     "Service unavailable response that may indicate denial of service impact or resource exhaustion", _IMPACT),
]

SUSPICIOUS_STATUS_PATTERNS = [
    PatternEntry(
        label=label,
        title=f"Suspicious Status Code: {label}",
        category=ThreatCategory.SUSPICIOUS_STATUS_CODE,
        severity=severity,
        confidence=0.6,
        description=description,
        matcher=status_matcher(code),
        pattern=f"HTTP status {code}",
        mitre_tactic=tactic,
        mitre_technique=technique,
        recommendation=_RECOMMENDATION,
    )
    for code, label, severity, description, (tactic, technique) in _STATUS_MAP
]

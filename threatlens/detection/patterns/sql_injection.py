"""
SQL injection signatures.
"""

import re

from threatlens.detection.patterns.base import signature_entries
from threatlens.models.finding import Severity, ThreatCategory


SQL_INJECTION_PATTERNS = signature_entries(
    category=ThreatCategory.SQL_INJECTION,
    title_prefix="SQL Injection Detected",
    mitre_tactic="Initial Access",
    mitre_technique="T1190 - Exploit Public-Facing Application",
    recommendation=(
        "Use parameterized queries or prepared statements. Validate and sanitize all user input. "
        "Deploy a Web Application Firewall (WAF) to block known injection patterns. "
        "Review application code for concatenated SQL queries."
    ),
    specs=[
        # Classic
        (re.compile(r"UNION\s+(ALL\s+)?SELECT", re.I), "UNION SELECT", Severity.CRITICAL, 0.95,
         "UNION-based SQL injection attempting to extract data from other tables"),
        (re.compile(r"['\"]?\s*OR\s+['\"]?1['\"]?\s*=\s*['\"]?1", re.I), "OR 1=1 tautology", Severity.HIGH, 0.9,
         "Tautology-based SQL injection attempting to bypass authentication or extract all records"),
        (re.compile(r"['\"]?\s*OR\s+['\"]?1['\"]?\s*=\s*['\"]?1\s*--", re.I), "OR 1=1 with comment", Severity.CRITICAL, 0.95,
         "Tautology-based SQL injection with comment terminator to bypass query logic"),
        # Destructive
        (re.compile(r"DROP\s+TABLE", re.I), "DROP TABLE", Severity.CRITICAL, 0.95,
         "SQL injection attempting to destroy database tables"),
        (re.compile(r"DELETE\s+FROM\s+\w+\s*(?:;|--|$)", re.I), "DELETE FROM", Severity.CRITICAL, 0.85,
         "SQL injection attempting to delete records from a database table"),
        (re.compile(r"INSERT\s+INTO\s+\w+", re.I), "INSERT INTO", Severity.HIGH, 0.8,
         "SQL injection attempting to insert malicious data into database tables"),
        # Blind / time-based
        (re.compile(r"WAITFOR\s+DELAY", re.I), "WAITFOR DELAY (time-based blind SQLi)", Severity.CRITICAL, 0.95,
         "Time-based blind SQL injection using MSSQL WAITFOR DELAY to infer data"),
        (re.compile(r"BENCHMARK\s*\(", re.I), "BENCHMARK() (time-based blind SQLi)", Severity.CRITICAL, 0.95,
         "Time-based blind SQL injection using MySQL BENCHMARK function to infer data"),
        (re.compile(r"SLEEP\s*\(\s*\d+\s*\)", re.I), "SLEEP() (time-based blind SQLi)", Severity.CRITICAL, 0.95,
         "Time-based blind SQL injection using SLEEP function to infer data"),
        # Encoded
        (re.compile(r"%27\s*(OR|AND)\s*%27", re.I), "URL-encoded quote injection", Severity.HIGH, 0.85,
         "SQL injection using URL-encoded single quotes to evade input filters"),
        (re.compile(r"%55NION\s+%53ELECT", re.I), "URL-encoded UNION SELECT", Severity.CRITICAL, 0.9,
         "SQL injection using partial URL encoding to bypass WAF rules"),
        (re.compile(r"UNION%20SELECT", re.I), "URL-encoded UNION SELECT (space)", Severity.CRITICAL, 0.9,
         "UNION-based SQL injection with URL-encoded spaces"),
        (re.compile(r"UNION%0ASELECT", re.I), "URL-encoded UNION SELECT (newline)", Severity.CRITICAL, 0.9,
         "UNION-based SQL injection with URL-encoded newline to bypass WAF"),
        # Stacked queries and evasion
        (re.compile(r";\s*(SELECT|INSERT|UPDATE|DELETE|DROP|ALTER|CREATE)\s", re.I), "Stacked SQL query", Severity.HIGH, 0.8,
         "Potential stacked SQL query injection attempting to execute multiple statements"),
        (re.compile(r"/\*.*\*/\s*(UNION|SELECT|DROP|INSERT|DELETE)", re.I), "Comment-based SQL injection evasion", Severity.HIGH, 0.85,
         "SQL injection using inline comments to evade pattern-matching defenses"),
        (re.compile(r"CHAR\s*\(\s*\d+", re.I), "CHAR() function obfuscation", Severity.HIGH, 0.75,
         "SQL injection using CHAR() function to build strings and evade detection"),
        (re.compile(r"CONCAT\s*\(.*SELECT", re.I), "CONCAT with SELECT subquery", Severity.HIGH, 0.85,
         "SQL injection using CONCAT to extract and combine data from queries"),
        # Schema enumeration
        (re.compile(r"INFORMATION_SCHEMA\.(TABLES|COLUMNS|SCHEMATA)", re.I), "INFORMATION_SCHEMA enumeration", Severity.CRITICAL, 0.95,
         "SQL injection enumerating database metadata to map table and column structures"),
        (re.compile(r"0x[0-9a-f]{8,}", re.I), "Hex-encoded SQL payload", Severity.HIGH, 0.7,
         "Potential SQL injection using hexadecimal encoding to obfuscate payloads"),
    ],
)

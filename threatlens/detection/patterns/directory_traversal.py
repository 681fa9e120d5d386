"""
Directory traversal and local file inclusion signatures.
"""

import re

from threatlens.detection.patterns.base import signature_entries
from threatlens.models.finding import Severity, ThreatCategory


DIRECTORY_TRAVERSAL_PATTERNS = signature_entries(
    category=ThreatCategory.DIRECTORY_TRAVERSAL,
    title_prefix="Directory Traversal Detected",
    mitre_tactic="Collection",
    mitre_technique="T1005 - Data from Local System",
    recommendation=(
        "Validate and canonicalize all file paths before use. Use a whitelist of allowed files or directories. "
        "Never pass user input directly to file system APIs. Deploy chroot jails or containerization "
        "to limit filesystem access. Strip or reject path traversal sequences in input validation."
    ),
    specs=[
        # Plain sequences
        (re.compile(r"\.\./"), "../ path traversal", Severity.HIGH, 0.85,
         "Directory traversal attempt using ../ sequences to navigate outside the web root"),
        (re.compile(r"\.\.\\"), "..\\ path traversal (Windows)", Severity.HIGH, 0.85,
         "Windows-style directory traversal attempt using ..\\ sequences"),
        (re.compile(r"(\.\./?){3,}"), "Deep path traversal (3+ levels)", Severity.CRITICAL, 0.95,
         "Deep directory traversal with multiple ../ sequences, strongly suggesting an attack "
         "rather than a misconfigured link"),
        # Encoded
        (re.compile(r"%2e%2e[%2f%5c]", re.I), "URL-encoded traversal (%2e%2e)", Severity.HIGH, 0.9,
         "Directory traversal using URL-encoded dots and slashes to evade input filters"),
        (re.compile(r"\.\.%2f", re.I), "Partially encoded traversal (..%2f)", Severity.HIGH, 0.9,
         "Directory traversal using partially URL-encoded path separators"),
        (re.compile(r"%2e%2e/", re.I), "Partially encoded traversal (%2e%2e/)", Severity.HIGH, 0.9,
         "Directory traversal using URL-encoded dots with literal slash"),
        (re.compile(r"%252e%252e", re.I), "Double-encoded traversal", Severity.CRITICAL, 0.95,
         "Double URL-encoded directory traversal attempt designed to bypass WAF and input validation"),
        (re.compile(r"%00"), "Null byte injection", Severity.HIGH, 0.85,
         "Null byte injection that may terminate strings early and allow path traversal in older runtimes"),
        # Sensitive targets
        (re.compile(r"/etc/passwd", re.I), "/etc/passwd access", Severity.CRITICAL, 0.95,
         "Attempt to read the Unix password file, a classic indicator of directory traversal exploitation"),
        (re.compile(r"/etc/shadow", re.I), "/etc/shadow access", Severity.CRITICAL, 0.95,
         "Attempt to read the Unix shadow password file containing hashed passwords"),
        (re.compile(r"/etc/hosts", re.I), "/etc/hosts access", Severity.HIGH, 0.85,
         "Attempt to read the system hosts file for network reconnaissance"),
        (re.compile(r"/proc/self/environ", re.I), "/proc/self/environ access", Severity.CRITICAL, 0.95,
         "Attempt to read process environment variables which may contain secrets, API keys, "
         "or database credentials"),
        (re.compile(r"/proc/self/cmdline", re.I), "/proc/self/cmdline access", Severity.HIGH, 0.9,
         "Attempt to read the process command line arguments for information disclosure"),
        (re.compile(r"/proc/version", re.I), "/proc/version access", Severity.HIGH, 0.85,
         "Attempt to read kernel version information for targeted exploitation"),
        # Stream wrappers
        (re.compile(r"php://filter", re.I), "PHP filter wrapper", Severity.CRITICAL, 0.95,
         "PHP stream wrapper exploitation to read source code via Base64 encoding, "
         "bypassing normal file restrictions"),
        (re.compile(r"php://input", re.I), "PHP input wrapper", Severity.CRITICAL, 0.95,
         "PHP input wrapper that allows reading raw POST data, often used for remote code execution via LFI"),
        (re.compile(r"expect://", re.I), "PHP expect wrapper", Severity.CRITICAL, 0.9,
         "PHP expect:// wrapper that enables command execution through local file inclusion vulnerabilities"),
        # Windows
        (re.compile(r"c:\\windows\\system32", re.I), "Windows system32 access", Severity.CRITICAL, 0.9,
         "Attempt to access Windows system32 directory, indicating path traversal on a Windows host"),
        (re.compile(r"c:\\boot\.ini", re.I), "Windows boot.ini access", Severity.CRITICAL, 0.9,
         "Attempt to read Windows boot configuration file through directory traversal"),
    ],
)

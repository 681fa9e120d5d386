"""
OS command injection signatures. All of them are CRITICAL.
"""

import re

from threatlens.detection.patterns.base import signature_entries
from threatlens.models.finding import Severity, ThreatCategory


_SHELL_TOOLS = r"(ls|cat|id|whoami|uname|pwd|wget|curl|nc|bash|sh|python|perl|ruby|php)"
_SUBST_TOOLS = r"(cat|ls|id|whoami|uname|wget|curl|nc|bash|sh|python|perl)"

COMMAND_INJECTION_PATTERNS = signature_entries(
    category=ThreatCategory.COMMAND_INJECTION,
    title_prefix="Command Injection Detected",
    mitre_tactic="Execution",
    mitre_technique="T1059 - Command and Scripting Interpreter",
    recommendation=(
        "Never pass user input directly to system shell commands. Use parameterized APIs or safe library "
        "functions instead of shell execution. Apply strict input validation with allowlists. "
        "Run application processes with least-privilege accounts. Implement sandboxing or "
        "containerization to limit blast radius."
    ),
    specs=[
        (re.compile(r"[?&=][^&]*[;|`]\s*" + _SHELL_TOOLS + r"\b", re.I),
         "Shell command in URL parameter", Severity.CRITICAL, 0.9,
         "Command injection via URL parameter using shell metacharacters to execute system commands"),
        # Reverse shells
        (re.compile(r"bash\s+-i\s+>&?\s*/dev/tcp", re.I), "Bash reverse shell", Severity.CRITICAL, 0.98,
         "Bash reverse shell payload attempting to establish an interactive connection back to the attacker"),
        (re.compile(r"/dev/tcp/\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}/\d+"), "/dev/tcp reverse connection",
         Severity.CRITICAL, 0.95,
         "Attempt to establish a TCP connection using Bash /dev/tcp pseudo-device for reverse shell"),
        (re.compile(r"nc\s+(-[enlvp]+\s+)*\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}\s+\d+\s*(-e\s+/bin/(ba)?sh)?", re.I),
         "Netcat reverse shell", Severity.CRITICAL, 0.95,
         "Netcat-based reverse shell attempting to connect back to the attacker with shell access"),
        (re.compile(r"python[23]?\s+-c\s+['\"]import\s+socket", re.I), "Python reverse shell", Severity.CRITICAL, 0.95,
         "Python-based reverse shell using socket library to establish attacker connection"),
        (re.compile(r"perl\s+-e\s+['\"]use\s+Socket", re.I), "Perl reverse shell", Severity.CRITICAL, 0.95,
         "Perl-based reverse shell using Socket module for attacker connection"),
        # Remote payloads
        (re.compile(r"wget\s+https?://", re.I), "wget downloading remote payload", Severity.CRITICAL, 0.85,
         "Command injection using wget to download a remote payload, potentially a malware dropper"),
        (re.compile(r"curl\s+(-[sSkLfO]+\s+)*https?://", re.I), "curl downloading remote payload",
         Severity.CRITICAL, 0.85,
         "Command injection using curl to download a remote payload from an external server"),
        (re.compile(r"curl\s+.*\|\s*(ba)?sh", re.I), "curl piped to shell", Severity.CRITICAL, 0.98,
         "Extremely dangerous pattern: downloading and directly executing a remote script via curl piped to shell"),
        (re.compile(r"wget\s+.*\|\s*(ba)?sh", re.I), "wget piped to shell", Severity.CRITICAL, 0.98,
         "Extremely dangerous pattern: downloading and directly executing a remote script via wget piped to shell"),
        # Destructive
        (re.compile(r"rm\s+(-[rf]+\s+)*/", re.I), "rm -rf / destructive command", Severity.CRITICAL, 0.95,
         "Destructive command attempting to recursively delete files from the root filesystem"),
        (re.compile(r"mkfs\.", re.I), "mkfs filesystem format attempt", Severity.CRITICAL, 0.95,
         "Attempt to format a filesystem, which would destroy all data on the target device"),
        (re.compile(r"dd\s+if=.*of=/dev/", re.I), "dd disk overwrite", Severity.CRITICAL, 0.95,
         "Attempt to overwrite disk devices using dd, which would destroy data"),
        # Substitution
        (re.compile(r"`[^`]*\b" + _SUBST_TOOLS + r"\b[^`]*`", re.I), "Backtick command substitution",
         Severity.CRITICAL, 0.9,
         "Command injection via backtick command substitution to execute embedded system commands"),
        (re.compile(r"\$\(\s*" + _SUBST_TOOLS + r"\b", re.I), "$() command substitution", Severity.CRITICAL, 0.9,
         "Command injection via $() command substitution to execute embedded system commands"),
        (re.compile(r"\|\s*(ba)?sh\s*$", re.I), "Pipe to shell", Severity.CRITICAL, 0.9,
         "Output piped directly into a shell interpreter for execution"),
        # Persistence and permissions
        (re.compile(r"chmod\s+[0-7]{3,4}\s+", re.I), "chmod permission change", Severity.CRITICAL, 0.8,
         "Command injection attempting to change file permissions, potentially making files executable "
         "or world-writable"),
        (re.compile(r"chown\s+\w+", re.I), "chown ownership change", Severity.CRITICAL, 0.8,
         "Command injection attempting to change file ownership for privilege escalation"),
        (re.compile(r"crontab\s", re.I), "crontab manipulation", Severity.CRITICAL, 0.85,
         "Attempt to modify cron jobs for persistence or scheduled malicious command execution"),
        (re.compile(r"\bexport\s+\w+=.*[;|`]", re.I), "Environment variable injection", Severity.CRITICAL, 0.85,
         "Environment variable manipulation combined with command chaining, potentially altering program behavior"),
    ],
)

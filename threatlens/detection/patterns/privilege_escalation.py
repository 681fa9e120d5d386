"""
Privilege escalation signatures (Linux and Windows).
"""

import re

from threatlens.detection.patterns.base import signature_entries
from threatlens.models.finding import Severity, ThreatCategory


PRIVILEGE_ESCALATION_PATTERNS = signature_entries(
    category=ThreatCategory.PRIVILEGE_ESCALATION,
    title_prefix="Privilege Escalation",
    mitre_tactic="Privilege Escalation",
    mitre_technique="T1548 - Abuse Elevation Control Mechanism",
    recommendation=(
        "Review and restrict sudo/su access. Enforce the principle of least privilege. Monitor and alert on "
        "privilege changes. Audit sudoers and group membership modifications regularly. Use centralized "
        "identity management to control elevated access."
    ),
    specs=[
        # sudo
        (re.compile(r"sudo\s+(-[isSHEu]\s+)*\b(su|bash|sh|passwd|visudo|useradd|usermod|groupadd)\b", re.I),
         "sudo privilege command", Severity.HIGH, 0.85,
         "Privileged command executed via sudo, potentially escalating user permissions to root"),
        (re.compile(r"sudo\s+-i\b"), "sudo interactive root shell", Severity.CRITICAL, 0.9,
         "Interactive root shell obtained via sudo -i, granting full system control"),
        (re.compile(r"sudo\s+su\s*(-\s*)?$"), "sudo su root escalation", Severity.CRITICAL, 0.9,
         "Escalation to root user via sudo su, gaining unrestricted access"),
        # setuid and ownership
        (re.compile(r"chmod\s+[u+]*s\s", re.I), "chmod setuid/setgid", Severity.CRITICAL, 0.92,
         "Setting the setuid or setgid bit on a file, allowing it to execute with the owner's privileges"),
        (re.compile(r"chmod\s+[42][0-7]{3}\s"), "chmod numeric setuid/setgid", Severity.CRITICAL, 0.92,
         "Setting setuid (4xxx) or setgid (2xxx) via numeric permissions, a common privilege escalation technique"),
        (re.compile(r"chown\s+(root|0)[:.]?\s", re.I), "chown to root", Severity.HIGH, 0.8,
         "Changing file ownership to root, potentially enabling privileged execution"),
        # sudoers and groups
        (re.compile(r"/etc/sudoers"), "sudoers file access", Severity.CRITICAL, 0.95,
         "Access or modification of /etc/sudoers, which controls sudo privileges for all users"),
        (re.compile(r"visudo"), "visudo invocation", Severity.HIGH, 0.85,
         "visudo invoked to edit sudoers configuration, potentially granting new privileges"),
        (re.compile(r"usermod\s+.*-[aG]+\s", re.I), "usermod group membership change", Severity.HIGH, 0.85,
         "User added to a group via usermod, potentially granting elevated access (e.g., sudo, docker, wheel)"),
        (re.compile(r"gpasswd\s+-a\s+\w+\s+(sudo|wheel|admin|docker|root)", re.I),
         "gpasswd privileged group add", Severity.CRITICAL, 0.9,
         "User added to a privileged group (sudo/wheel/admin/docker) via gpasswd"),
        # Alternative elevation tools
        (re.compile(r"\bpkexec\b"), "pkexec invocation", Severity.HIGH, 0.8,
         "pkexec used to execute a command with elevated privileges via PolicyKit"),
        (re.compile(r"\bdoas\b"), "doas invocation", Severity.HIGH, 0.8,
         "doas used to execute commands as another user, similar to sudo"),
        (re.compile(r"/etc/(shadow|passwd|gshadow|master\.passwd)"), "sensitive auth file access",
         Severity.HIGH, 0.85,
         "Access to critical authentication files (shadow/passwd) which contain user credential data"),
        # Windows
        (re.compile(r"net\s+localgroup\s+administrators\s+", re.I), "Windows admin group modification",
         Severity.CRITICAL, 0.92,
         "Modification of the local Administrators group on Windows, granting full system access"),
        (re.compile(r"runas\s+/user:", re.I), "Windows runas privilege switch", Severity.HIGH, 0.8,
         "runas used to execute a command as another user on Windows, potentially escalating privileges"),
        # Capabilities and PAM
        (re.compile(r"setcap\s", re.I), "Linux capability assignment", Severity.HIGH, 0.85,
         "File capabilities being set via setcap, which can grant root-equivalent powers to executables"),
        (re.compile(r"/etc/pam\.d/"), "PAM configuration access", Severity.HIGH, 0.8,
         "Access to PAM configuration files, which control authentication policies and could weaken security"),
    ],
)

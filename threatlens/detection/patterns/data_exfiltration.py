"""
Data exfiltration signatures.
"""

import re

from threatlens.detection.patterns.base import signature_entries
from threatlens.models.finding import Severity, ThreatCategory


_IPV4 = r"\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}"

DATA_EXFILTRATION_PATTERNS = signature_entries(
    category=ThreatCategory.DATA_EXFILTRATION,
    title_prefix="Data Exfiltration",
    mitre_tactic="Exfiltration",
    mitre_technique="T1048 - Exfiltration Over Alternative Protocol",
    recommendation=(
        "Implement Data Loss Prevention (DLP) controls. Monitor and alert on large outbound transfers. "
        "Restrict access to cloud storage and file transfer tools. Use network segmentation to limit lateral "
        "movement. Audit and log all data access to sensitive directories and databases."
    ),
    specs=[
        # Cloud sync tools
        (re.compile(r"\brclone\s+(sync|copy|move)\b", re.I), "rclone data transfer", Severity.CRITICAL, 0.9,
         "rclone used to sync/copy data to a remote storage provider, commonly used for data exfiltration"),
        (re.compile(r"\bmegacmd\b|\bmega-put\b|\bmega-sync\b", re.I), "MEGA cloud exfil tool",
         Severity.CRITICAL, 0.9,
         "MEGA cloud storage CLI tool detected, frequently used by threat actors for data exfiltration"),
        # Object storage uploads
        (re.compile(r"s3\.amazonaws\.com.*PUT", re.I), "S3 upload detected", Severity.HIGH, 0.7,
         "Data uploaded to AWS S3, which could be a legitimate operation or data exfiltration to an "
         "attacker-controlled bucket"),
        (re.compile(r"blob\.core\.windows\.net.*PUT", re.I), "Azure Blob upload detected", Severity.HIGH, 0.7,
         "Data uploaded to Azure Blob Storage, potentially exfiltrating data to an external account"),
        (re.compile(r"storage\.googleapis\.com.*PUT", re.I), "GCS upload detected", Severity.HIGH, 0.7,
         "Data uploaded to Google Cloud Storage, possibly exfiltrating data to an external project"),
        # Volume
        (re.compile(r"bytes_(?:out|sent)[=:\s]+(\d{8,})", re.I), "Large outbound data transfer", Severity.HIGH, 0.75,
         "Unusually large outbound data transfer detected (>10MB), which may indicate bulk data exfiltration"),
        (re.compile(r"content[_-]length[=:\s]+(\d{8,})", re.I), "Large response content-length",
         Severity.MEDIUM, 0.65,
         "Large content-length in response may indicate bulk data being served to an unauthorized client"),
        # Covert channels
        (re.compile(r"\b[a-z0-9]{50,}\.[a-z0-9-]+\.[a-z]{2,}\b", re.I), "DNS tunneling indicator",
         Severity.HIGH, 0.8,
         "Unusually long DNS subdomain label detected, a common indicator of DNS tunneling used to exfiltrate "
         "data covertly"),
        (re.compile(r"[?&=][A-Za-z0-9+/]{40,}={0,2}(&|$|\s)"), "Base64 payload in URL", Severity.HIGH, 0.75,
         "Large Base64-encoded payload detected in URL parameter, potentially encoding exfiltrated data"),
        # Staging
        (re.compile(r"\b(tar|zip|7z|rar)\b.*/(etc|var/log|home|root|\.ssh|\.aws|\.gnupg)", re.I),
         "Archive of sensitive directories", Severity.CRITICAL, 0.88,
         "Archive creation targeting sensitive system directories (credentials, keys, logs), a precursor to "
         "data exfiltration"),
        (re.compile(r"\b(tar|zip|7z)\b.*\.(sql|dump|bak|backup|csv|xlsx?)\b", re.I),
         "Archive of database/backup files", Severity.HIGH, 0.8,
         "Archive creation involving database dumps or backup files, commonly staged before exfiltration"),
        # Transfer tools
        (re.compile(r"\bftp\s+" + _IPV4 + r"\b"), "FTP to external IP", Severity.HIGH, 0.8,
         "FTP connection to an IP address detected, commonly used for data exfiltration over unencrypted channels"),
        (re.compile(r"\bscp\s+.*" + _IPV4 + r":"), "SCP file transfer to external IP", Severity.HIGH, 0.8,
         "SCP file transfer to an external IP detected, potentially exfiltrating files over SSH"),
        (re.compile(r"\bsftp\s+\w*@?" + _IPV4 + r"\b"), "SFTP connection to external IP", Severity.HIGH, 0.8,
         "SFTP connection to an external IP address, potentially transferring data out of the network"),
        (re.compile(r"curl\s+.*-[dFT]\s+@?/", re.I), "curl uploading local file", Severity.HIGH, 0.8,
         "curl used to POST or upload a local file to a remote server, potentially exfiltrating data"),
        (re.compile(r"\b(sendmail|mail|mutt|mailx)\b.*-[as]\s", re.I), "Email-based exfiltration",
         Severity.HIGH, 0.75,
         "Command-line mail utility used with attachment flag, potentially exfiltrating data via email"),
    ],
)

"""
Attack tool and automation User-Agent signatures.
"""

import re

from threatlens.detection.patterns.base import (
    PatternEntry,
    empty_user_agent_matcher,
    signature_entries,
    user_agent_matcher,
)
from threatlens.models.finding import Severity, ThreatCategory


_TACTIC = "Reconnaissance"
_TECHNIQUE = "T1595 - Active Scanning"

EMPTY_USER_AGENT = PatternEntry(
    label="Empty User Agent",
    title="Empty User Agent Detected",
    category=ThreatCategory.MALICIOUS_USER_AGENT,
    severity=Severity.LOW,
    confidence=0.7,
    description=(
        "Request with an empty User-Agent header. Legitimate browsers always send a User-Agent; empty "
        "values typically indicate automated tools, bots, or manually crafted requests."
    ),
    matcher=empty_user_agent_matcher,
    pattern='""',
    mitre_tactic=_TACTIC,
    mitre_technique=_TECHNIQUE,
    recommendation=(
        "Monitor and rate-limit requests with empty or missing User-Agent headers. Consider blocking such "
        "requests at the WAF or reverse proxy level unless expected from internal services."
    ),
)

MALICIOUS_AGENT_PATTERNS = [EMPTY_USER_AGENT] + signature_entries(
    category=ThreatCategory.MALICIOUS_USER_AGENT,
    title_prefix="Malicious User Agent",
    mitre_tactic=_TACTIC,
    mitre_technique=_TECHNIQUE,
    recommendation=(
        "Block known attack tool User-Agent strings at the WAF or reverse proxy. Implement User-Agent "
        "allowlisting if feasible. Note that sophisticated attackers can spoof User-Agent headers, so this "
        "should be one layer of a defense-in-depth strategy."
    ),
    matcher_factory=user_agent_matcher,
    specs=[
        # Vulnerability scanners
        (re.compile(r"nikto", re.I), "Nikto web scanner", Severity.MEDIUM, 0.95,
         "Request from Nikto, an open-source web server vulnerability scanner commonly used in penetration "
         "testing and unauthorized scanning"),
        (re.compile(r"sqlmap", re.I), "sqlmap SQL injection tool", Severity.MEDIUM, 0.95,
         "Request from sqlmap, an automated SQL injection exploitation tool used to discover and exploit "
         "SQL injection flaws"),
        (re.compile(r"nmap", re.I), "Nmap network scanner", Severity.MEDIUM, 0.9,
         "Request from Nmap or Nmap scripting engine, a network discovery and security auditing tool"),
        (re.compile(r"nessus", re.I), "Nessus vulnerability scanner", Severity.MEDIUM, 0.9,
         "Request from Nessus, a commercial vulnerability assessment scanner"),
        (re.compile(r"acunetix", re.I), "Acunetix web scanner", Severity.MEDIUM, 0.95,
         "Request from Acunetix, a web application security scanner that tests for a wide range of "
         "vulnerabilities"),
        # Content discovery
        (re.compile(r"dirbuster", re.I), "DirBuster directory scanner", Severity.MEDIUM, 0.95,
         "Request from DirBuster, a tool for brute-forcing directories and file names on web servers"),
        (re.compile(r"gobuster", re.I), "Gobuster directory scanner", Severity.MEDIUM, 0.95,
         "Request from Gobuster, a fast directory and DNS brute-force scanner written in Go"),
        (re.compile(r"wfuzz", re.I), "Wfuzz web fuzzer", Severity.MEDIUM, 0.9,
         "Request from Wfuzz, a web application brute-forcer and fuzzer used for discovering hidden resources"),
        (re.compile(r"feroxbuster", re.I), "Feroxbuster directory scanner", Severity.MEDIUM, 0.95,
         "Request from Feroxbuster, a fast recursive content discovery tool"),
        (re.compile(r"ffuf", re.I), "ffuf web fuzzer", Severity.MEDIUM, 0.9,
         "Request from ffuf (Fuzz Faster U Fool), a fast web fuzzer commonly used for directory discovery"),
        # Credential attacks
        (re.compile(r"hydra", re.I), "Hydra brute-force tool", Severity.MEDIUM, 0.9,
         "Request from THC Hydra, a parallelized login cracker supporting numerous protocols for "
         "brute-force attacks"),
        # Port scanners
        (re.compile(r"masscan", re.I), "Masscan port scanner", Severity.MEDIUM, 0.9,
         "Request from Masscan, a high-speed port scanner capable of scanning the entire internet "
         "in under 6 minutes"),
        (re.compile(r"zmap", re.I), "ZMap network scanner", Severity.MEDIUM, 0.85,
         "Request from ZMap, a fast single-packet network scanner designed for internet-wide surveys"),
        # Proxies and frameworks
        (re.compile(r"burp\s*suite", re.I), "Burp Suite proxy", Severity.LOW, 0.85,
         "Request from Burp Suite, a web security testing platform commonly used by penetration testers"),
        (re.compile(r"zaproxy|owasp\s*zap", re.I), "OWASP ZAP proxy", Severity.LOW, 0.85,
         "Request from OWASP ZAP (Zed Attack Proxy), an open-source web application security scanner"),
        (re.compile(r"metasploit", re.I), "Metasploit framework", Severity.MEDIUM, 0.95,
         "Request from the Metasploit framework, an exploitation and post-exploitation toolkit"),
        # Scripted clients
        (re.compile(r"scrapy", re.I), "Scrapy web scraper", Severity.LOW, 0.7,
         "Request from Scrapy, a web scraping framework that may be used for unauthorized data collection"),
        (re.compile(r"\bcurl/", re.I), "curl command-line client", Severity.LOW, 0.45,
         "Request from curl, a command-line HTTP client. While commonly used for legitimate purposes, curl in "
         "web proxy logs can indicate automated scripts, C2 beaconing, or data exfiltration when used from "
         "non-server endpoints."),
        (re.compile(r"\bwget/", re.I), "wget download utility", Severity.LOW, 0.5,
         "Request from wget, a command-line download utility. May indicate automated file retrieval, "
         "payload downloads, or scripted activity."),
        (re.compile(r"python-requests", re.I), "Python Requests library", Severity.LOW, 0.5,
         "Request from Python Requests library; while legitimate, automated Python scripts are commonly "
         "used in attacks"),
        (re.compile(r"python-urllib", re.I), "Python urllib library", Severity.LOW, 0.5,
         "Request from Python urllib; automated scripts using this library may indicate scanning or "
         "scraping activity"),
        (re.compile(r"libwww-perl", re.I), "Perl LWP library", Severity.LOW, 0.6,
         "Request from Perl LWP library, historically associated with automated attack scripts and "
         "web scanners"),
        (re.compile(r"java/\d", re.I), "Raw Java HTTP client", Severity.LOW, 0.5,
         "Request from a raw Java HTTP client, which may indicate automated scanning or bot activity"),
    ],
)

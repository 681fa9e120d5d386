"""
Field extraction helpers shared by all parsers.

Each helper is a pure function over one normalized line and returns
``None`` when the field is not present or not recognizable.
"""

import ipaddress
import re
from datetime import datetime, timezone
from typing import Optional

from threatlens.models.log_entry import LogLine


IPV4_PATTERN = re.compile(r"\b(\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3})\b")

# Matches:
#   HTTP/1.1" 404      (combined log format)
#   status=500         (key=value, flattened JSON/CSV)
#   status: 502
#   returned 403
#   HTTP 503
STATUS_CODE_PATTERN = re.compile(
    r"(?:HTTP/[\d.]+[\"']\s+|(?:status(?:_code)?[=:\s]+)|(?:returned\s+)|(?:HTTP\s+))(\d{3})\b",
    re.IGNORECASE,
)

REQUEST_PATH_PATTERN = re.compile(
    r"\"(?:GET|POST|PUT|DELETE|PATCH|HEAD|OPTIONS|CONNECT|TRACE)\s+(\S+)\s+HTTP/[\d.]+\"",
    re.IGNORECASE,
)
KV_PATH_PATTERN = re.compile(r"\b(?:path|url|uri|request_path|request_uri)=(\S+)", re.IGNORECASE)

USERNAME_PATTERNS = [
    # user=alice, username="bob", account: carol
    re.compile(r"\b(?:user|username|user_name|login|account)[=:]\s*[\"']?([^\s\"',;&]+)", re.IGNORECASE),
    # sshd: Failed password for [invalid user] admin from 10.0.0.1
    re.compile(r"\bfor\s+(?:invalid\s+user\s+)?(\S+)\s+from\b", re.IGNORECASE),
    # sshd: Invalid user oracle from 10.0.0.1
    re.compile(r"\binvalid\s+user\s+(\S+)\s+from\b", re.IGNORECASE),
]

ISO_TIMESTAMP_PATTERN = re.compile(
    r"(\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}:\d{2}(?:\.\d+)?(?:Z|[+-]\d{2}:?\d{2})?)"
)
APACHE_TIMESTAMP_PATTERN = re.compile(
    r"\[(\d{2}/\w{3}/\d{4}:\d{2}:\d{2}:\d{2}\s[+-]\d{4})\]"
)
SYSLOG_TIMESTAMP_PATTERN = re.compile(r"^(\w{3}\s+\d{1,2}\s+\d{2}:\d{2}:\d{2})\b")


def extract_ip(line: str) -> Optional[str]:
    """Return the first valid IPv4 address in the line."""
    for match in IPV4_PATTERN.finditer(line):
        candidate = match.group(1)
        try:
            ipaddress.IPv4Address(candidate)
        except ValueError:
            continue
        return candidate
    return None


def extract_status_code(line: str) -> Optional[int]:
    match = STATUS_CODE_PATTERN.search(line)
    if not match:
        return None
    code = int(match.group(1))
    if 100 <= code <= 599:
        return code
    return None


def extract_path(line: str) -> Optional[str]:
    match = REQUEST_PATH_PATTERN.search(line) or KV_PATH_PATTERN.search(line)
    return match.group(1) if match else None


def extract_username(line: str) -> Optional[str]:
    for pattern in USERNAME_PATTERNS:
        match = pattern.search(line)
        if match:
            username = match.group(1).strip("\"'")
            if username and username != "-":
                return username
    return None


USER_AGENT_HEADER_PATTERN = re.compile(r"User-Agent:\s*(.+?)(?:\s*$|\s*\")", re.IGNORECASE)
QUOTED_PATTERN = re.compile(r"\"([^\"]*)\"")


def extract_user_agent(line: str) -> Optional[str]:
    """
    Return the User-Agent of a request line, or None if it cannot be located.

    An explicit ``User-Agent:`` header wins; otherwise in combined log
    format the user agent is the last of at least three quoted strings.
    An empty string means the request carried an empty user agent.
    """
    match = USER_AGENT_HEADER_PATTERN.search(line)
    if match:
        return match.group(1)

    quoted = QUOTED_PATTERN.findall(line)
    if len(quoted) >= 3:
        return quoted[-1]
    return None


def extract_timestamp(line: str) -> Optional[datetime]:
    """
    Extract an event timestamp from common log formats.

    Supports ISO-8601, Apache/Nginx ``[10/Oct/2023:13:55:36 +0000]`` and
    syslog ``Oct 10 13:55:36``. Naive values are treated as UTC; syslog
    timestamps carry no year, so the current year is assumed.
    """
    match = ISO_TIMESTAMP_PATTERN.search(line)
    if match:
        parsed = _parse_iso(match.group(1))
        if parsed:
            return parsed

    match = APACHE_TIMESTAMP_PATTERN.search(line)
    if match:
        try:
            return datetime.strptime(match.group(1), "%d/%b/%Y:%H:%M:%S %z").astimezone(timezone.utc)
        except ValueError:
            pass

    match = SYSLOG_TIMESTAMP_PATTERN.search(line)
    if match:
        try:
            parsed = datetime.strptime(
                f"{datetime.now().year} {match.group(1)}", "%Y %b %d %H:%M:%S"
            )
            return parsed.replace(tzinfo=timezone.utc)
        except ValueError:
            pass

    return None


def _parse_iso(value: str) -> Optional[datetime]:
    value = value.replace(" ", "T", 1)
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    value = re.sub(r"([+-]\d{2})(\d{2})$", r"\1:\2", value)
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def build_log_line(number: int, raw: str, normalized: str) -> LogLine:
    """Parse every known field out of a normalized line."""
    return LogLine(
        number=number,
        raw=raw,
        normalized=normalized,
        source_ip=extract_ip(normalized),
        status_code=extract_status_code(normalized),
        path=extract_path(normalized),
        username=extract_username(normalized),
        timestamp=extract_timestamp(normalized),
    )

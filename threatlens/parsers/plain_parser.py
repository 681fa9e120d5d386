"""
Parser for plain-text logs (syslog, auth.log, Apache/Nginx access logs).
"""

from typing import Tuple

from threatlens.models.log_entry import LogFormat
from threatlens.parsers.base import BaseParser


class PlainLogParser(BaseParser):
    """Plain text is already flat; lines pass through unchanged."""

    log_format = LogFormat.PLAIN

    def can_parse(self, line: str) -> bool:
        return bool(line.strip())

    def normalize(self, line: str) -> Tuple[str, bool]:
        return line, False

"""
Parser for CSV logs with a header row.
"""

import re
from typing import List, Tuple

from threatlens.models.log_entry import LogFormat
from threatlens.parsers.base import BaseParser


HEADER_PATTERN = re.compile(
    r"^(timestamp|ts|date|time|src_ip|event|host|method|url|status|user)",
    re.IGNORECASE,
)


def split_csv_values(line: str) -> List[str]:
    """
    Split one CSV row, honouring double quotes.

    A doubled quote inside a quoted value is an escaped quote.
    """
    values: List[str] = []
    current: List[str] = []
    in_quotes = False
    i = 0
    while i < len(line):
        char = line[i]
        if char == '"':
            if in_quotes and i + 1 < len(line) and line[i + 1] == '"':
                current.append('"')
                i += 1
            else:
                in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            values.append("".join(current).strip())
            current = []
        else:
            current.append(char)
        i += 1
    values.append("".join(current).strip())
    return values


class CSVLogParser(BaseParser):
    """
    Parser for CSV exports (firewall, WAF, SIEM exports).

    The first non-empty line is the header; each following row becomes
    ``header=value`` pairs. Rows with fewer values than headers leave the
    missing columns out.
    """

    log_format = LogFormat.CSV

    def __init__(self):
        self.headers: List[str] = []
        self.header_index = -1

    def can_parse(self, line: str) -> bool:
        line = line.strip()
        return "," in line and bool(HEADER_PATTERN.match(line))

    def prepare(self, lines: List[str]) -> None:
        for index, line in enumerate(lines):
            if line.strip():
                self.header_index = index
                self.headers = [h.lower() for h in split_csv_values(line.strip())]
                return

    def is_header(self, index: int, line: str) -> bool:
        return index == self.header_index

    def normalize(self, line: str) -> Tuple[str, bool]:
        if not self.headers:
            return line, True

        values = split_csv_values(line.strip())
        pairs = [
            f"{header}={value}"
            for header, value in zip(self.headers, values)
            if header
        ]
        return " ".join(pairs), False

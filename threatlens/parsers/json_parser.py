"""
Parser for JSON-lines logs.
"""

import json
from typing import Any, List, Tuple

from threatlens.models.log_entry import LogFormat
from threatlens.parsers.base import BaseParser


class JSONLogParser(BaseParser):
    """
    Parser for JSON-formatted application logs, one object per line.

    Each object is flattened to ``key=value`` pairs so that the same
    signatures and field extractors work as for plain text. Nested
    objects become ``parent_child=value``; lists are joined with commas.
    """

    log_format = LogFormat.JSONL

    def can_parse(self, line: str) -> bool:
        """Check if line is a JSON object."""
        line = line.strip()
        if not line:
            return False

        # Quick check for JSON structure
        if not (line.startswith("{") and line.endswith("}")):
            return False

        try:
            return isinstance(json.loads(line), dict)
        except json.JSONDecodeError:
            return False

    def normalize(self, line: str) -> Tuple[str, bool]:
        try:
            data = json.loads(line)
        except json.JSONDecodeError:
            return line, True

        if not isinstance(data, dict):
            return line, True

        return " ".join(self._flatten(data)), False

    def _flatten(self, data: dict, prefix: str = "") -> List[str]:
        pairs: List[str] = []
        for key, value in data.items():
            name = f"{prefix}_{key}" if prefix else str(key)
            if isinstance(value, dict):
                pairs.extend(self._flatten(value, name))
            else:
                pairs.append(f"{name}={self._render(value)}")
        return pairs

    @staticmethod
    def _render(value: Any) -> str:
        if value is None:
            return ""
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, list):
            return ",".join(JSONLogParser._render(v) for v in value)
        return str(value)

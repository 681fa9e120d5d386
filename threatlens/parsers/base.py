"""
Abstract base class for log parsers and the format-detecting orchestrator.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field

from threatlens.models.log_entry import LogFormat, LogLine
from threatlens.parsers.fields import build_log_line


logger = logging.getLogger(__name__)


class BaseParser(ABC):
    """
    Abstract base class for all log parsers.

    Each parser must implement:
    - can_parse(): Check if a sample line matches this parser's format
    - normalize(): Turn one raw line into flat matchable text
    """

    log_format: LogFormat = LogFormat.PLAIN

    @abstractmethod
    def can_parse(self, line: str) -> bool:
        """
        Check if this parser can handle the given log line.

        Args:
            line: A single non-empty log line

        Returns:
            True if this parser can parse the line
        """
        pass

    @abstractmethod
    def normalize(self, line: str) -> Tuple[str, bool]:
        """
        Normalize a single line into flat text.

        Args:
            line: A single log line

        Returns:
            (normalized text, parse error). On error the text is the
            original line so that signatures still see it.
        """
        pass

    def prepare(self, lines: List[str]) -> None:
        """Hook called once with the whole file before normalizing."""

    def is_header(self, index: int, line: str) -> bool:
        """True for lines that carry no events (e.g. a CSV header row)."""
        return False


class ParseResult(BaseModel):
    """Output of one orchestrated parse."""

    lines: List[LogLine] = Field(default_factory=list)
    log_format: LogFormat = LogFormat.PLAIN
    skipped_lines: int = 0


class ParserOrchestrator:
    """
    Detects the file format and normalizes every line with the matching parser.
    """

    SAMPLE_SIZE = 10

    def __init__(self):
        # Import here to avoid circular imports
        from threatlens.parsers.csv_parser import CSVLogParser
        from threatlens.parsers.json_parser import JSONLogParser
        from threatlens.parsers.plain_parser import PlainLogParser

        self._parser_types = [JSONLogParser, CSVLogParser]
        self._fallback = PlainLogParser

    def detect_format(self, lines: List[str]) -> LogFormat:
        """
        Detect the log format from the first lines of a file.

        The first non-empty line within the sample decides; anything that
        is neither JSON nor a recognizable CSV header is plain text.
        """
        first = self._first_non_empty(lines[: self.SAMPLE_SIZE])
        if first is None:
            return LogFormat.PLAIN

        for parser_type in self._parser_types:
            if parser_type().can_parse(first):
                return parser_type.log_format
        return LogFormat.PLAIN

    def parser_for(self, log_format: LogFormat) -> BaseParser:
        for parser_type in self._parser_types:
            if parser_type.log_format == log_format:
                return parser_type()
        return self._fallback()

    def parse(self, lines: List[str], log_format: Optional[LogFormat] = None) -> ParseResult:
        """
        Parse raw lines into LogLine objects.

        Blank lines and header rows are skipped; lines that fail to parse
        in the detected format are kept verbatim and counted as skipped.
        Line numbers always refer to the original file (1-based).

        Args:
            lines: Raw file lines without trailing newlines
            log_format: Optional format hint, auto-detected when omitted

        Returns:
            ParseResult with parsed lines, the format and the skip count
        """
        detected = log_format or self.detect_format(lines)
        parser = self.parser_for(detected)
        parser.prepare(lines)

        result = ParseResult(log_format=detected)
        for index, raw in enumerate(lines):
            if not raw.strip():
                continue
            if parser.is_header(index, raw):
                continue

            normalized, error = parser.normalize(raw)
            if error:
                result.skipped_lines += 1
            if not normalized.strip():
                continue

            result.lines.append(build_log_line(index + 1, raw, normalized))

        if result.skipped_lines:
            logger.info(
                "Parsed %d lines as %s (%d could not be parsed in that format)",
                len(result.lines), detected.value, result.skipped_lines,
            )
        return result

    @staticmethod
    def _first_non_empty(lines: List[str]) -> Optional[str]:
        for line in lines:
            if line.strip():
                return line.strip()
        return None

"""
Log parsers for different log formats.
"""

from threatlens.parsers.base import BaseParser, ParseResult, ParserOrchestrator
from threatlens.parsers.plain_parser import PlainLogParser
from threatlens.parsers.json_parser import JSONLogParser
from threatlens.parsers.csv_parser import CSVLogParser

__all__ = [
    "BaseParser",
    "ParseResult",
    "ParserOrchestrator",
    "PlainLogParser",
    "JSONLogParser",
    "CSVLogParser",
]

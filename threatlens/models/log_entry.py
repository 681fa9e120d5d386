"""
Normalized log line model.
The parsers turn every raw line into this common shape.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class LogFormat(str, Enum):
    """Supported file formats."""
    PLAIN = "plain"
    JSONL = "jsonl"
    CSV = "csv"


class LogLine(BaseModel):
    """
    One line of an uploaded file.

    ``normalized`` is the flat text representation that detectors match
    against (JSON and CSV rows become ``key=value`` pairs); ``raw`` is
    the original line kept for display. Parsed fields are ``None`` when
    the line does not carry them.
    """

    number: int = Field(
        description="1-based line number in the uploaded file"
    )
    raw: str = Field(
        description="Original line as uploaded"
    )
    normalized: str = Field(
        description="Flat text representation used for matching"
    )
    source_ip: Optional[str] = None
    status_code: Optional[int] = None
    path: Optional[str] = None
    username: Optional[str] = None
    timestamp: Optional[datetime] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "number": 7,
                "raw": '203.0.113.5 - - [15/Jan/2024:04:15:22 +0000] "GET /admin HTTP/1.1" 404 0 "-" "Mozilla/5.0"',
                "normalized": '203.0.113.5 - - [15/Jan/2024:04:15:22 +0000] "GET /admin HTTP/1.1" 404 0 "-" "Mozilla/5.0"',
                "source_ip": "203.0.113.5",
                "status_code": 404,
                "path": "/admin",
                "username": None,
                "timestamp": "2024-01-15T04:15:22+00:00",
            }
        }
    )

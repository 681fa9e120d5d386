"""
Database module for ThreatLens.
"""

from threatlens.database.db import init_database, get_db
from threatlens.database.repositories import (
    AnalysisResultRepository,
    FindingRepository,
    UploadRepository,
)

__all__ = [
    "init_database",
    "get_db",
    "AnalysisResultRepository",
    "FindingRepository",
    "UploadRepository",
]

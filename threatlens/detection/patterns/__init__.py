"""
Declarative detector definitions.
"""

from threatlens.detection.patterns.base import (
    Matcher,
    PatternEntry,
    PatternKind,
    entries_from_regexes,
    regex_matcher,
    signature_entries,
    status_matcher,
    user_agent_matcher,
)
from threatlens.detection.patterns.library import (
    CATEGORY_MITRE,
    PatternLibrary,
    load_default_library,
    technique_id,
)

__all__ = [
    "Matcher",
    "PatternEntry",
    "PatternKind",
    "entries_from_regexes",
    "regex_matcher",
    "signature_entries",
    "status_matcher",
    "user_agent_matcher",
    "CATEGORY_MITRE",
    "PatternLibrary",
    "load_default_library",
    "technique_id",
]

"""
Rule-based detection.
"""

from threatlens.detection.engine import RuleEngine, RuleEngineResult
from threatlens.detection.aggregator import IpAggregationState, SourceAggregator
from threatlens.detection.fingerprint import compute_fingerprint, fingerprint_for

__all__ = [
    "RuleEngine",
    "RuleEngineResult",
    "IpAggregationState",
    "SourceAggregator",
    "compute_fingerprint",
    "fingerprint_for",
]

"""
ThreatLens - Hybrid Security Log Analysis

Analyzes uploaded log files with a deterministic rule engine and an
LLM-based contextual reviewer, then merges both streams into one ranked
set of security findings.
"""

__version__ = "1.0.0"

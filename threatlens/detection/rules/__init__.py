"""
Statistical detection rules.
"""

from threatlens.detection.rules.base import StatisticalRule
from threatlens.detection.rules.brute_force import BruteForceRule, PasswordSprayRule
from threatlens.detection.rules.enumeration import DirectoryEnumerationRule
from threatlens.detection.rules.frequency import BurstRule, ErrorRatioRule, RateVolumeRule

__all__ = [
    "StatisticalRule",
    "BruteForceRule",
    "PasswordSprayRule",
    "DirectoryEnumerationRule",
    "RateVolumeRule",
    "ErrorRatioRule",
    "BurstRule",
]

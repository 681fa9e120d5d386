"""
Analysis orchestration: merging, pipeline state machine, background work.
"""

from threatlens.analysis.merger import merge_findings
from threatlens.analysis.pipeline import AnalysisPipeline, StartOutcome
from threatlens.analysis.recovery import RecoveryScheduler
from threatlens.analysis.worker import AnalysisWorker

__all__ = [
    "merge_findings",
    "AnalysisPipeline",
    "StartOutcome",
    "RecoveryScheduler",
    "AnalysisWorker",
]

"""
Per-source aggregation - counters the statistical rules evaluate.
"""

from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Set

from pydantic import BaseModel, Field

from threatlens.models.log_entry import LogLine


class IpAggregationState(BaseModel):
    """
    Everything one run has observed for a single source IP.

    Scoped to one rule engine run; never persisted or shared.
    """

    ip: str
    total_requests: int = 0
    error_count: int = 0
    failed_auth_count: int = 0
    usernames: Set[str] = Field(default_factory=set)
    not_found_count: int = 0
    not_found_paths: Set[str] = Field(default_factory=set)
    timestamps: List[datetime] = Field(default_factory=list)
    first_line_number: Optional[int] = None
    sample_lines: List[str] = Field(default_factory=list)

    @property
    def error_ratio(self) -> float:
        if not self.total_requests:
            return 0.0
        return self.error_count / self.total_requests

    @property
    def first_seen(self) -> Optional[datetime]:
        return min(self.timestamps) if self.timestamps else None

    @property
    def sample_line(self) -> Optional[str]:
        return self.sample_lines[0] if self.sample_lines else None

    def max_requests_within(self, window: timedelta) -> int:
        """
        Largest number of requests falling inside any window of the given length.

        Two pointers over the sorted timestamps; a request exactly
        ``window`` after the first one still counts.
        """
        ordered = sorted(self.timestamps)
        best = 0
        start = 0
        for end, ts in enumerate(ordered):
            while ts - ordered[start] > window:
                start += 1
            best = max(best, end - start + 1)
        return best


class SourceAggregator:
    """
    Accumulates per-IP state during the single pass over a file.

    Lines without a recognizable IP are ignored here; they are still
    matched against the signature patterns by the engine.
    """

    SAMPLE_LINES = 3

    def __init__(self):
        self._states: Dict[str, IpAggregationState] = OrderedDict()

    def observe(self, line: LogLine, failed_auth: bool = False) -> None:
        """
        Record one parsed line.

        Args:
            line: Parsed log line
            failed_auth: Whether an authentication-failure indicator matched
        """
        if not line.source_ip:
            return

        state = self._states.get(line.source_ip)
        if state is None:
            state = IpAggregationState(ip=line.source_ip, first_line_number=line.number)
            self._states[line.source_ip] = state

        state.total_requests += 1

        if line.status_code is not None and line.status_code >= 400:
            state.error_count += 1

        if line.status_code == 404:
            state.not_found_count += 1
            if line.path:
                state.not_found_paths.add(line.path)

        if failed_auth:
            state.failed_auth_count += 1
            if line.username:
                state.usernames.add(line.username)

        if line.timestamp is not None:
            state.timestamps.append(line.timestamp)

        if len(state.sample_lines) < self.SAMPLE_LINES:
            state.sample_lines.append(line.raw)

    def get(self, ip: str) -> Optional[IpAggregationState]:
        return self._states.get(ip)

    def states(self) -> List[IpAggregationState]:
        """All states, ordered by IP for deterministic output."""
        return [self._states[ip] for ip in sorted(self._states)]

    def __len__(self) -> int:
        return len(self._states)

"""
Split a log file into bounded, line-aligned chunks for LLM requests.
"""

from typing import List

from pydantic import BaseModel


MAX_LINE_CHARS = 2000


class Chunk(BaseModel):
    """One request's worth of log lines, numbered for line references."""

    id: int
    start_line: int
    end_line: int
    content: str

    def contains(self, line_number: int) -> bool:
        return self.start_line <= line_number <= self.end_line


def chunk_lines(
    lines: List[str],
    max_chars: int = 12000,
    overlap_lines: int = 5,
) -> List[Chunk]:
    """
    Split lines into chunks of at most ``max_chars`` characters.

    Every chunk holds whole lines, each prefixed with its 1-based line
    number. A single line longer than the budget is truncated rather
    than split. Consecutive chunks share ``overlap_lines`` lines of
    context; the start always advances so the loop terminates.

    Args:
        lines: File lines in order
        max_chars: Character budget per chunk (excluding line prefixes)
        overlap_lines: Lines repeated at the start of the next chunk

    Returns:
        Chunks in file order
    """
    chunks: List[Chunk] = []
    line_budget = min(MAX_LINE_CHARS, max_chars)
    start = 0

    while start < len(lines):
        used = 0
        end = start
        while end < len(lines):
            # +1 for the newline
            length = min(len(lines[end]), line_budget) + 1
            if used + length > max_chars and end > start:
                break
            used += length
            end += 1

        body = "\n".join(
            f"{start + offset + 1}: {_clip(line, line_budget)}"
            for offset, line in enumerate(lines[start:end])
        )
        chunks.append(Chunk(id=len(chunks), start_line=start + 1, end_line=end, content=body))

        if end >= len(lines):
            break
        start = max(start + 1, end - overlap_lines)

    return chunks


def _clip(line: str, limit: int) -> str:
    if len(line) <= limit:
        return line
    return line[:limit] + "...[truncated]"

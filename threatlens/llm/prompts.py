"""
Prompt templates for LLM log analysis.
"""

from collections import Counter
from typing import Iterable, List

from threatlens.models.finding import Finding, Severity, ThreatCategory, sort_findings


SYSTEM_PROMPT = """You are a Senior Security Operations Center (SOC) Analyst with expertise in:
- Threat detection and incident response
- MITRE ATT&CK framework mapping
- Web server, application and authentication log analysis
- Attack pattern recognition across multiple log lines

Your role is to review raw log excerpts and report security-relevant events.

Guidelines:
1. Be precise and factual - only report what the log lines show
2. Reference the exact line number shown at the start of each line
3. Correlate related lines (multi-stage attacks, slow scans, credential abuse)
4. Prefer fewer, well-supported findings over speculative ones
5. Map findings to MITRE ATT&CK techniques accurately
6. Respond with a JSON array only, no prose"""


CHUNK_PROMPT_TEMPLATE = """Analyze the following log excerpt for security threats.

## Context
- Lines {start_line} to {end_line} of a {total_lines}-line file
- Each line is prefixed with its line number

## Log Excerpt
{content}

## Your Task
Return a JSON array (possibly empty) of findings in this format:

[
  {{
    "title": "Short finding title",
    "description": "1-3 sentence explanation of what happened and why it matters",
    "severity": "{severities}",
    "category": "one of: {categories}",
    "lineNumber": 42,
    "evidence": "The exact text from the line that shows the threat",
    "recommendation": "Specific actionable recommendation",
    "confidence": 0.8,
    "mitreTactic": "Tactic name",
    "mitreTechnique": "Technique from this list when applicable: {techniques}"
  }}
]

Important:
- lineNumber must be a line from this excerpt, or null for findings spanning many lines
- confidence is a number between 0 and 1
- Return [] if nothing suspicious is present"""


SUMMARY_SYSTEM_PROMPT = """You are a Senior Security Operations Center (SOC) Analyst writing for
incident responders and management. Write plain prose, no JSON, no markdown headings."""


SUMMARY_PROMPT_TEMPLATE = """Write a 2-3 paragraph executive summary of the security analysis of a
{total_lines}-line log file.

## Findings by severity
{severity_counts}

## Findings by category
{category_counts}

## Most severe findings
{top_findings}

Cover the overall risk, the most important attack activity (cite line numbers
where given) and the first actions the team should take. If there are no
findings, say so and note what the log covers."""


CONNECTION_TEST_PROMPT = 'Reply with the JSON array ["ok"] and nothing else.'


class PromptTemplates:
    """Container for prompt templates with helper methods."""

    SYSTEM = SYSTEM_PROMPT
    CHUNK = CHUNK_PROMPT_TEMPLATE
    SUMMARY_SYSTEM = SUMMARY_SYSTEM_PROMPT
    SUMMARY = SUMMARY_PROMPT_TEMPLATE
    CONNECTION_TEST = CONNECTION_TEST_PROMPT

    @staticmethod
    def format_chunk_prompt(
        content: str,
        start_line: int,
        end_line: int,
        total_lines: int,
        techniques: Iterable[str] = (),
    ) -> str:
        """Format the per-chunk analysis prompt."""
        return CHUNK_PROMPT_TEMPLATE.format(
            content=content,
            start_line=start_line,
            end_line=end_line,
            total_lines=total_lines,
            severities="|".join(s.value for s in Severity.ordered()),
            categories=", ".join(c.value for c in ThreatCategory),
            techniques="; ".join(sorted(techniques)) or "any ATT&CK technique",
        )

    @staticmethod
    def format_summary_prompt(findings: List[Finding], total_lines: int, max_listed: int = 15) -> str:
        """Format the executive summary prompt from the merged findings."""
        severity_counts = Counter(f.severity for f in findings)
        category_counts = Counter(f.category for f in findings)

        top = []
        for finding in sort_findings(findings)[:max_listed]:
            where = f"line {finding.line_number}" if finding.line_number else "multiple lines"
            top.append(f"- [{finding.severity.value}] {finding.title} ({where}, {finding.source.value})")

        return SUMMARY_PROMPT_TEMPLATE.format(
            total_lines=total_lines,
            severity_counts="\n".join(
                f"- {s.value}: {severity_counts.get(s, 0)}" for s in Severity.ordered()
            ),
            category_counts="\n".join(
                f"- {c.value}: {n}" for c, n in category_counts.most_common()
            ) or "- none",
            top_findings="\n".join(top) or "- none",
        )

"""
Output module - Separates rendering from analysis.

Provides multiple output formats:
- render_text: Plain terminal output for the CLI
- render_json: The pydantic model dump, stable for scripts
- render_markdown: GitHub/Slack-friendly format

Usage:
    from dbtriage.output import OutputFormat, render_report

    print(render_report(report, OutputFormat.MARKDOWN))
"""

from dbtriage.output.renderers import (
    OutputFormat,
    render_json,
    render_markdown,
    render_report,
    render_text,
)

__all__ = [
    "OutputFormat",
    "render_report",
    "render_text",
    "render_json",
    "render_markdown",
]

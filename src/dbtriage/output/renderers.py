"""
Output renderers for different formats.

Separates presentation logic from analysis logic. JSON output is always
the pydantic model dump, so the JSON a script reads is the same document
DatabaseReport.from_json() accepts back.
"""

from __future__ import annotations

import json
from datetime import datetime
from enum import Enum
from typing import Any, Union

from pydantic import BaseModel

from dbtriage.analyzer.models import DatabaseReport, Severity
from dbtriage.reports.models import ReportModel

Renderable = Union[DatabaseReport, ReportModel]


class OutputFormat(str, Enum):
    """Supported output formats."""

    TEXT = "text"
    JSON = "json"
    MARKDOWN = "markdown"


def render_report(report: Renderable, format: OutputFormat = OutputFormat.TEXT) -> str:
    """
    Render a report in the specified format.

    Args:
        report: A DatabaseReport or any inspection report
        format: Output format (text, json, markdown)

    Returns:
        Formatted string
    """
    if format == OutputFormat.TEXT:
        return render_text(report)
    elif format == OutputFormat.JSON:
        return render_json(report)
    elif format == OutputFormat.MARKDOWN:
        return render_markdown(report)
    else:
        raise ValueError(f"Unknown format: {format}")


def _severity_icon(severity: Severity) -> str:
    return {
        Severity.CRITICAL: "🔴",
        Severity.HIGH: "🟠",
        Severity.MEDIUM: "🟡",
        Severity.LOW: "🔵",
    }.get(severity, "⚪")


def _title(report: BaseModel) -> str:
    """``QueryStatisticsReport`` -> ``Query Statistics Report``."""
    name = type(report).__name__
    words: list[str] = []
    for char in name:
        if char.isupper() and words:
            words.append(" ")
        words.append(char)
    return "".join(words)


def _label(field_name: str) -> str:
    return field_name.replace("_", " ").capitalize()


def _scalar(value: Any) -> str:
    if value is None:
        return "-"
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    if isinstance(value, tuple):
        return ", ".join(_scalar(v) for v in value)
    return str(value)


def _fields(model: BaseModel) -> list[tuple[str, Any]]:
    return [(name, getattr(model, name)) for name in type(model).model_fields]


def _is_model_list(value: Any) -> bool:
    return isinstance(value, tuple) and bool(value) and isinstance(value[0], BaseModel)


def _is_text_list(value: Any) -> bool:
    return isinstance(value, tuple) and all(isinstance(v, str) for v in value)


def _has_nested_models(model: BaseModel) -> bool:
    return any(
        isinstance(value, BaseModel) or _is_model_list(value) for _, value in _fields(model)
    )


# =============================================================================
# JSON renderer
# =============================================================================


def render_json(report: Renderable, indent: int = 2) -> str:
    """
    Render a report as JSON.

    Suitable for CI/CD integration, log aggregation and snapshot diffs.
    """
    return report.model_dump_json(indent=indent)


# =============================================================================
# Text renderer (terminal)
# =============================================================================


def render_text(report: Renderable) -> str:
    """Render a report as plain terminal text."""
    if isinstance(report, DatabaseReport):
        return _database_report_text(report)

    lines = ["=" * 60, _title(report), "=" * 60, ""]
    lines.extend(_model_text(report, indent=0))
    lines.append("")
    lines.append("=" * 60)
    return "\n".join(lines)


def _model_text(model: BaseModel, indent: int) -> list[str]:
    pad = "  " * indent
    lines: list[str] = []
    for name, value in _fields(model):
        if isinstance(value, BaseModel):
            lines.append(f"{pad}{_label(name)}:")
            lines.extend(_model_text(value, indent + 1))
        elif _is_model_list(value):
            lines.append(f"{pad}{_label(name)}:")
            for i, item in enumerate(value, 1):
                item_lines = _model_text(item, indent + 2)
                lines.append(f"{pad}  [{i}]")
                lines.extend(item_lines)
        elif _is_text_list(value) and value and name not in ("columns", "keep_columns", "drop_columns"):
            lines.append(f"{pad}{_label(name)}:")
            for item in value:
                lines.append(f"{pad}  • {item}")
        elif isinstance(value, tuple) and not value:
            lines.append(f"{pad}{_label(name)}: none")
        else:
            lines.append(f"{pad}{_label(name)}: {_scalar(value)}")
    return lines


def _database_report_text(report: DatabaseReport) -> str:
    lines: list[str] = []
    summary = report.summary

    lines.append("=" * 60)
    lines.append("dbtriage Database Report")
    lines.append("=" * 60)
    lines.append("")
    lines.append(f"Health Score: {report.health_score}/100")
    lines.append(f"Tables: {summary.total_tables}  Size: {summary.total_size}")
    lines.append("")

    lines.append("Summary:")
    lines.append(f"  Issues: {len(report.issues)}")
    if summary.critical_issues:
        lines.append(f"  🔴 Critical: {summary.critical_issues}")
    if summary.warnings:
        lines.append(f"  🟡 Warnings: {summary.warnings}")
    if summary.advisories:
        lines.append(f"  🔵 Advisories: {summary.advisories}")
    lines.append("")

    if report.issues:
        lines.append("-" * 60)
        lines.append("ISSUES")
        lines.append("-" * 60)
        for i, issue in enumerate(report.issues, 1):
            lines.append("")
            lines.append(f"[{i}] {_severity_icon(issue.severity)} {issue.description}")
            lines.append(f"    Category: {issue.category.value}")
            for obj in issue.affected_objects:
                lines.append(f"      - {obj}")
            lines.append(f"    Tool: {issue.recommended_tool.value}")
            lines.append(f"    Action: {issue.recommended_action}")
        lines.append("")
    else:
        lines.append("✓ No issues found")
        lines.append("")

    if report.tables_requiring_attention:
        lines.append("-" * 60)
        lines.append("TABLES REQUIRING ATTENTION")
        lines.append("-" * 60)
        for entry in report.tables_requiring_attention:
            lines.append("")
            lines.append(f"{_severity_icon(entry.priority)} {entry.qualified_name}")
            for reason in entry.reasons:
                lines.append(f"    • {reason}")
        lines.append("")

    if report.workflow:
        lines.append("-" * 60)
        lines.append("WORKFLOW")
        lines.append("-" * 60)
        for step in report.workflow:
            params = ""
            if step.parameters:
                params = " (" + ", ".join(f"{k}={v}" for k, v in step.parameters.items()) + ")"
            lines.append(f"{step.step:>3}. {step.description}")
            lines.append(f"     {step.tool.value}{params}")
        lines.append("")

    for heading, items in (
        ("Quick wins", report.quick_wins),
        ("Long-term improvements", report.long_term_improvements),
        ("Recommendations", report.recommendations),
        ("Data notes", report.data_notes),
    ):
        if items:
            lines.append(f"{heading}:")
            for item in items:
                lines.append(f"  • {item}")
            lines.append("")

    lines.append("=" * 60)
    return "\n".join(lines)


# =============================================================================
# Markdown renderer
# =============================================================================


def render_markdown(report: Renderable) -> str:
    """
    Render a report as Markdown.

    Suitable for GitHub comments/issues, Slack messages, documentation.
    """
    if isinstance(report, DatabaseReport):
        return _database_report_markdown(report)

    lines = [f"# {_title(report)}", ""]
    lines.extend(_model_markdown(report, level=2))
    return "\n".join(lines)


def _model_markdown(model: BaseModel, level: int) -> list[str]:
    scalars: list[tuple[str, Any]] = []
    sections: list[str] = []

    for name, value in _fields(model):
        heading = "#" * min(level, 6)
        if isinstance(value, BaseModel):
            sections.append(f"{heading} {_label(name)}")
            sections.append("")
            sections.extend(_model_markdown(value, level + 1))
        elif _is_model_list(value) and _has_nested_models(value[0]):
            sections.append(f"{heading} {_label(name)}")
            sections.append("")
            sub = "#" * min(level + 1, 6)
            for i, item in enumerate(value, 1):
                sections.append(f"{sub} {getattr(item, 'name', i)}")
                sections.append("")
                sections.extend(_model_markdown(item, level + 2))
        elif _is_model_list(value):
            sections.append(f"{heading} {_label(name)}")
            sections.append("")
            sections.extend(_markdown_table(value))
            sections.append("")
        elif _is_text_list(value) and value and name not in ("columns",):
            sections.append(f"{heading} {_label(name)}")
            sections.append("")
            sections.extend(f"- {item}" for item in value)
            sections.append("")
        else:
            scalars.append((name, value))

    lines: list[str] = []
    if scalars:
        lines.append("| Field | Value |")
        lines.append("|-------|-------|")
        for name, value in scalars:
            lines.append(f"| {_label(name)} | {_cell(value)} |")
        lines.append("")
    lines.extend(sections)
    return lines


def _cell(value: Any) -> str:
    return _scalar(value).replace("|", "\\|").replace("\n", " ")


def _markdown_table(items: tuple[BaseModel, ...]) -> list[str]:
    names = list(type(items[0]).model_fields)
    lines = [
        "| " + " | ".join(_label(n) for n in names) + " |",
        "|" + "|".join("---" for _ in names) + "|",
    ]
    for item in items:
        lines.append("| " + " | ".join(_cell(getattr(item, n)) for n in names) + " |")
    return lines


def _database_report_markdown(report: DatabaseReport) -> str:
    lines: list[str] = []
    summary = report.summary

    lines.append("# dbtriage Database Report")
    lines.append("")

    if summary.critical_issues:
        lines.append("🔴 **Critical issues found**")
    elif report.issues:
        lines.append("🟡 **Issues found**")
    else:
        lines.append("✅ **No issues found**")
    lines.append("")

    lines.append("## Summary")
    lines.append("")
    lines.append("| Metric | Value |")
    lines.append("|--------|-------|")
    lines.append(f"| Health Score | {report.health_score} |")
    lines.append(f"| Tables | {summary.total_tables} |")
    lines.append(f"| Size | {summary.total_size} |")
    lines.append(f"| Critical | {summary.critical_issues} |")
    lines.append(f"| Warnings | {summary.warnings} |")
    lines.append(f"| Advisories | {summary.advisories} |")
    lines.append("")

    if report.issues:
        lines.append("## Issues")
        lines.append("")
        for i, issue in enumerate(report.issues, 1):
            lines.append(f"### {i}. {_severity_icon(issue.severity)} {issue.description}")
            lines.append("")
            lines.append(f"**Category:** `{issue.category.value}`  ")
            lines.append(f"**Tool:** `{issue.recommended_tool.value}`  ")
            lines.append(f"**Action:** {issue.recommended_action}")
            lines.append("")
            for obj in issue.affected_objects:
                lines.append(f"- `{obj}`")
            lines.append("")

    if report.tables_requiring_attention:
        lines.append("## Tables Requiring Attention")
        lines.append("")
        lines.append("| Table | Priority | Reasons |")
        lines.append("|-------|----------|---------|")
        for entry in report.tables_requiring_attention:
            reasons = "<br>".join(_cell(r) for r in entry.reasons)
            lines.append(f"| `{entry.qualified_name}` | {entry.priority.value} | {reasons} |")
        lines.append("")

    if report.workflow:
        lines.append("## Workflow")
        lines.append("")
        for step in report.workflow:
            params = ""
            if step.parameters:
                params = " " + ", ".join(f"`{k}={v}`" for k, v in step.parameters.items())
            lines.append(f"{step.step}. {step.description} (`{step.tool.value}`{params})")
        lines.append("")

    for heading, items in (
        ("Quick Wins", report.quick_wins),
        ("Long-Term Improvements", report.long_term_improvements),
        ("Recommendations", report.recommendations),
        ("Data Notes", report.data_notes),
    ):
        if items:
            lines.append(f"## {heading}")
            lines.append("")
            lines.extend(f"- {item}" for item in items)
            lines.append("")

    lines.append("---")
    lines.append("*Generated by dbtriage*")
    return "\n".join(lines)

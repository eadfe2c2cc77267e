"""Markdown report compiler and the end-of-run console summary."""

from __future__ import annotations

import os
from typing import Sequence

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from qflow.models.context import RuntimeSignals
from qflow.models.types import SEVERITY_ORDER, BugEntry, RunContext, WorkflowResult


SEVERITY_COLORS = {"Critical": "red bold", "High": "red", "Medium": "yellow", "Low": "cyan"}


def cell(value) -> str:
    """Table-cell text: pipes escaped, line breaks collapsed."""
    text = " ".join(str(value).split())
    return text.replace("|", "\\|")


def sort_by_severity(bugs: Sequence[BugEntry]) -> list[BugEntry]:
    """Critical first; discovery order is kept within a severity."""
    return sorted(bugs, key=lambda b: b.severity.rank)


def compile_report(
    ctx: RunContext,
    url: str,
    scope: str,
    bugs: Sequence[BugEntry],
    signals: RuntimeSignals,
    workflows: Sequence[WorkflowResult],
    ai_engine: str,
    executive_summary: str = "",
    browser: str = "Chromium (Playwright, headless)",
) -> str:
    """Render the report. Pure: same inputs, same bytes."""
    L: list[str] = []
    add = L.append

    add("# QA Test Report")
    add("")
    add("| Field | Value |")
    add("|-------|-------|")
    add(f"| URL | {cell(url)} |")
    add(f"| Run | {ctx.run_id} |")
    add(f"| Date | {ctx.started_at.isoformat()} |")
    add(f"| Browser | {cell(browser)} |")
    add(f"| AI Engine | {cell(ai_engine)} |")
    add(f"| Scope | {cell(scope)} |")
    add(f"| Bugs Found | **{len(bugs)}** |")
    add("")

    if executive_summary:
        add("## AI Executive Summary")
        add("")
        add(executive_summary)
        add("")

    add("## Summary")
    add("")
    add("| Severity | Count |")
    add("|----------|-------|")
    for sev in SEVERITY_ORDER:
        add(f"| {sev.value} | {sum(1 for b in bugs if b.severity == sev)} |")
    add("")

    categories = list(dict.fromkeys(b.category for b in bugs))
    if categories:
        add("| Category | Count |")
        add("|----------|-------|")
        for cat in categories:
            add(f"| {cat.value} | {sum(1 for b in bugs if b.category == cat)} |")
        add("")

    _runtime_section(L, signals)

    if signals.failed_requests:
        add(f"## Failed Network Requests ({len(signals.failed_requests)})")
        add("")
        for r in signals.failed_requests[:30]:
            add(f"- `{r.method} {r.url}` -> {r.outcome} ({r.resource_type})")
        add("")

    if workflows:
        _workflow_section(L, workflows)

    add("## Bug Entries")
    add("")
    if not bugs:
        add("No issues detected in this pass.")
    for bug in sort_by_severity(bugs):
        _bug_section(L, bug)

    return "\n".join(L)


def _runtime_section(L: list[str], signals: RuntimeSignals):
    groups = [
        ("Console Errors", signals.console_errors, 25),
        ("Uncaught Exceptions", signals.page_errors, 25),
        ("Console Warnings", signals.console_warnings, 10),
    ]
    if not any(items for _, items, _ in groups):
        return
    L += ["## Runtime Signals", ""]
    for heading, items, cap in groups:
        if not items:
            continue
        L.append(f"### {heading} ({len(items)})")
        L.extend(f"- `{e}`" for e in items[:cap])
        L.append("")


def _workflow_section(L: list[str], workflows: Sequence[WorkflowResult]):
    passed = sum(1 for w in workflows if w.passed)
    L += [
        "## Workflow Test Results",
        "",
        "| Metric | Count |",
        "|--------|-------|",
        f"| Total Workflows | {len(workflows)} |",
        f"| Passed | {passed} |",
        f"| Failed | {len(workflows) - passed} |",
        "",
    ]
    for wf in workflows:
        L += [f"#### [{'PASS' if wf.passed else 'FAIL'}] {wf.name}", ""]
        if wf.steps:
            L += ["| Step | Action | Target | Expected |", "|------|--------|--------|----------|"]
            for i, s in enumerate(wf.steps, 1):
                L.append(f"| {i} | {s.action} | {cell(s.target or '-')} | {cell(s.expect or '-')} |")
            L.append("")
        if wf.error:
            L += [f"> **Error:** {wf.error}", ""]


def _bug_section(L: list[str], bug: BugEntry):
    L += [
        f"### {bug.id}: {bug.title}",
        "",
        "| Field | Value |",
        "|-------|-------|",
        f"| Severity | **{bug.severity.value}** |",
        f"| Category | {bug.category.value} |",
        f"| Description | {cell(bug.description)} |",
        "",
        "**Steps to reproduce:**",
    ]
    L.extend(f"{i}. {s}" for i, s in enumerate(bug.steps, 1))
    L.append("")
    if bug.details:
        L.append("**Details:**")
        L.extend(f"- {d}" for d in bug.details)
        L.append("")
    L.append("**Evidence:**")
    L.extend(f"- ![{bug.id}]({e})" for e in bug.evidence)
    L += ["", "---", ""]


def write_report(ctx: RunContext, text: str) -> str:
    os.makedirs(os.path.dirname(ctx.report_path), exist_ok=True)
    with open(ctx.report_path, "w", encoding="utf-8") as f:
        f.write(text)
    return ctx.report_path


def print_summary(ctx: RunContext, url: str, bugs: Sequence[BugEntry],
                  workflows: Sequence[WorkflowResult], ai_enabled: bool,
                  console: Console | None = None):
    """Print the end-of-run summary using Rich."""
    console = console or Console()
    passed = sum(1 for w in workflows if w.passed)

    header = Text()
    header.append(f"\n Scan complete: {len(bugs)} bug(s) found\n", style="bold")
    header.append(f" {url}\n", style="dim")
    if ai_enabled:
        ai_bugs = sum(1 for b in bugs if b.title.startswith("[AI"))
        header.append(f" AI-discovered bugs: {ai_bugs}\n", style="dim")
    header.append(
        f" Workflows: {len(workflows)} total, {passed} passed, {len(workflows) - passed} failed\n",
        style="dim")
    console.print(Panel(header, border_style="blue"))

    if bugs:
        table = Table(show_header=True, header_style="bold", padding=(0, 1))
        table.add_column("ID", width=8)
        table.add_column("Sev", width=9)
        table.add_column("Category", width=13)
        table.add_column("Bug", min_width=40)
        for bug in sort_by_severity(bugs):
            sev = bug.severity.value
            table.add_row(bug.id, Text(sev, style=SEVERITY_COLORS[sev]), bug.category.value, bug.title[:70])
        console.print(table)
    else:
        console.print("  [green bold]No issues detected in this pass.[/green bold]")

    console.print(f"\n  Report      : {os.path.relpath(ctx.report_path)}")
    console.print(f"  Screenshots : {os.path.relpath(ctx.screenshot_dir)}\n")

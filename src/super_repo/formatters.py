"""Output formatters for console and JSON display."""

from __future__ import annotations

import json
import sys
from collections.abc import Iterable
from pathlib import Path
from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.table import Table

if TYPE_CHECKING:
    from .core import PullReport, PullSummary, RepositoryDescriptor, UpdateOutcome

MAX_LISTED_FILES = 8
COLUMN_GAP = "  "
DETAIL_INDENT = "    "


def _short(ref: str) -> str:
    from .core import SHORT_HASH_LENGTH

    return ref[:SHORT_HASH_LENGTH]


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


def _declaration_order(outcome: Any) -> tuple[int, str]:
    """Sort key placing outcomes in manifest order, malformed ones last."""
    try:
        return int(outcome.descriptor.index), outcome.descriptor.path.as_posix()
    except (AttributeError, TypeError, ValueError):
        return sys.maxsize, ""


def _describe_path(outcome: Any) -> str:
    try:
        return outcome.descriptor.path.as_posix()
    except AttributeError:
        return "<unknown>"


def _render_outcome(outcome: UpdateOutcome) -> tuple[tuple[str, str, str, str], list[str]]:
    """Return the (path, branch, status, remark) cells and detail lines of one outcome."""
    from .core import DETACHED, OutcomeStatus

    path = outcome.path.as_posix()
    branch = outcome.branch
    details: list[str] = []
    status = outcome.status
    result = outcome.result

    match status:
        case OutcomeStatus.UPDATED | OutcomeStatus.WOULD_UPDATE:
            label = "updated" if status == OutcomeStatus.UPDATED else "would update"
            remark = (
                f"{_short(result.old_ref)} -> {_short(result.new_ref)} "
                f"({_plural(result.commit_count, 'commit')}, "
                f"{_plural(result.file_count, 'file')} changed)"
            )
            if result.changed_files:
                listed = ", ".join(result.changed_files[:MAX_LISTED_FILES])
                hidden = len(result.changed_files) - MAX_LISTED_FILES
                if hidden > 0:
                    listed += f" and {hidden} more"
                details.append(f"changed: {listed}")
        case OutcomeStatus.UP_TO_DATE:
            label = "up to date"
            remark = f"at {_short(result.old_ref)}"
            if result.ahead_count:
                remark += f", {_plural(result.ahead_count, 'local commit')} not pushed"
        case OutcomeStatus.SKIPPED_WRONG_BRANCH:
            label = "skipped"
            current, expected = outcome.eligibility.current, outcome.eligibility.expected
            if current == DETACHED:
                remark = f"HEAD is detached, expected branch '{expected}'"
            else:
                remark = f"on branch '{current}', expected '{expected}'"
        case OutcomeStatus.SKIPPED_DIRTY:
            label = "skipped"
            remark = "working tree has uncommitted changes"
        case OutcomeStatus.FAILED:
            label = "failed"
            remark = f"{result.category.value}: {result.message}"
        case _:
            label = "error"
            remark = f"internal error: {result.message}"

    return (path, branch, label, remark), details


def render_report(outcomes: Iterable[UpdateOutcome]) -> str:
    """Render outcomes as aligned plain text, one line group per repository.

    Outcomes are ordered by manifest declaration, whatever order they
    completed in. An outcome that cannot be rendered becomes an internal
    error line; this function does not raise.
    """
    rows: list[tuple[tuple[str, str, str, str], list[str]]] = []
    for outcome in sorted(outcomes, key=_declaration_order):
        try:
            rows.append(_render_outcome(outcome))
        except Exception as e:
            remark = f"internal error: unreadable outcome ({e})"
            rows.append(((_describe_path(outcome), "?", "error", remark), []))

    if not rows:
        return ""

    widths = [max(len(cells[i]) for cells, _ in rows) for i in range(3)]
    lines = []
    for cells, details in rows:
        padded = [cell.ljust(width) for cell, width in zip(cells, widths)]
        lines.append(COLUMN_GAP.join([*padded, cells[3]]).rstrip())
        lines.extend(f"{DETAIL_INDENT}{detail}" for detail in details)
    return "\n".join(lines)


class OutputFormatter:
    """Format output for console or JSON."""

    def __init__(self, console: Console, use_json: bool = False):
        self.console = console
        self.use_json = use_json

    def _print_json(self, output: dict):
        self.console.print(
            json.dumps(output, indent=2), markup=False, emoji=False, soft_wrap=True
        )

    def print_pull_report(self, report: PullReport):
        """Print pull outcomes."""
        if self.use_json:
            self._print_json(report.to_dict())
            return

        if not report.outcomes and not report.interrupted:
            self.console.print("[dim]No repositories to pull[/]")
            return

        text = render_report(report.outcomes)
        if text:
            self.console.print(text, markup=False, emoji=False, soft_wrap=True)
            self.console.print()
        self._print_summary(report.summary)
        if report.interrupted:
            self.console.print(
                "[bold red]Interrupted:[/] repositories that had not started were not pulled"
            )

    def _print_summary(self, summary: PullSummary):
        """Print summary."""
        parts = [f"[bold]Total:[/] {summary.total}"]

        if summary.updated > 0:
            parts.append(f"[green]Updated:[/] {summary.updated}")
        if summary.would_update > 0:
            parts.append(f"[blue]Would update:[/] {summary.would_update}")
        if summary.up_to_date > 0:
            parts.append(f"[green]Up to date:[/] {summary.up_to_date}")
        if summary.skipped > 0:
            parts.append(f"[yellow]Skipped:[/] {summary.skipped}")
        if summary.failed > 0:
            parts.append(f"[red]Failed:[/] {summary.failed}")

        self.console.print(" | ".join(parts))

    def print_repo_list(self, descriptors: list[RepositoryDescriptor], root_path: Path):
        """Print the registered repositories in manifest order."""
        if self.use_json:
            self._print_json(
                {
                    "root": str(root_path),
                    "repositories": [d.to_dict() for d in descriptors],
                    "total": len(descriptors),
                }
            )
            return

        if not descriptors:
            self.console.print(f"[dim]No repositories registered in {root_path}[/]")
            return

        table = Table(title=f"Super repo: {root_path}")
        table.add_column("Repository", style="cyan", no_wrap=True)
        table.add_column("Branch")

        for descriptor in descriptors:
            if descriptor.branch:
                branch_display = f"[blue]{descriptor.target_branch}[/]"
            else:
                branch_display = f"[dim]{descriptor.target_branch} (default)[/]"
            table.add_row(descriptor.path.as_posix(), branch_display)

        self.console.print(table)
        self.console.print(f"\n[bold]Total:[/] {len(descriptors)}")

"""Plain-text rendering of merge request rows for the terminal."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pendulum
import typer

from glbt.models import Severity
from glbt.state import LoadStatus

if TYPE_CHECKING:
    from glbt.models import DetailedMergeStatus, MergeRequest, Pipeline, PipelineStatus
    from glbt.selection import CheckboxState
    from glbt.state import Resource
    from glbt.store import BulkOutcome, MergeRequestRow

_SEVERITY_COLORS = {
    Severity.SUCCESS: typer.colors.GREEN,
    Severity.INFO: typer.colors.CYAN,
    Severity.WARNING: typer.colors.YELLOW,
    Severity.DANGER: typer.colors.RED,
}

_CHECKBOX_MARKS = {
    "unchecked": "[ ]",
    "indeterminate": "[-]",
    "checked": "[x]",
}


def badge(status: DetailedMergeStatus | PipelineStatus) -> str:
    """Render a status label coloured by its severity."""
    return typer.style(f"[{status.label}]", fg=_SEVERITY_COLORS[status.severity], bold=True)


def error_panel(error: Exception) -> str:
    """Render an error the way the listing shows it under a row."""
    return typer.style("Error: ", fg=typer.colors.RED, bold=True) + str(error)


def pipelines_line(resource: Resource[list[Pipeline]]) -> str:
    """Describe the pipeline state of a row."""
    if resource.status is LoadStatus.FAILED and resource.error is not None:
        return f"pipelines: {error_panel(resource.error)}"
    if resource.is_pending or resource.value is None:
        return "pipelines: loading..."
    if not resource.value:
        return "pipelines: none"
    return "pipelines: " + " ".join(f"#{pipeline.id} {badge(pipeline.status)}" for pipeline in resource.value)


def lifecycle(merge_request: MergeRequest) -> str | None:
    """Describe when the merge request was merged or closed, if it was."""
    if merge_request.merged_at is not None:
        return f"merged {pendulum.instance(merge_request.merged_at).diff_for_humans()}"
    if merge_request.closed_at is not None:
        return f"closed {pendulum.instance(merge_request.closed_at).diff_for_humans()}"
    return None


def merge_request_lines(merge_request: MergeRequest, *, selected: bool | None = None) -> list[str]:
    """Render the header, reference and available actions of one merge request."""
    mark = "" if selected is None else ("[x] " if selected else "[ ] ")
    header = f"{mark}{merge_request.id} {typer.style(merge_request.title, bold=True)} {badge(merge_request.status)}"
    lines = [header, f"    {merge_request.reference}  {merge_request.web_url}"]
    when = lifecycle(merge_request)
    if when:
        lines.append(f"    {when}")
    actions = ", ".join(action.value for action in merge_request.available_actions()) or "none"
    lines.append(f"    actions: {actions}")
    return lines


def row_lines(row: MergeRequestRow, *, selected: bool | None = None) -> list[str]:
    """Render a listed row including its pipelines and any action error."""
    lines = merge_request_lines(row.merge_request, selected=selected)
    lines.insert(2, f"    {pipelines_line(row.pipelines.state.get())}")
    error = row.actions.error.get()
    if error is not None:
        lines.append(f"    {error_panel(error)}")
    return lines


def checkbox(state: CheckboxState, count: int, total: int) -> str:
    return f"{_CHECKBOX_MARKS[state.value]} {count}/{total} selected"


def outcome_lines(outcome: BulkOutcome, references: dict[int, str]) -> list[str]:
    """Summarize a bulk action, one line per merge request."""
    lines = [f"{typer.style('ok', fg=typer.colors.GREEN)}      {references[mr_id]}" for mr_id in outcome.succeeded]
    lines.extend(f"{typer.style('skipped', fg=typer.colors.YELLOW)} {references[mr_id]}" for mr_id in outcome.skipped)
    lines.extend(
        f"{typer.style('failed', fg=typer.colors.RED)}  {references[mr_id]}: {error}"
        for mr_id, error in outcome.failed.items()
    )
    return lines

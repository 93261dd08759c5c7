"""Tests for terminal rendering helpers."""

import re

import pendulum
import pytest

from glbt import render
from glbt.gitlab_client import HttpStatusError
from glbt.models import DetailedMergeStatus, MergeRequest, PipelineStatus
from glbt.selection import CheckboxState
from glbt.state import Resource
from glbt.store import BulkOutcome
from tests import factories


ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;]*m")


def _plain(text: str) -> str:
    return ANSI_ESCAPE.sub("", text)


def test_badge_uses_label() -> None:
    """Badges show the status label."""
    assert _plain(render.badge(DetailedMergeStatus.CI_MUST_PASS)) == "[CI must pass]"
    assert _plain(render.badge(PipelineStatus.CANCELED)) == "[cancelled]"


@pytest.mark.parametrize(
    ("resource", "expected"),
    [
        (Resource.idle(), "pipelines: loading..."),
        (Resource.loading(), "pipelines: loading..."),
        (Resource.ready([]), "pipelines: none"),
        (Resource.ready([factories.build_pipeline(3, status="failed")]), "pipelines: #3 [failed]"),
        (Resource.failed(HttpStatusError(502, "bad gateway")), "pipelines: Error: HTTP 502: bad gateway"),
    ],
)
def test_pipelines_line(resource: Resource, expected: str) -> None:
    """Each pipeline state renders distinctly, including failures."""
    assert _plain(render.pipelines_line(resource)) == expected


def test_merge_request_lines_show_actions_and_lifecycle() -> None:
    """Closed merge requests show when they closed and that only reopen is available."""
    closed = MergeRequest.model_validate(factories.closed_payload())
    now = pendulum.now("UTC")
    closed = closed.model_copy(update={"closed_at": now.subtract(days=2)})

    lines = [_plain(line) for line in render.merge_request_lines(closed, selected=True)]

    assert lines[0] == "[x] 501 Refactor service module [not open]"
    assert lines[1].strip().startswith("example/repo!42")
    assert lines[2].strip() == "closed 2 days ago"
    assert lines[-1].strip() == "actions: reopen"


@pytest.mark.parametrize(
    ("state", "mark"),
    [
        (CheckboxState.UNCHECKED, "[ ]"),
        (CheckboxState.INDETERMINATE, "[-]"),
        (CheckboxState.CHECKED, "[x]"),
    ],
)
def test_checkbox(state: CheckboxState, mark: str) -> None:
    assert render.checkbox(state, 1, 2) == f"{mark} 1/2 selected"


def test_outcome_lines() -> None:
    """Bulk outcomes list every merge request with its result."""
    outcome = BulkOutcome(succeeded=[1], skipped=[2], failed={3: HttpStatusError(409, "SHA does not match")})
    references = {1: "g/p!1", 2: "g/p!2", 3: "g/p!3"}

    lines = [_plain(line) for line in render.outcome_lines(outcome, references)]

    assert lines == [
        "ok      g/p!1",
        "skipped g/p!2",
        "failed  g/p!3: HTTP 409: SHA does not match",
    ]

"""Pydantic models describing GitLab merge requests and pipelines."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class Severity(StrEnum):
    """Display classification attached to statuses."""

    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    DANGER = "danger"


class StateEvent(StrEnum):
    """State transitions accepted by the merge request update endpoint."""

    CLOSE = "close"
    REOPEN = "reopen"


class Action(StrEnum):
    """Operator actions available on a single merge request."""

    CLOSE = "close"
    REOPEN = "reopen"
    MERGE = "merge"


class DetailedMergeStatus(StrEnum):
    """Fine-grained mergeability reported by GitLab.

    See https://docs.gitlab.com/ee/api/merge_requests.html#merge-status
    """

    APPROVALS_SYNCING = "approvals_syncing"
    BLOCKED_STATUS = "blocked_status"
    CHECKING = "checking"
    CI_MUST_PASS = "ci_must_pass"
    CI_STILL_RUNNING = "ci_still_running"
    CONFLICT = "conflict"
    DISCUSSIONS_NOT_RESOLVED = "discussions_not_resolved"
    DRAFT_STATUS = "draft_status"
    EXTERNAL_STATUS_CHECKS = "external_status_checks"
    JIRA_ASSOCIATION_MISSING = "jira_association_missing"
    MERGEABLE = "mergeable"
    NEED_REBASE = "need_rebase"
    NOT_APPROVED = "not_approved"
    NOT_OPEN = "not_open"
    REQUESTED_CHANGES = "requested_changes"
    UNCHECKED = "unchecked"

    @property
    def label(self) -> str:
        """Short human readable label."""
        return _MERGE_STATUS_DISPLAY[self][0]

    @property
    def description(self) -> str:
        """Long-form explanation of the status."""
        return _MERGE_STATUS_DISPLAY[self][1]

    @property
    def severity(self) -> Severity:
        """Display classification of the status."""
        return _MERGE_STATUS_DISPLAY[self][2]


_MERGE_STATUS_DISPLAY: dict[DetailedMergeStatus, tuple[str, str, Severity]] = {
    DetailedMergeStatus.APPROVALS_SYNCING: (
        "approvals syncing",
        "The merge request's approvals are syncing.",
        Severity.WARNING,
    ),
    DetailedMergeStatus.BLOCKED_STATUS: (
        "blocked",
        "Blocked by another merge request.",
        Severity.DANGER,
    ),
    DetailedMergeStatus.CHECKING: (
        "checking",
        "Git is testing if a valid merge is possible.",
        Severity.WARNING,
    ),
    DetailedMergeStatus.CI_MUST_PASS: (
        "CI must pass",
        "A CI/CD pipeline must succeed before merge.",
        Severity.DANGER,
    ),
    DetailedMergeStatus.CI_STILL_RUNNING: (
        "CI still running",
        "A CI/CD pipeline is still running.",
        Severity.WARNING,
    ),
    DetailedMergeStatus.CONFLICT: (
        "conflict",
        "Conflicts exist between the source and target branches.",
        Severity.DANGER,
    ),
    DetailedMergeStatus.DISCUSSIONS_NOT_RESOLVED: (
        "discussions not resolved",
        "All discussions must be resolved before merge.",
        Severity.DANGER,
    ),
    DetailedMergeStatus.DRAFT_STATUS: (
        "draft",
        "Can't merge because the merge request is a draft.",
        Severity.DANGER,
    ),
    DetailedMergeStatus.EXTERNAL_STATUS_CHECKS: (
        "external checks",
        "All status checks must pass before merge.",
        Severity.DANGER,
    ),
    DetailedMergeStatus.JIRA_ASSOCIATION_MISSING: (
        "jira association missing",
        "The title or description must reference a Jira issue.",
        Severity.WARNING,
    ),
    DetailedMergeStatus.MERGEABLE: (
        "mergeable",
        "The branch can merge cleanly into the target branch.",
        Severity.SUCCESS,
    ),
    DetailedMergeStatus.NEED_REBASE: (
        "need rebase",
        "The merge request must be rebased.",
        Severity.DANGER,
    ),
    DetailedMergeStatus.NOT_APPROVED: (
        "not approved",
        "Approval is required before merge.",
        Severity.DANGER,
    ),
    DetailedMergeStatus.NOT_OPEN: (
        "not open",
        "The merge request must be open before merge.",
        Severity.DANGER,
    ),
    DetailedMergeStatus.REQUESTED_CHANGES: (
        "changes requested",
        "The merge request has reviewers who have requested changes.",
        Severity.DANGER,
    ),
    DetailedMergeStatus.UNCHECKED: (
        "unchecked",
        "Git has not yet tested if a valid merge is possible.",
        Severity.WARNING,
    ),
}


class PipelineStatus(StrEnum):
    """Status of a CI pipeline.

    See https://docs.gitlab.com/ee/api/pipelines.html#list-project-pipelines
    """

    CREATED = "created"
    WAITING_FOR_RESOURCE = "waiting_for_resource"
    PREPARING = "preparing"
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELED = "canceled"
    SKIPPED = "skipped"
    MANUAL = "manual"
    SCHEDULED = "scheduled"

    @property
    def label(self) -> str:
        """Short human readable label."""
        return _PIPELINE_LABELS.get(self, self.value)

    @property
    def severity(self) -> Severity:
        """Display classification of the status."""
        return _PIPELINE_SEVERITIES.get(self, Severity.WARNING)


_PIPELINE_LABELS = {
    PipelineStatus.WAITING_FOR_RESOURCE: "waiting for resource",
    PipelineStatus.CANCELED: "cancelled",
}

_PIPELINE_SEVERITIES = {
    PipelineStatus.SUCCESS: Severity.SUCCESS,
    PipelineStatus.FAILED: Severity.DANGER,
    PipelineStatus.MANUAL: Severity.INFO,
    PipelineStatus.SCHEDULED: Severity.INFO,
}


class User(BaseModel):
    """The authenticated GitLab user."""

    model_config = ConfigDict(frozen=True)

    username: str


class References(BaseModel):
    """Reference strings GitLab attaches to a merge request."""

    model_config = ConfigDict(frozen=True)

    full: str


class MergeRequest(BaseModel):
    """Snapshot of a merge request as returned by the API.

    Instances are immutable; an update replaces the whole snapshot.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    iid: int
    id: int
    project_id: int
    title: str
    references: References
    sha: str
    web_url: str
    status: DetailedMergeStatus = Field(alias="detailed_merge_status")
    closed_at: datetime | None = None
    merged_at: datetime | None = None

    @property
    def reference(self) -> str:
        """Full human readable reference, e.g. ``group/project!123``."""
        return self.references.full

    def can_merge(self) -> bool:
        """Return True when GitLab reports the merge request as mergeable."""
        return self.status == DetailedMergeStatus.MERGEABLE

    def can_close(self) -> bool:
        """Return True while the merge request is still open."""
        return self.status != DetailedMergeStatus.NOT_OPEN

    def can_reopen(self) -> bool:
        """Return True for merge requests that were closed without merging."""
        return self.closed_at is not None and self.merged_at is None

    def allows(self, action: Action) -> bool:
        """Return True when ``action`` is currently permitted."""
        if action is Action.MERGE:
            return self.can_merge()
        if action is Action.CLOSE:
            return self.can_close()
        return self.can_reopen()

    def available_actions(self) -> list[Action]:
        """Return every action permitted on this snapshot."""
        return [action for action in (Action.MERGE, Action.CLOSE, Action.REOPEN) if self.allows(action)]


class Pipeline(BaseModel):
    """CI pipeline attached to a merge request."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int
    sha: str
    reference: str = Field(alias="ref")
    status: PipelineStatus

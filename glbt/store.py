"""State of one merge request listing session."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from glbt.actions import ActionDispatcher
from glbt.gitlab_client import GitLabError
from glbt.pipelines import PipelineWatcher
from glbt.selection import Selection
from glbt.state import Cell, LoadStatus, Resource

if TYPE_CHECKING:
    from glbt.gitlab_client import GitLabClient
    from glbt.models import Action, MergeRequest

LOGGER = logging.getLogger(__name__)


class MergeRequestRow:
    """One listed merge request with its own pipeline and action state."""

    def __init__(self, client: "GitLabClient", merge_request: "MergeRequest") -> None:
        """Wrap ``merge_request`` in its own observable cell."""
        self.entity: Cell[MergeRequest] = Cell(merge_request)
        self.pipelines = PipelineWatcher(client, self.entity)
        self.actions = ActionDispatcher(client, self.entity)

    @property
    def id(self) -> int:
        """Global id of the merge request, stable across refetches."""
        return self.entity.get().id

    @property
    def merge_request(self) -> "MergeRequest":
        """Return the freshest snapshot of the merge request."""
        return self.entity.get()


@dataclass
class BulkOutcome:
    """Result of applying one action to every selected merge request."""

    succeeded: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)
    failed: dict[int, Exception] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """Whether no selected merge request failed."""
        return not self.failed


class MergeRequestStore:
    """Own the fetched merge requests and the selection over them."""

    def __init__(self, client: "GitLabClient") -> None:
        """Start with an idle listing and an empty selection."""
        self._client = client
        self.listing: Cell[Resource[list[MergeRequestRow]]] = Cell(Resource.idle())
        self.selection = Selection()

    @property
    def rows(self) -> list[MergeRequestRow]:
        """Rows of the current listing, empty unless it is ready."""
        resource = self.listing.get()
        if resource.status is not LoadStatus.READY or resource.value is None:
            return []
        return resource.value

    def row(self, mr_id: int) -> MergeRequestRow:
        """Return the row for merge request ``mr_id``.

        Raises:
            KeyError: the merge request is not part of the listing.
        """
        for candidate in self.rows:
            if candidate.id == mr_id:
                return candidate
        raise KeyError(mr_id)

    async def load(self) -> Resource[list[MergeRequestRow]]:
        """Fetch open merge requests and rebuild rows and selection."""
        for previous in self.rows:
            previous.pipelines.unmount()
        self.listing.set(Resource.loading())
        try:
            merge_requests = await self._client.list_open_merge_requests()
        except GitLabError as exc:
            LOGGER.error("Failed to list merge requests: %s", exc)
            self.selection.reset(())
            self.listing.set(Resource.failed(exc))
            return self.listing.get()
        LOGGER.info("Loaded %s open merge requests from %s", len(merge_requests), self._client)
        rows = [MergeRequestRow(self._client, merge_request) for merge_request in merge_requests]
        self.selection.reset(row.id for row in rows)
        self.listing.set(Resource.ready(rows))
        return self.listing.get()

    async def watch_pipelines(self) -> None:
        """Mount every row's pipeline watcher and wait for the first fetches."""
        rows = self.rows
        for current in rows:
            current.pipelines.mount()
        await asyncio.gather(*(current.pipelines.wait() for current in rows))

    async def apply_to_selection(self, action: "Action") -> BulkOutcome:
        """Run ``action`` on every selected row that currently permits it.

        Rows are dispatched concurrently; a failing row does not stop the
        others.
        """
        outcome = BulkOutcome()
        targets: list[MergeRequestRow] = []
        for current in self.rows:
            if not self.selection.is_selected(current.id):
                continue
            if not current.merge_request.allows(action):
                LOGGER.info("Skipping %s: %s not permitted", current.merge_request.reference, action.value)
                outcome.skipped.append(current.id)
                continue
            targets.append(current)
        results = await asyncio.gather(
            *(target.actions.run(action) for target in targets),
            return_exceptions=True,
        )
        for target, result in zip(targets, results, strict=True):
            if isinstance(result, Exception):
                LOGGER.error("Unexpected failure on %s: %s", target.merge_request.reference, result)
                outcome.failed[target.id] = result
                continue
            if isinstance(result, BaseException):
                raise result
            if result is None:
                error = target.actions.error.get()
                if error is not None:
                    outcome.failed[target.id] = error
                continue
            outcome.succeeded.append(target.id)
        return outcome

"""Per merge request watcher for CI pipelines on the head commit."""

import asyncio
import logging
from typing import TYPE_CHECKING

from glbt.gitlab_client import GitLabError
from glbt.state import Cell, Resource

if TYPE_CHECKING:
    from collections.abc import Callable

    from glbt.gitlab_client import GitLabClient
    from glbt.models import MergeRequest, Pipeline

LOGGER = logging.getLogger(__name__)


class PipelineWatcher:
    """Fetch the pipelines of one merge request and refetch when its sha moves.

    Fetch failures are stored in ``state`` as ``Failed``; they are never
    reported as an empty pipeline list.
    """

    def __init__(self, client: "GitLabClient", entity: "Cell[MergeRequest]") -> None:
        """Bind the watcher to a client and a merge request cell."""
        self._client = client
        self._entity = entity
        self.state: Cell[Resource[list[Pipeline]]] = Cell(Resource.idle())
        self._generation = 0
        self._watched_sha: str | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def mounted(self) -> bool:
        return self._unsubscribe is not None

    async def refresh(self) -> None:
        """Fetch pipelines for the current snapshot and store the result."""
        self._generation += 1
        generation = self._generation
        snapshot = self._entity.get()
        self.state.set(Resource.loading())
        try:
            pipelines = await self._client.get_latest_pipelines(snapshot)
        except GitLabError as exc:
            if generation != self._generation:
                return
            LOGGER.warning("Failed to fetch pipelines for %s: %s", snapshot.reference, exc)
            self.state.set(Resource.failed(exc))
            return
        if generation != self._generation:
            LOGGER.debug("Discarding stale pipelines for %s at %s", snapshot.reference, snapshot.sha)
            return
        self.state.set(Resource.ready(pipelines))

    def mount(self) -> asyncio.Task[None]:
        """Start fetching now and again whenever the merge request's sha changes."""
        if self._unsubscribe is None:
            self._unsubscribe = self._entity.subscribe(self._on_entity_changed)
        self._watched_sha = self._entity.get().sha
        return self._schedule()

    def unmount(self) -> None:
        """Stop reacting to merge request changes."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def wait(self) -> None:
        """Wait for every scheduled fetch to settle."""
        while self._tasks:
            await asyncio.gather(*self._tasks)

    def _on_entity_changed(self, merge_request: "MergeRequest") -> None:
        if merge_request.sha == self._watched_sha:
            return
        LOGGER.debug("Head of %s moved to %s", merge_request.reference, merge_request.sha)
        self._watched_sha = merge_request.sha
        self._schedule()

    def _schedule(self) -> asyncio.Task[None]:
        task = asyncio.get_running_loop().create_task(self.refresh())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

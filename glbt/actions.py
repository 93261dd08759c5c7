"""Close, reopen and merge commands for a single merge request."""

import logging
from typing import TYPE_CHECKING

from glbt.gitlab_client import GitLabError
from glbt.models import Action, StateEvent
from glbt.state import Cell

if TYPE_CHECKING:
    from collections.abc import Awaitable

    from glbt.gitlab_client import GitLabClient
    from glbt.models import MergeRequest

LOGGER = logging.getLogger(__name__)


class ActionDispatcher:
    """Issue mutating calls for one merge request entity.

    The server response replaces the entity as a whole; a failure is stored
    in ``error`` and leaves the entity untouched. When two commands overlap
    the one that completes last wins.
    """

    def __init__(self, client: "GitLabClient", entity: "Cell[MergeRequest]") -> None:
        """Bind the dispatcher to a client and a merge request cell."""
        self._client = client
        self._entity = entity
        self.error: Cell[GitLabError | None] = Cell(None)
        self.pending = 0

    async def close(self) -> "MergeRequest | None":
        return await self.run(Action.CLOSE)

    async def reopen(self) -> "MergeRequest | None":
        return await self.run(Action.REOPEN)

    async def merge(self) -> "MergeRequest | None":
        return await self.run(Action.MERGE)

    async def run(self, action: Action) -> "MergeRequest | None":
        """Apply ``action`` and return the updated merge request, or None on failure."""
        self.error.set(None)
        snapshot = self._entity.get()
        self.pending += 1
        try:
            updated = await self._call(action, snapshot)
        except GitLabError as exc:
            LOGGER.warning("Failed to %s %s: %s", action.value, snapshot.reference, exc)
            self.error.set(exc)
            return None
        finally:
            self.pending -= 1
        LOGGER.info("%s is now %s", updated.reference, updated.status.label)
        self._entity.set(updated)
        return updated

    def _call(self, action: Action, snapshot: "MergeRequest") -> "Awaitable[MergeRequest]":
        if action is Action.MERGE:
            return self._client.merge_merge_request(snapshot)
        return self._client.update_state(snapshot, StateEvent(action.value))

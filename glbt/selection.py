"""Tri-state multi-selection over merge request identifiers."""

from collections.abc import Iterable
from enum import StrEnum

from glbt.state import Cell


class CheckboxState(StrEnum):
    """Aggregate state of a select-all checkbox."""

    UNCHECKED = "unchecked"
    INDETERMINATE = "indeterminate"
    CHECKED = "checked"


class Selection:
    """Set of selected merge request ids, bounded by the listed ids."""

    def __init__(self, ids: Iterable[int] = ()) -> None:
        """Start with ``ids`` as the universe and nothing selected."""
        self._universe: frozenset[int] = frozenset(ids)
        self.cell: Cell[frozenset[int]] = Cell(frozenset())

    @property
    def selected(self) -> frozenset[int]:
        return self.cell.get()

    @property
    def universe(self) -> frozenset[int]:
        return self._universe

    @property
    def count(self) -> int:
        return len(self.selected)

    @property
    def total(self) -> int:
        return len(self._universe)

    @property
    def state(self) -> CheckboxState:
        """Derive the checkbox state from the selected and total counts."""
        if self.count == 0:
            return CheckboxState.UNCHECKED
        if self.count == self.total:
            return CheckboxState.CHECKED
        return CheckboxState.INDETERMINATE

    def is_selected(self, mr_id: int) -> bool:
        return mr_id in self.selected

    def reset(self, ids: Iterable[int]) -> None:
        """Replace the universe after a listing and clear the selection."""
        self._universe = frozenset(ids)
        self.cell.set(frozenset())

    def toggle(self, mr_id: int) -> bool:
        """Flip the selection of ``mr_id`` and return whether it is now selected.

        Raises:
            KeyError: ``mr_id`` is not part of the current listing.
        """
        if mr_id not in self._universe:
            raise KeyError(mr_id)
        if mr_id in self.selected:
            self.cell.set(self.selected - {mr_id})
            return False
        self.cell.set(self.selected | {mr_id})
        return True

    def select_all(self) -> None:
        self.cell.set(self._universe)

    def select_none(self) -> None:
        self.cell.set(frozenset())

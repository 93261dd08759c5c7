"""Observable cells and asynchronous result slots."""

from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Generic, TypeVar

T = TypeVar("T")

Subscriber = Callable[[T], None]


class Cell(Generic[T]):
    """A mutable slot holding an immutable value and notifying subscribers.

    ``set`` replaces the value as a whole and runs every subscriber
    synchronously, so readers never observe a partially applied update.
    """

    def __init__(self, value: T) -> None:
        """Store the initial value."""
        self._value = value
        self._subscribers: list[Subscriber[T]] = []

    def get(self) -> T:
        """Return the current value."""
        return self._value

    def set(self, value: T) -> None:
        """Replace the value and notify subscribers."""
        self._value = value
        for subscriber in list(self._subscribers):
            subscriber(value)

    def update(self, func: Callable[[T], T]) -> T:
        """Replace the value with ``func(current)`` and return it."""
        value = func(self._value)
        self.set(value)
        return value

    def subscribe(self, subscriber: Subscriber[T]) -> Callable[[], None]:
        """Register ``subscriber`` and return a callable that removes it."""
        self._subscribers.append(subscriber)

        def unsubscribe() -> None:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return unsubscribe

    def __repr__(self) -> str:
        return f"Cell({self._value!r})"


class LoadStatus(StrEnum):
    """Lifecycle of an asynchronous fetch."""

    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class Resource(Generic[T]):
    """Result slot of an asynchronous fetch."""

    status: LoadStatus = LoadStatus.IDLE
    value: T | None = None
    error: Exception | None = None

    @classmethod
    def idle(cls) -> "Resource[T]":
        return cls()

    @classmethod
    def loading(cls) -> "Resource[T]":
        return cls(status=LoadStatus.LOADING)

    @classmethod
    def ready(cls, value: T) -> "Resource[T]":
        return cls(status=LoadStatus.READY, value=value)

    @classmethod
    def failed(cls, error: Exception) -> "Resource[T]":
        return cls(status=LoadStatus.FAILED, error=error)

    @property
    def is_pending(self) -> bool:
        """Return True while the fetch has not settled."""
        return self.status in (LoadStatus.IDLE, LoadStatus.LOADING)

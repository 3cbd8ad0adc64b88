"""Per-identity counting windows and the storage abstraction behind them."""

from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass


@dataclass
class ClientWindowState:
    count: int
    reset_at: int  # epoch milliseconds

    def expired(self, now: int) -> bool:
        return self.reset_at <= now


class WindowStore(ABC):
    """Abstract base for window state storage.

    Implementations do not need to be thread-safe; the admission
    controller serializes every read-modify-write on its own lock.
    """

    @abstractmethod
    def get(self, key: str) -> ClientWindowState | None:
        ...

    @abstractmethod
    def put(self, key: str, state: ClientWindowState) -> None:
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a key. Unknown keys are ignored."""
        ...

    @abstractmethod
    def clear(self) -> None:
        ...

    @abstractmethod
    def items(self) -> Iterator[tuple[str, ClientWindowState]]:
        ...


class InMemoryWindowStore(WindowStore):
    """Process-local dict of windows. Entries live until deleted."""

    def __init__(self):
        self._windows: dict[str, ClientWindowState] = {}

    def get(self, key: str) -> ClientWindowState | None:
        return self._windows.get(key)

    def put(self, key: str, state: ClientWindowState) -> None:
        self._windows[key] = state

    def delete(self, key: str) -> None:
        self._windows.pop(key, None)

    def clear(self) -> None:
        self._windows.clear()

    def items(self) -> Iterator[tuple[str, ClientWindowState]]:
        # Snapshot so callers may delete while iterating
        return iter(list(self._windows.items()))

    def __len__(self) -> int:
        return len(self._windows)

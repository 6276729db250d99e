"""
Undo/redo history over immutable model snapshots.

Snapshots are MultiFilterModel instances. They share every unchanged
subtree with their neighbours, so storing one costs a reference, not a
copy of the tree.

History is linear: saving while undone discards the redo branch.
"""

from collections import deque
from typing import Deque, Generic, List, Optional, TypeVar

T = TypeVar("T")

DEFAULT_HISTORY_SIZE = 50


class HistoryManager(Generic[T]):
    """
    Bounded undo/redo stack.

    Usage by the owning mutation layer:

        history.save(model)          # before applying a change
        model = history.undo(model)  # returns the previous snapshot
        model = history.redo(model)
    """

    def __init__(self, max_size: int = DEFAULT_HISTORY_SIZE):
        if max_size < 1:
            raise ValueError(f"History size must be at least 1, got {max_size}")
        self.max_size = max_size
        self._past: Deque[T] = deque(maxlen=max_size)
        self._future: List[T] = []

    def save(self, snapshot: T) -> None:
        """Record the state before a change; evicts the oldest beyond max_size."""
        self._past.append(snapshot)
        self._future.clear()

    def undo(self, current: T) -> Optional[T]:
        """Step back. Returns None (and changes nothing) if there is no past."""
        if not self._past:
            return None
        self._future.append(current)
        return self._past.pop()

    def redo(self, current: T) -> Optional[T]:
        if not self._future:
            return None
        self._past.append(current)
        return self._future.pop()

    @property
    def can_undo(self) -> bool:
        return bool(self._past)

    @property
    def can_redo(self) -> bool:
        return bool(self._future)

    @property
    def undo_depth(self) -> int:
        return len(self._past)

    @property
    def redo_depth(self) -> int:
        return len(self._future)

    def clear(self) -> None:
        self._past.clear()
        self._future.clear()

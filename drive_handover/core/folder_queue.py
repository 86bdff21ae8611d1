"""Breadth-first folder traversal queue.

Folders discovered while paginating the head folder are appended to the tail
and never jump ahead of folders discovered earlier. Replaying the remaining
queue from a checkpoint therefore visits folders in the same order as an
uninterrupted run would.
"""

from __future__ import annotations

from collections import deque
from typing import Deque, Iterable, List, Optional


class FolderTraversalQueue:
    """FIFO of folder ids awaiting pagination."""

    def __init__(self, folder_ids: Optional[Iterable[str]] = None) -> None:
        self._queue: Deque[str] = deque(folder_ids or [])

    def enqueue(self, folder_id: str) -> None:
        self._queue.append(folder_id)

    def peek(self) -> Optional[str]:
        """Return the folder being paginated, or None when the queue is empty."""
        return self._queue[0] if self._queue else None

    def dequeue(self) -> str:
        """Remove the head folder once its pagination is exhausted.

        Raises:
            IndexError: If the queue is empty.
        """
        if not self._queue:
            raise IndexError("dequeue from an empty folder queue")
        return self._queue.popleft()

    def to_list(self) -> List[str]:
        return list(self._queue)

    def __len__(self) -> int:
        return len(self._queue)

    def __bool__(self) -> bool:
        return bool(self._queue)

    def __repr__(self) -> str:
        return f"FolderTraversalQueue({list(self._queue)!r})"

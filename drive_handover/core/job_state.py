"""Checkpointed state of an ownership job.

``JobState`` is the unit of checkpointing. The job controller owns it for the
duration of one tick, reconstructs it from the checkpoint store at the start
and persists it at every suspend point. Keys are namespaced per job variant so
the scoped and global variants of an action never share traversal state.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from drive_handover.adapters.checkpoint_store import CheckpointStore


logger = logging.getLogger("drive_handover.job_state")


@dataclass
class JobStats:
    """Cumulative counters of a job.

    Every item contributes to ``processed`` exactly once and to exactly one of
    ``succeeded``, ``skipped`` (not eligible) or ``errored``.
    """

    processed: int = 0
    succeeded: int = 0
    skipped: int = 0
    errored: int = 0

    def merge(self, delta: "JobStats") -> None:
        self.processed += delta.processed
        self.succeeded += delta.succeeded
        self.skipped += delta.skipped
        self.errored += delta.errored

    def copy(self) -> "JobStats":
        return JobStats(**asdict(self))

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass(frozen=True)
class CheckpointKeys:
    """Store keys of one job variant."""

    page_token: str
    folder_queue: str
    page_offset: str
    scope: str
    processed: str
    succeeded: str
    skipped: str
    errored: str

    @classmethod
    def for_prefix(cls, prefix: str) -> "CheckpointKeys":
        return cls(
            page_token=f"{prefix}_PAGE_TOKEN",
            folder_queue=f"{prefix}_FOLDER_QUEUE",
            page_offset=f"{prefix}_PAGE_OFFSET",
            scope=f"{prefix}_SCOPE",
            processed=f"{prefix}_STATS_PROCESSED",
            succeeded=f"{prefix}_STATS_SUCCEEDED",
            skipped=f"{prefix}_STATS_SKIPPED",
            errored=f"{prefix}_STATS_ERRORED",
        )

    def all(self) -> List[str]:
        return list(asdict(self).values())


def _read_int(store: CheckpointStore, key: str) -> int:
    raw = store.get(key)
    if not raw:
        return 0
    try:
        return max(0, int(raw))
    except ValueError:
        logger.warning("Ignoring non-integer checkpoint value %s=%r", key, raw)
        return 0


def _read_queue(store: CheckpointStore, key: str) -> List[str]:
    raw = store.get(key)
    if not raw:
        return []
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Ignoring malformed folder queue checkpoint %s=%r", key, raw)
        return []
    if not isinstance(parsed, list):
        return []
    return [str(folder_id) for folder_id in parsed if folder_id]


@dataclass
class JobState:
    """Traversal position plus statistics of a job.

    Attributes:
        cursor: Page token of the active listing; None starts a fresh page
            sequence for the current container.
        container_queue: Folder ids awaiting traversal, FIFO. The head is the
            folder currently being paginated.
        stats: Cumulative counters.
        page_offset: Leading items of the page addressed by ``cursor`` that
            were already accounted for before a mid-page suspension.
        scope_marker: Root folder id the checkpoint belongs to ("" for global).
    """

    cursor: Optional[str] = None
    container_queue: List[str] = field(default_factory=list)
    stats: JobStats = field(default_factory=JobStats)
    page_offset: int = 0
    scope_marker: str = ""

    @property
    def is_fresh(self) -> bool:
        return self.cursor is None and not self.container_queue and not self.page_offset

    @classmethod
    def load(cls, store: CheckpointStore, keys: CheckpointKeys) -> "JobState":
        cursor = store.get(keys.page_token) or None
        return cls(
            cursor=cursor,
            container_queue=_read_queue(store, keys.folder_queue),
            stats=JobStats(
                processed=_read_int(store, keys.processed),
                succeeded=_read_int(store, keys.succeeded),
                skipped=_read_int(store, keys.skipped),
                errored=_read_int(store, keys.errored),
            ),
            page_offset=_read_int(store, keys.page_offset),
            scope_marker=store.get(keys.scope) or "",
        )

    def save(self, store: CheckpointStore, keys: CheckpointKeys) -> None:
        """Persist every field. An absent cursor or a zero offset is deleted."""

        store.update(
            {
                keys.page_token: self.cursor or None,
                keys.page_offset: str(self.page_offset) if self.page_offset else None,
                keys.folder_queue: json.dumps(list(self.container_queue)),
                keys.scope: self.scope_marker,
                keys.processed: str(self.stats.processed),
                keys.succeeded: str(self.stats.succeeded),
                keys.skipped: str(self.stats.skipped),
                keys.errored: str(self.stats.errored),
            }
        )

    @staticmethod
    def clear(store: CheckpointStore, keys: CheckpointKeys) -> None:
        store.update({key: None for key in keys.all()})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cursor": self.cursor,
            "container_queue": list(self.container_queue),
            "stats": self.stats.to_dict(),
            "page_offset": self.page_offset,
            "scope_marker": self.scope_marker,
        }

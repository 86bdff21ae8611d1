"""Job controller: one bounded tick of a resumable ownership job.

A tick:
1. Returns immediately if the action family is in a quota cooldown.
2. Restores ``JobState`` from the checkpoint store (seeding the folder queue
   with the root folder on a fresh scoped run).
3. Pages through the listing, feeding each page to the batch executor and
   enqueueing discovered folders, until the listing is exhausted, the soft
   deadline passes, a quota error occurs or an unexpected error aborts it.
4. Leaves the store in a resumable state on every exit path, or clears the
   job's keys when the whole collection has been processed.

The store is written only at the top of the loop and when the loop exits,
after stats and cursor have both been updated for the last page. A page is
therefore either fully reflected in the checkpoint or not at all (except for
the explicit ``page_offset`` left by a quota stop).

Precondition: at most one tick of a given job runs at any time. The scheduler
guarantees this; the controller does no locking.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Any, Callable, Dict, Optional

from drive_handover.adapters.checkpoint_store import CheckpointStore
from drive_handover.adapters.remote_collection import RemoteCollectionClient
from drive_handover.config.job_limits import (
    DEFAULT_COOLDOWN_HOURS,
    DEFAULT_HARD_LIMIT_SECONDS,
    DEFAULT_PAGE_SIZE,
    DEFAULT_SOFT_DEADLINE_RATIO,
)
from drive_handover.core.batch_executor import BatchExecutor
from drive_handover.core.cooldown import CooldownGuard, format_timestamp
from drive_handover.core.folder_queue import FolderTraversalQueue
from drive_handover.core.job_state import CheckpointKeys, JobState, JobStats
from drive_handover.core.retry_policy import AttemptOutcome, RetryPolicy
from drive_handover.core.strategies import EligibilityPredicate, MutationAction, Scope
from drive_handover.utils.logger import log_error, log_info, log_warn


logger = logging.getLogger("drive_handover.job_controller")

Clock = Callable[[], float]


class RunStatus(str, Enum):
    COMPLETED = "completed"
    SUSPENDED = "suspended"
    ABORTED = "aborted"


class SuspendReason(str, Enum):
    COOLDOWN = "cooldown"
    TIMEOUT = "timeout"
    QUOTA = "quota"


@dataclass
class RunOutcome:
    """What one tick ended with, plus the cumulative stats at that point."""

    job: str
    status: RunStatus
    stats: JobStats = field(default_factory=JobStats)
    reason: Optional[SuspendReason] = None
    error: Optional[str] = None
    resume_at: Optional[float] = None

    @classmethod
    def completed(cls, job: str, stats: JobStats) -> "RunOutcome":
        return cls(job=job, status=RunStatus.COMPLETED, stats=stats)

    @classmethod
    def suspended(
        cls,
        job: str,
        reason: SuspendReason,
        stats: JobStats,
        resume_at: Optional[float] = None,
    ) -> "RunOutcome":
        return cls(job=job, status=RunStatus.SUSPENDED, reason=reason, stats=stats, resume_at=resume_at)

    @classmethod
    def aborted(cls, job: str, error: str, stats: Optional[JobStats] = None) -> "RunOutcome":
        return cls(job=job, status=RunStatus.ABORTED, error=error, stats=stats or JobStats())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job": self.job,
            "status": self.status.value,
            "reason": self.reason.value if self.reason else None,
            "error": self.error,
            "resume_at": format_timestamp(self.resume_at) if self.resume_at else None,
            "stats": self.stats.to_dict(),
        }


@dataclass(frozen=True)
class JobDefinition:
    """Static description of one job variant.

    Attributes:
        name: Job name used in logs and entry points.
        family: Action family; variants of one family share a cooldown.
        checkpoint_prefix: Namespace of this variant's checkpoint keys.
        scope: Global or rooted traversal.
        predicate: Eligibility test.
        action: Mutation applied to eligible items.
    """

    name: str
    family: str
    checkpoint_prefix: str
    scope: Scope
    predicate: EligibilityPredicate
    action: MutationAction

    @property
    def cooldown_key(self) -> str:
        return f"{self.family}_SUSPEND_UNTIL"

    @property
    def keys(self) -> CheckpointKeys:
        return CheckpointKeys.for_prefix(self.checkpoint_prefix)


class JobController:
    """Runs one tick of a job definition against a client and a store."""

    def __init__(
        self,
        job: JobDefinition,
        client: RemoteCollectionClient,
        store: CheckpointStore,
        executor: BatchExecutor,
        retry_policy: Optional[RetryPolicy] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        soft_deadline_seconds: float = DEFAULT_HARD_LIMIT_SECONDS * DEFAULT_SOFT_DEADLINE_RATIO,
        cooldown_seconds: float = DEFAULT_COOLDOWN_HOURS * 3600.0,
        clock: Optional[Clock] = None,
        run_id: Optional[str] = None,
    ) -> None:
        self.job = job
        self.client = client
        self.store = store
        self.executor = executor
        self.retry_policy = retry_policy or executor.retry_policy
        self.page_size = page_size
        self.soft_deadline_seconds = soft_deadline_seconds
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock or time.time
        self.run_id = run_id
        self.guard = CooldownGuard(store, job.cooldown_key, clock=self._clock)

    def _log_info(self, msg: str, **extra: object) -> None:
        log_info(msg, job=self.job.name, run_id=self.run_id, **extra)

    def _log_warn(self, msg: str, **extra: object) -> None:
        log_warn(msg, job=self.job.name, run_id=self.run_id, **extra)

    def _log_error(self, msg: str, **extra: object) -> None:
        log_error(msg, job=self.job.name, run_id=self.run_id, **extra)

    def _restore_state(self) -> JobState:
        keys = self.job.keys
        scope = self.job.scope
        state = JobState.load(self.store, keys)

        has_progress = not state.is_fresh or state.stats != JobStats()
        if has_progress and state.scope_marker != scope.marker:
            self._log_warn(
                "Checkpoint belongs to a different scope; starting fresh",
                stored_scope=state.scope_marker,
                configured_scope=scope.marker,
            )
            JobState.clear(self.store, keys)
            state = JobState()

        state.scope_marker = scope.marker
        if not scope.is_global and state.is_fresh:
            state.container_queue = [scope.root_folder_id or ""]
        if scope.is_global:
            state.container_queue = []
        return state

    def _persist(self, state: JobState, queue: FolderTraversalQueue) -> None:
        state.container_queue = queue.to_list()
        state.save(self.store, self.job.keys)

    def _suspend_for_quota(self, state: JobState, queue: FolderTraversalQueue, error: object) -> RunOutcome:
        self._persist(state, queue)
        resume_at = self.guard.arm(self.cooldown_seconds)
        self._log_error(
            "QUOTA STOP: limit reached, pausing all jobs of this family",
            error=str(error),
            resume_at=format_timestamp(resume_at),
            stats=state.stats.to_dict(),
        )
        return RunOutcome.suspended(self.job.name, SuspendReason.QUOTA, state.stats, resume_at=resume_at)

    async def run(self) -> RunOutcome:
        started = self._clock()

        if self.guard.is_active():
            resume_at = self.guard.resume_at()
            self._log_info(
                "QUOTA COOL-DOWN: job is paused",
                resume_at=format_timestamp(resume_at) if resume_at else None,
            )
            stats = JobState.load(self.store, self.job.keys).stats
            return RunOutcome.suspended(self.job.name, SuspendReason.COOLDOWN, stats, resume_at=resume_at)

        state = self._restore_state()
        queue = FolderTraversalQueue(state.container_queue)
        scope = self.job.scope

        self._log_info(
            "Resuming job" if state.stats.processed else "Starting job",
            mode="global" if scope.is_global else "recursive folder",
            root_folder_id=scope.root_folder_id,
            stats=state.stats.to_dict(),
            queued_folders=len(queue),
        )

        first_iteration = True
        try:
            while True:
                if self._clock() - started > self.soft_deadline_seconds:
                    self._persist(state, queue)
                    self._log_info(
                        "TIMEOUT: progress saved, will resume on next tick",
                        stats=state.stats.to_dict(),
                        queued_folders=len(queue),
                    )
                    return RunOutcome.suspended(self.job.name, SuspendReason.TIMEOUT, state.stats)

                if not first_iteration:
                    self._persist(state, queue)
                first_iteration = False

                query = scope.query_for(queue.peek())
                logger.debug("query: %s (page token %s)", query, state.cursor)
                listing = await self.retry_policy.attempt(
                    partial(self.client.list_page, query, state.cursor, self.page_size)
                )
                if listing.outcome is AttemptOutcome.QUOTA_EXCEEDED:
                    return self._suspend_for_quota(state, queue, listing.error)
                if listing.outcome is not AttemptOutcome.OK:
                    self._persist(state, queue)
                    self._log_error("API ERROR while listing", error=str(listing.error), query=query)
                    return RunOutcome.aborted(self.job.name, str(listing.error), state.stats)

                page = listing.value
                offset = min(state.page_offset, len(page.items))
                remaining = page.items[offset:]

                report = await self.executor.process(remaining, state.stats)
                state.stats.merge(report.stats_delta)

                if not scope.is_global:
                    for item in remaining[: report.consumed]:
                        if item.is_container:
                            queue.enqueue(item.id)
                            logger.debug("Folder queued: %s (%s)", item.name, item.id)

                if report.stopped:
                    state.page_offset = offset + report.consumed
                    if report.quota_exceeded:
                        return self._suspend_for_quota(state, queue, report.quota_error)
                    self._persist(state, queue)
                    self._log_error(
                        "Job aborted mid-page, progress saved",
                        error=repr(report.abort_error),
                        page_offset=state.page_offset,
                        stats=state.stats.to_dict(),
                    )
                    return RunOutcome.aborted(self.job.name, repr(report.abort_error), state.stats)

                state.cursor = page.next_page_token
                state.page_offset = 0

                if state.cursor is None:
                    if scope.is_global:
                        break
                    finished = queue.dequeue()
                    logger.debug("Folder finished: %s", finished)
                    if not queue:
                        break
        except Exception as exc:  # noqa: BLE001
            self._persist(state, queue)
            self._log_error("Job aborted", error=repr(exc), stats=state.stats.to_dict())
            return RunOutcome.aborted(self.job.name, repr(exc), state.stats)

        JobState.clear(self.store, self.job.keys)
        self.guard.clear_if_expired()
        self._log_info("SUCCESS: all items processed", stats=state.stats.to_dict())
        return RunOutcome.completed(self.job.name, state.stats)

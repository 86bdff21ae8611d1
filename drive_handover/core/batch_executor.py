"""Batch executor for one listing page.

The executor walks a page in order, collects eligible items into a batch of
fixed capacity and flushes the batch when it is full or when the page ends.
Each flush mutates its entries one at a time through the retry policy, with a
short per-item throttle, followed by a coarser inter-batch delay.

Accounting is strictly in page order, so at any point the items already
counted form a prefix of the page. ``BatchReport.consumed`` is the length of
that prefix. When a quota error stops a flush, nothing past the failing item
is touched, and the caller can resume the same page at ``consumed``. The same
holds when a flush is aborted, either by rejected credentials or by an
unexpected exception: the report comes back with ``abort_error`` set instead
of the exception escaping and taking the partial accounting with it.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple

from drive_handover.adapters.remote_collection import RemoteCollectionClient
from drive_handover.config.job_limits import (
    DEFAULT_ACCEPT_ITEM_DELAY_SECONDS,
    DEFAULT_BATCH_SIZE,
    DEFAULT_INTER_BATCH_DELAY_SECONDS,
)
from drive_handover.core.errors import ApiError
from drive_handover.core.job_state import JobStats
from drive_handover.core.retry_policy import AttemptOutcome, RetryPolicy
from drive_handover.core.strategies import EligibilityPredicate, MutationAction
from drive_handover.models.drive_item import BatchEntry, DriveItem


logger = logging.getLogger("drive_handover.batch_executor")

SleepFn = Callable[[float], Awaitable[Any]]


@dataclass
class BatchReport:
    """Result of processing one page.

    Attributes:
        stats_delta: Counters contributed by this page.
        quota_exceeded: A mutation hit a quota error; processing stopped.
        consumed: Number of leading page items fully accounted for.
        flushes: Size of each flushed batch, in order.
        quota_error: The quota error that stopped processing, if any.
        abort_error: The error that aborted processing, if any. Items before
            the failing one are accounted for; the failing one is not.
    """

    stats_delta: JobStats = field(default_factory=JobStats)
    quota_exceeded: bool = False
    consumed: int = 0
    flushes: List[int] = field(default_factory=list)
    quota_error: Optional[ApiError] = None
    abort_error: Optional[BaseException] = None

    @property
    def stopped(self) -> bool:
        return self.quota_exceeded or self.abort_error is not None


class BatchExecutor:
    """Filters, batches and mutates the items of a page."""

    def __init__(
        self,
        client: RemoteCollectionClient,
        predicate: EligibilityPredicate,
        action: MutationAction,
        retry_policy: RetryPolicy,
        batch_size: int = DEFAULT_BATCH_SIZE,
        item_delay: float = DEFAULT_ACCEPT_ITEM_DELAY_SECONDS,
        inter_batch_delay: float = DEFAULT_INTER_BATCH_DELAY_SECONDS,
        sleep: Optional[SleepFn] = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.client = client
        self.predicate = predicate
        self.action = action
        self.retry_policy = retry_policy
        self.batch_size = batch_size
        self.item_delay = item_delay
        self.inter_batch_delay = inter_batch_delay
        self._sleep = sleep or asyncio.sleep

    async def process(
        self,
        items: Sequence[DriveItem],
        stats: Optional[JobStats] = None,
    ) -> BatchReport:
        """Process ``items`` and return the stat delta.

        Args:
            items: The page items still to account for, in page order.
            stats: Cumulative counters before this page, used for progress logs
                only; they are not modified.
        """

        report = BatchReport()
        try:
            await self._process_items(items, stats, report)
        except Exception as exc:  # noqa: BLE001
            logger.error("Page processing aborted after %d items: %r", report.consumed, exc)
            report.abort_error = exc
        return report

    async def _process_items(
        self,
        items: Sequence[DriveItem],
        stats: Optional[JobStats],
        report: BatchReport,
    ) -> None:
        pending: List[Tuple[DriveItem, Optional[BatchEntry]]] = []
        eligible_in_batch = 0

        for index, item in enumerate(items):
            entry = self.predicate.select(item)
            pending.append((item, entry))
            if entry is not None:
                eligible_in_batch += 1

            is_last = index == len(items) - 1
            if eligible_in_batch < self.batch_size and not is_last:
                continue

            stopped = await self._flush(pending, report)
            if stopped:
                return

            if eligible_in_batch:
                report.flushes.append(eligible_in_batch)
                running = (stats.copy() if stats else JobStats())
                running.merge(report.stats_delta)
                logger.info(
                    "STATS: Processed: %d | Succeeded: %d | Errors: %d",
                    running.processed,
                    running.succeeded,
                    running.errored,
                )
                await self._sleep(self.inter_batch_delay)

            pending = []
            eligible_in_batch = 0

    async def _flush(
        self,
        pending: List[Tuple[DriveItem, Optional[BatchEntry]]],
        report: BatchReport,
    ) -> bool:
        """Account for ``pending`` in order. Return True if it stopped early."""

        delta = report.stats_delta
        for item, entry in pending:
            if entry is None:
                # Folders that are not eligible themselves are traversal
                # structure only and are never counted.
                if not item.is_container:
                    delta.processed += 1
                    delta.skipped += 1
                report.consumed += 1
                continue

            result = await self.retry_policy.attempt(partial(self.action.apply, self.client, entry))

            if result.outcome is AttemptOutcome.QUOTA_EXCEEDED:
                logger.error("QUOTA STOP at %s: %s", entry.name or entry.item_id, result.error)
                report.quota_exceeded = True
                report.quota_error = result.error
                return True

            if result.outcome is AttemptOutcome.AUTH_FAILED:
                logger.error("AUTH ERROR at %s: %s", entry.name or entry.item_id, result.error)
                report.abort_error = result.error
                return True

            delta.processed += 1
            if result.outcome is AttemptOutcome.OK:
                delta.succeeded += 1
                report.consumed += 1
                await self._sleep(self.item_delay)
            else:
                delta.errored += 1
                report.consumed += 1
                logger.warning("Skipped %s: %s", entry.name or entry.item_id, result.error)

        return False

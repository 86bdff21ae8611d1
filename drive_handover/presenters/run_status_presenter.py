"""Run outcome presenter for Drive Handover.

This module is a pure presentation layer: it turns a ``RunOutcome`` into the
one-line summaries written to the log and returned by the HTTP tick endpoint.
No business logic and no side effects.
"""

from typing import Dict, Optional

from drive_handover.core.cooldown import format_timestamp
from drive_handover.core.job_controller import RunOutcome, RunStatus, SuspendReason


# What a successful mutation is called for each job family.
SUCCESS_LABELS: Dict[str, str] = {
    "accept": "Accepted",
    "transfer": "Sent",
}


def _stats_line(outcome: RunOutcome, success_label: str) -> str:
    stats = outcome.stats
    return (
        f"Processed: {stats.processed} | {success_label}: {stats.succeeded} | "
        f"Skipped: {stats.skipped} | Errors: {stats.errored}"
    )


def present_run_outcome(outcome: RunOutcome, success_label: Optional[str] = None) -> str:
    """Convert a run outcome into a human-readable status line.

    Examples:
        >>> from drive_handover.core.job_state import JobStats
        >>> present_run_outcome(RunOutcome.completed("accept", JobStats(3, 3, 0, 0)))
        'SUCCESS: accept finished. Processed: 3 | Accepted: 3 | Skipped: 0 | Errors: 0'
    """

    label = success_label or SUCCESS_LABELS.get(outcome.job.split("_")[0], "Succeeded")
    stats_line = _stats_line(outcome, label)

    if outcome.status is RunStatus.COMPLETED:
        return f"SUCCESS: {outcome.job} finished. {stats_line}"

    if outcome.status is RunStatus.ABORTED:
        return f"ERROR: {outcome.job} aborted: {outcome.error}. {stats_line}"

    if outcome.reason is SuspendReason.COOLDOWN:
        until = format_timestamp(outcome.resume_at) if outcome.resume_at else "unknown"
        return f"QUOTA COOL-DOWN: {outcome.job} is paused until {until}."

    if outcome.reason is SuspendReason.QUOTA:
        until = format_timestamp(outcome.resume_at) if outcome.resume_at else "unknown"
        return f"QUOTA STOP: {outcome.job} paused until {until}. {stats_line}"

    return f"TIMEOUT: {outcome.job} saved progress, will resume on next tick. {stats_line}"

"""Scheduler-facing entry points."""

from drive_handover.controllers.jobs import (
    describe_checkpoint,
    run_accept_job,
    run_job,
    run_transfer_job,
)

__all__ = ["describe_checkpoint", "run_accept_job", "run_job", "run_transfer_job"]

"""Presenters package for Drive Handover."""

from drive_handover.presenters.run_status_presenter import (
    SUCCESS_LABELS,
    present_run_outcome,
)

__all__ = [
    "SUCCESS_LABELS",
    "present_run_outcome",
]

"""Configuration package for Drive Handover."""

from drive_handover.config.job_limits import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_PAGE_SIZE,
    MAX_BATCH_SIZE,
    MIN_BATCH_SIZE,
)
from drive_handover.config.settings import JobSettings

__all__ = [
    "DEFAULT_BATCH_SIZE",
    "DEFAULT_PAGE_SIZE",
    "JobSettings",
    "MAX_BATCH_SIZE",
    "MIN_BATCH_SIZE",
]

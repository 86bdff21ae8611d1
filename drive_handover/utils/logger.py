"""Logging utilities for Drive Handover.

This module centralizes logger configuration for the service and provides
structured helpers used by the job controller and entry points.
"""

import json
import logging
import uuid
from typing import Optional


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a configured logger instance."""
    logger_name = name or "drive_handover"
    logger = logging.getLogger(logger_name)

    # Configure a basic console handler once so tick logs are visible in the
    # host's log stream without extra setup.
    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )

    return logger


def generate_run_id() -> str:
    """Generate a unique identifier for correlating the logs of one tick."""

    return str(uuid.uuid4())


def _format_job_message(msg: str) -> str:
    """Prefix a log message with the job tag."""

    return f"[HANDOVER-JOB] {msg}"


def _format_structured_message(
    message: str,
    job: Optional[str] = None,
    run_id: Optional[str] = None,
    extra: Optional[dict] = None,
) -> str:
    """Format a log message as a JSON-like structured string."""

    payload: dict = {"message": message}
    if job is not None:
        payload["job"] = job
    if run_id is not None:
        payload["run_id"] = run_id
    if extra:
        payload["extra"] = extra
    return json.dumps(payload, default=str)


def log_info(
    msg: str,
    job: Optional[str] = None,
    run_id: Optional[str] = None,
    **extra: object,
) -> None:
    """Log an informational message for job activity."""

    logger = get_logger("drive_handover.jobs")
    structured = _format_structured_message(
        _format_job_message(msg),
        job=job,
        run_id=run_id,
        extra=extra or None,
    )
    logger.info(structured)


def log_warn(
    msg: str,
    job: Optional[str] = None,
    run_id: Optional[str] = None,
    **extra: object,
) -> None:
    """Log a warning message for job activity."""

    logger = get_logger("drive_handover.jobs")
    structured = _format_structured_message(
        _format_job_message(msg),
        job=job,
        run_id=run_id,
        extra=extra or None,
    )
    logger.warning(structured)


def log_error(
    msg: str,
    job: Optional[str] = None,
    run_id: Optional[str] = None,
    **extra: object,
) -> None:
    """Log an error message for job activity."""

    logger = get_logger("drive_handover.jobs")
    structured = _format_structured_message(
        _format_job_message(msg),
        job=job,
        run_id=run_id,
        extra=extra or None,
    )
    logger.error(structured)

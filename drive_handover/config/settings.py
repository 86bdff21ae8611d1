"""Environment-backed settings for Drive Handover jobs.

Settings are read from the process environment (``main.py`` loads a ``.env``
file with python-dotenv first) and validated into a ``JobSettings`` model.
Every tunable of the engine has a default in ``job_limits``; only the target
identity of a transfer is mandatory.
"""

from __future__ import annotations

import os
from typing import Any, Dict, Literal, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from drive_handover.config.job_limits import (
    DEFAULT_ACCEPT_ITEM_DELAY_SECONDS,
    DEFAULT_BATCH_SIZE,
    DEFAULT_CHECKPOINT_FILE,
    DEFAULT_COOLDOWN_HOURS,
    DEFAULT_HARD_LIMIT_SECONDS,
    DEFAULT_INTER_BATCH_DELAY_SECONDS,
    DEFAULT_MAX_RETRIES,
    DEFAULT_PAGE_SIZE,
    DEFAULT_RETRY_BASE_DELAY_SECONDS,
    DEFAULT_SOFT_DEADLINE_RATIO,
    DEFAULT_TRANSFER_ITEM_DELAY_SECONDS,
    MAX_BATCH_SIZE,
    MAX_PAGE_SIZE,
    MAX_RETRIES_LIMIT,
    MIN_BATCH_SIZE,
)
from drive_handover.core.errors import ConfigurationError


TransferMode = Literal["pending_owner", "direct"]
AcceptEligibility = Literal["capability", "writer_role"]

# Environment variable -> JobSettings field
ENV_FIELDS: Dict[str, str] = {
    "ACTOR_EMAIL": "actor_email",
    "NEW_OWNER_EMAIL": "new_owner_email",
    "ACCEPT_ROOT_FOLDER_ID": "accept_root_folder_id",
    "TRANSFER_ROOT_FOLDER_ID": "transfer_root_folder_id",
    "TRANSFER_MODE": "transfer_mode",
    "ACCEPT_ELIGIBILITY": "accept_eligibility",
    "SEND_NOTIFICATION_EMAIL": "send_notification_email",
    "BATCH_SIZE": "batch_size",
    "PAGE_SIZE": "page_size",
    "HARD_LIMIT_SECONDS": "hard_limit_seconds",
    "SOFT_DEADLINE_RATIO": "soft_deadline_ratio",
    "INTER_BATCH_DELAY_SECONDS": "inter_batch_delay_seconds",
    "ACCEPT_ITEM_DELAY_SECONDS": "accept_item_delay_seconds",
    "TRANSFER_ITEM_DELAY_SECONDS": "transfer_item_delay_seconds",
    "MAX_RETRIES": "max_retries",
    "RETRY_BASE_DELAY_SECONDS": "retry_base_delay_seconds",
    "COOLDOWN_HOURS": "cooldown_hours",
    "CHECKPOINT_FILE": "checkpoint_file",
    "JOB_TRIGGER_TOKEN": "job_trigger_token",
}


class JobSettings(BaseModel):
    """Validated configuration for one tick of a job."""

    actor_email: Optional[str] = None
    new_owner_email: Optional[str] = None
    accept_root_folder_id: Optional[str] = None
    transfer_root_folder_id: Optional[str] = None
    transfer_mode: TransferMode = "pending_owner"
    accept_eligibility: AcceptEligibility = "capability"
    send_notification_email: bool = False

    batch_size: int = DEFAULT_BATCH_SIZE
    page_size: int = DEFAULT_PAGE_SIZE
    hard_limit_seconds: float = Field(DEFAULT_HARD_LIMIT_SECONDS, gt=0)
    soft_deadline_ratio: float = Field(DEFAULT_SOFT_DEADLINE_RATIO, gt=0, lt=1)
    inter_batch_delay_seconds: float = Field(DEFAULT_INTER_BATCH_DELAY_SECONDS, ge=0)
    accept_item_delay_seconds: float = Field(DEFAULT_ACCEPT_ITEM_DELAY_SECONDS, ge=0)
    transfer_item_delay_seconds: float = Field(DEFAULT_TRANSFER_ITEM_DELAY_SECONDS, ge=0)
    max_retries: int = Field(DEFAULT_MAX_RETRIES, ge=0, le=MAX_RETRIES_LIMIT)
    retry_base_delay_seconds: float = Field(DEFAULT_RETRY_BASE_DELAY_SECONDS, ge=0)
    cooldown_hours: float = Field(DEFAULT_COOLDOWN_HOURS, gt=0)

    checkpoint_file: str = DEFAULT_CHECKPOINT_FILE
    job_trigger_token: Optional[str] = None

    @field_validator(
        "actor_email",
        "new_owner_email",
        "accept_root_folder_id",
        "transfer_root_folder_id",
        "job_trigger_token",
        mode="before",
    )
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    @field_validator("actor_email", "new_owner_email")
    @classmethod
    def _looks_like_email(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and "@" not in value:
            raise ValueError(f"not an email address: {value!r}")
        return value

    @field_validator("batch_size")
    @classmethod
    def _clamp_batch_size(cls, value: int) -> int:
        if value < MIN_BATCH_SIZE:
            return MIN_BATCH_SIZE
        if value > MAX_BATCH_SIZE:
            return MAX_BATCH_SIZE
        return value

    @field_validator("page_size")
    @classmethod
    def _clamp_page_size(cls, value: int) -> int:
        return max(1, min(value, MAX_PAGE_SIZE))

    @property
    def soft_deadline_seconds(self) -> float:
        return self.hard_limit_seconds * self.soft_deadline_ratio

    @property
    def cooldown_seconds(self) -> float:
        return self.cooldown_hours * 3600.0

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "JobSettings":
        """Build settings from environment variables.

        Unset and empty variables fall back to defaults.

        Raises:
            ConfigurationError: If a variable holds an invalid value.
        """

        env = os.environ if environ is None else environ
        values: Dict[str, Any] = {}
        for env_name, field_name in ENV_FIELDS.items():
            raw = env.get(env_name)
            if raw is None or not str(raw).strip():
                continue
            values[field_name] = str(raw).strip()

        for choice_field in ("transfer_mode", "accept_eligibility"):
            if choice_field in values:
                values[choice_field] = values[choice_field].lower()

        try:
            return cls(**values)
        except ValidationError as exc:
            raise ConfigurationError(_describe_validation_error(exc)) from exc


def _describe_validation_error(exc: ValidationError) -> str:
    field_to_env = {v: k for k, v in ENV_FIELDS.items()}
    parts = []
    for err in exc.errors():
        loc = err.get("loc") or ("?",)
        field_name = str(loc[0])
        parts.append(f"{field_to_env.get(field_name, field_name)}: {err.get('msg')}")
    return "Invalid settings: " + "; ".join(parts)

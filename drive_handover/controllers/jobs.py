"""Job entry points for the external scheduler.

Each entry point runs exactly ONE tick of a job and returns its
``RunOutcome``. They are safe to call repeatedly: a tick resumes from the
checkpoint left by the previous one, and a job that has nothing left to do
simply starts over from an empty checkpoint.

Variants
--------
- ``accept``: upgrade the acting user's permission to owner on every item
  whose ownership is being transferred to them. Restricted to the subtree of
  ``ACCEPT_ROOT_FOLDER_ID`` when set, otherwise the whole Drive.
- ``transfer``: offer ownership of every item the acting user owns to
  ``NEW_OWNER_EMAIL``. Restricted to ``TRANSFER_ROOT_FOLDER_ID`` when set.

The scoped and global variants of an action keep separate checkpoints but
share one quota cooldown.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, Optional

from drive_handover.adapters.checkpoint_store import CheckpointStore, JsonFileCheckpointStore
from drive_handover.adapters.drive_adapter import DriveCollectionAdapter
from drive_handover.adapters.remote_collection import RemoteCollectionClient
from drive_handover.config.settings import JobSettings
from drive_handover.core.batch_executor import BatchExecutor
from drive_handover.core.cooldown import CooldownGuard, format_timestamp
from drive_handover.core.errors import ApiError, ConfigurationError
from drive_handover.core.job_controller import JobController, JobDefinition, RunOutcome
from drive_handover.core.job_state import CheckpointKeys, JobState
from drive_handover.core.retry_policy import RetryPolicy
from drive_handover.core.strategies import (
    AcceptCapabilityEligibility,
    AcceptOwnershipAction,
    DirectTransferAction,
    EligibilityPredicate,
    MutationAction,
    OwnedByActorEligibility,
    PendingOwnerTransferAction,
    Scope,
    WriterRoleEligibility,
)
from drive_handover.presenters.run_status_presenter import present_run_outcome
from drive_handover.utils.logger import generate_run_id, log_error, log_info


SleepFn = Callable[[float], Awaitable[Any]]
Clock = Callable[[], float]

ACCEPT_FAMILY = "ACCEPT"
TRANSFER_FAMILY = "TRANSFER"

GLOBAL_ACCEPT_QUERY = "trashed = false"
GLOBAL_TRANSFER_QUERY = "'me' in owners and trashed = false"


def _checkpoint_prefix(family: str, scope: Scope) -> str:
    return f"{family}_GLOBAL" if scope.is_global else f"{family}_TREE"


def accept_job_definition(settings: JobSettings, actor_email: str) -> JobDefinition:
    """Build the accept job for ``actor_email``."""

    scope = Scope(root_folder_id=settings.accept_root_folder_id, global_query=GLOBAL_ACCEPT_QUERY)
    predicate: EligibilityPredicate
    if settings.accept_eligibility == "writer_role":
        predicate = WriterRoleEligibility(actor_email)
    else:
        predicate = AcceptCapabilityEligibility(actor_email)

    return JobDefinition(
        name="accept" if scope.is_global else "accept_recursive",
        family=ACCEPT_FAMILY,
        checkpoint_prefix=_checkpoint_prefix(ACCEPT_FAMILY, scope),
        scope=scope,
        predicate=predicate,
        action=AcceptOwnershipAction(),
    )


def transfer_job_definition(settings: JobSettings) -> JobDefinition:
    """Build the transfer job.

    Raises:
        ConfigurationError: If NEW_OWNER_EMAIL is not set.
    """

    if not settings.new_owner_email:
        raise ConfigurationError("NEW_OWNER_EMAIL is not set")

    scope = Scope(root_folder_id=settings.transfer_root_folder_id, global_query=GLOBAL_TRANSFER_QUERY)
    action: MutationAction
    if settings.transfer_mode == "direct":
        action = DirectTransferAction(settings.new_owner_email, settings.send_notification_email)
    else:
        action = PendingOwnerTransferAction(settings.new_owner_email, settings.send_notification_email)

    return JobDefinition(
        name="transfer" if scope.is_global else "transfer_recursive",
        family=TRANSFER_FAMILY,
        checkpoint_prefix=_checkpoint_prefix(TRANSFER_FAMILY, scope),
        scope=scope,
        predicate=OwnedByActorEligibility(settings.new_owner_email),
        action=action,
    )


def default_store(settings: JobSettings) -> CheckpointStore:
    return JsonFileCheckpointStore(settings.checkpoint_file)


def build_controller(
    definition: JobDefinition,
    settings: JobSettings,
    client: RemoteCollectionClient,
    store: CheckpointStore,
    sleep: Optional[SleepFn] = None,
    clock: Optional[Clock] = None,
    run_id: Optional[str] = None,
) -> JobController:
    """Wire a job definition to its executor, retry policy and deadlines."""

    retry_policy = RetryPolicy(
        max_retries=settings.max_retries,
        base_delay=settings.retry_base_delay_seconds,
        sleep=sleep,
    )
    item_delay = (
        settings.accept_item_delay_seconds
        if definition.family == ACCEPT_FAMILY
        else settings.transfer_item_delay_seconds
    )
    executor = BatchExecutor(
        client=client,
        predicate=definition.predicate,
        action=definition.action,
        retry_policy=retry_policy,
        batch_size=settings.batch_size,
        item_delay=item_delay,
        inter_batch_delay=settings.inter_batch_delay_seconds,
        sleep=sleep,
    )
    return JobController(
        job=definition,
        client=client,
        store=store,
        executor=executor,
        retry_policy=retry_policy,
        page_size=settings.page_size,
        soft_deadline_seconds=settings.soft_deadline_seconds,
        cooldown_seconds=settings.cooldown_seconds,
        clock=clock,
        run_id=run_id,
    )


async def _run(
    name: str,
    definition_factory: Callable[[JobSettings, RemoteCollectionClient], Awaitable[JobDefinition]],
    settings: Optional[JobSettings],
    client: Optional[RemoteCollectionClient],
    store: Optional[CheckpointStore],
    sleep: Optional[SleepFn],
    clock: Optional[Clock],
) -> RunOutcome:
    run_id = generate_run_id()

    try:
        settings = settings or JobSettings.from_env()
        client = client or DriveCollectionAdapter()
        definition = await definition_factory(settings, client)
    except ConfigurationError as exc:
        log_error("CONFIGURATION ERROR", job=name, run_id=run_id, error=str(exc))
        return RunOutcome.aborted(name, f"ConfigurationError: {exc}")
    except ApiError as exc:
        log_error("Could not resolve the acting user", job=name, run_id=run_id, error=str(exc))
        return RunOutcome.aborted(name, str(exc))

    controller = build_controller(
        definition,
        settings,
        client,
        store or default_store(settings),
        sleep=sleep,
        clock=clock,
        run_id=run_id,
    )
    outcome = await controller.run()
    log_info(present_run_outcome(outcome), job=definition.name, run_id=run_id)
    return outcome


async def _accept_definition(settings: JobSettings, client: RemoteCollectionClient) -> JobDefinition:
    actor_email = settings.actor_email or await client.get_actor_email()
    return accept_job_definition(settings, actor_email)


async def _transfer_definition(settings: JobSettings, client: RemoteCollectionClient) -> JobDefinition:
    return transfer_job_definition(settings)


async def run_accept_job(
    settings: Optional[JobSettings] = None,
    *,
    client: Optional[RemoteCollectionClient] = None,
    store: Optional[CheckpointStore] = None,
    sleep: Optional[SleepFn] = None,
    clock: Optional[Clock] = None,
) -> RunOutcome:
    """Run one tick of the accept job (global or recursive by configuration)."""

    return await _run("accept", _accept_definition, settings, client, store, sleep, clock)


async def run_transfer_job(
    settings: Optional[JobSettings] = None,
    *,
    client: Optional[RemoteCollectionClient] = None,
    store: Optional[CheckpointStore] = None,
    sleep: Optional[SleepFn] = None,
    clock: Optional[Clock] = None,
) -> RunOutcome:
    """Run one tick of the transfer job (global or recursive by configuration)."""

    return await _run("transfer", _transfer_definition, settings, client, store, sleep, clock)


JOB_RUNNERS: Dict[str, Callable[..., Awaitable[RunOutcome]]] = {
    "accept": run_accept_job,
    "transfer": run_transfer_job,
}


async def run_job(name: str, **kwargs: Any) -> RunOutcome:
    """Run one tick of the job registered under ``name``.

    Raises:
        ValueError: If no job is registered under ``name``.
    """

    runner = JOB_RUNNERS.get(name)
    if runner is None:
        available = ", ".join(JOB_RUNNERS.keys())
        raise ValueError(f"No job registered under: {name}. Available jobs: {available}")
    return await runner(**kwargs)


def describe_checkpoint(
    name: str,
    settings: JobSettings,
    store: Optional[CheckpointStore] = None,
) -> Dict[str, Any]:
    """Return the stored state and cooldown of a job without touching them.

    Raises:
        ValueError: If no job is registered under ``name``.
    """

    if name == "accept":
        family = ACCEPT_FAMILY
        scope = Scope(root_folder_id=settings.accept_root_folder_id)
    elif name == "transfer":
        family = TRANSFER_FAMILY
        scope = Scope(root_folder_id=settings.transfer_root_folder_id)
    else:
        available = ", ".join(JOB_RUNNERS.keys())
        raise ValueError(f"No job registered under: {name}. Available jobs: {available}")

    store = store or default_store(settings)
    keys = CheckpointKeys.for_prefix(_checkpoint_prefix(family, scope))
    guard = CooldownGuard(store, f"{family}_SUSPEND_UNTIL")
    resume_at = guard.resume_at()
    return {
        "job": name,
        "mode": "global" if scope.is_global else "recursive folder",
        "state": JobState.load(store, keys).to_dict(),
        "cooldown_active": guard.is_active(),
        "cooldown_until": format_timestamp(resume_at) if resume_at else None,
    }

import asyncio
import unittest
from unittest.mock import AsyncMock, patch

from drive_handover.adapters.checkpoint_store import InMemoryCheckpointStore
from drive_handover.config.settings import JobSettings
from drive_handover.controllers.jobs import (
    accept_job_definition,
    describe_checkpoint,
    run_accept_job,
    run_job,
    run_transfer_job,
    transfer_job_definition,
)
from drive_handover.core.errors import ApiError
from drive_handover.core.job_controller import RunStatus, SuspendReason
from drive_handover.core.strategies import DirectTransferAction, PendingOwnerTransferAction, WriterRoleEligibility
from fake_drive import ACTOR, NEW_OWNER, FakeClock, FakeDriveClient, acceptable, folder, owned


class TestJobEntryPoints(unittest.TestCase):
    def test_accept_job_resolves_actor_and_completes(self):
        async def run():
            clock = FakeClock()
            store = InMemoryCheckpointStore()
            client = FakeDriveClient(
                children={"F1": [acceptable("a"), folder("B1"), acceptable("b")], "B1": [acceptable("c")]}
            )
            settings = JobSettings(accept_root_folder_id="F1")

            outcome = await run_accept_job(settings, client=client, store=store, sleep=clock.sleep, clock=clock)

            self.assertEqual(outcome.status, RunStatus.COMPLETED)
            self.assertEqual(outcome.job, "accept_recursive")
            self.assertEqual(client.mutated_ids, ["a", "b", "c"])
            self.assertEqual(store.as_dict(), {})

        asyncio.run(run())

    def test_transfer_job_requires_new_owner(self):
        async def run():
            store = InMemoryCheckpointStore()
            client = FakeDriveClient(global_items=[owned("o1")])

            outcome = await run_transfer_job(JobSettings(), client=client, store=store)

            self.assertEqual(outcome.status, RunStatus.ABORTED)
            self.assertIn("NEW_OWNER_EMAIL", outcome.error)
            self.assertEqual(store.as_dict(), {})
            self.assertEqual(client.remote_calls, 0)

        asyncio.run(run())

    def test_invalid_environment_aborts_without_writes(self):
        async def run():
            store = InMemoryCheckpointStore()
            client = FakeDriveClient()

            with patch.dict("os.environ", {"BATCH_SIZE": "many"}):
                outcome = await run_accept_job(client=client, store=store)

            self.assertEqual(outcome.status, RunStatus.ABORTED)
            self.assertIn("BATCH_SIZE", outcome.error)
            self.assertEqual(store.as_dict(), {})

        asyncio.run(run())

    def test_actor_lookup_failure_aborts(self):
        async def run():
            client = FakeDriveClient()
            client.get_actor_email = AsyncMock(side_effect=ApiError("Invalid Credentials", status_code=401))

            outcome = await run_accept_job(JobSettings(), client=client, store=InMemoryCheckpointStore())

            self.assertEqual(outcome.status, RunStatus.ABORTED)
            self.assertIn("Invalid Credentials", outcome.error)

        asyncio.run(run())

    def test_run_job_dispatches_by_name(self):
        async def run():
            clock = FakeClock()
            client = FakeDriveClient(global_items=[owned("o1")])
            settings = JobSettings(new_owner_email=NEW_OWNER)

            outcome = await run_job(
                "transfer",
                settings=settings,
                client=client,
                store=InMemoryCheckpointStore(),
                sleep=clock.sleep,
                clock=clock,
            )

            self.assertEqual(outcome.status, RunStatus.COMPLETED)
            self.assertEqual(client.mutated_ids, ["o1"])

            with self.assertRaises(ValueError):
                await run_job("purge")

        asyncio.run(run())

    def test_describe_checkpoint_reports_cooldown(self):
        async def run():
            store = InMemoryCheckpointStore()
            client = FakeDriveClient(global_items=[owned("o1"), owned("o2")])
            client.always_fail["o2"] = ApiError("Sharing rate limit exceeded", status_code=403, reason="sharingRateLimitExceeded")
            settings = JobSettings(new_owner_email=NEW_OWNER)

            outcome = await run_transfer_job(settings, client=client, store=store, sleep=AsyncMock())
            self.assertEqual(outcome.reason, SuspendReason.QUOTA)

            description = describe_checkpoint("transfer", settings, store)
            self.assertEqual(description["mode"], "global")
            self.assertTrue(description["cooldown_active"])
            self.assertEqual(description["state"]["page_offset"], 1)
            self.assertEqual(description["state"]["stats"]["succeeded"], 1)

            with self.assertRaises(ValueError):
                describe_checkpoint("purge", settings, store)

        asyncio.run(run())


class TestJobDefinitions(unittest.TestCase):
    def test_variants_use_separate_checkpoints_and_one_cooldown(self):
        scoped = accept_job_definition(JobSettings(accept_root_folder_id="F1"), ACTOR)
        unscoped = accept_job_definition(JobSettings(), ACTOR)

        self.assertEqual(scoped.checkpoint_prefix, "ACCEPT_TREE")
        self.assertEqual(unscoped.checkpoint_prefix, "ACCEPT_GLOBAL")
        self.assertEqual(scoped.cooldown_key, unscoped.cooldown_key)

    def test_strategy_selection(self):
        writer = accept_job_definition(JobSettings(accept_eligibility="writer_role"), ACTOR)
        self.assertIsInstance(writer.predicate, WriterRoleEligibility)

        pending = transfer_job_definition(JobSettings(new_owner_email=NEW_OWNER))
        direct = transfer_job_definition(JobSettings(new_owner_email=NEW_OWNER, transfer_mode="direct"))
        self.assertIsInstance(pending.action, PendingOwnerTransferAction)
        self.assertIsInstance(direct.action, DirectTransferAction)
        self.assertEqual(direct.scope.global_query, "'me' in owners and trashed = false")


if __name__ == "__main__":
    unittest.main()

import asyncio
import unittest

from drive_handover.adapters.checkpoint_store import InMemoryCheckpointStore
from drive_handover.config.settings import JobSettings
from drive_handover.controllers.jobs import accept_job_definition, transfer_job_definition
from drive_handover.core.batch_executor import BatchExecutor
from drive_handover.core.errors import ApiError
from drive_handover.core.job_controller import JobController, RunStatus, SuspendReason
from drive_handover.core.retry_policy import RetryPolicy
from drive_handover.models.drive_item import DriveItem
from fake_drive import ACTOR, NEW_OWNER, FakeClock, FakeDriveClient, acceptable, folder, owned, plain


DAY = 24 * 3600.0


def make_controller(job, client, store, clock, page_size=60, soft_deadline=1000.0, max_retries=1, batch_size=20):
    retry = RetryPolicy(max_retries=max_retries, base_delay=2.0, sleep=clock.sleep)
    executor = BatchExecutor(
        client,
        job.predicate,
        job.action,
        retry,
        batch_size=batch_size,
        item_delay=0.0,
        inter_batch_delay=0.0,
        sleep=clock.sleep,
    )
    return JobController(
        job,
        client,
        store,
        executor,
        page_size=page_size,
        soft_deadline_seconds=soft_deadline,
        cooldown_seconds=DAY,
        clock=clock,
    )


def scoped_accept(root="F1"):
    return accept_job_definition(JobSettings(accept_root_folder_id=root), ACTOR)


def global_accept():
    return accept_job_definition(JobSettings(), ACTOR)


class TestScopedTraversal(unittest.TestCase):
    def test_end_to_end_scoped_accept(self):
        async def run():
            clock = FakeClock()
            store = InMemoryCheckpointStore()
            client = FakeDriveClient(
                children={
                    "F1": [acceptable("a"), folder("B1"), acceptable("b")],
                    "B1": [acceptable("c")],
                }
            )

            outcome = await make_controller(scoped_accept(), client, store, clock).run()

            self.assertEqual(outcome.status, RunStatus.COMPLETED)
            self.assertEqual(client.mutated_ids, ["a", "b", "c"])
            self.assertEqual(outcome.stats.processed, 3)
            self.assertEqual(outcome.stats.succeeded, 3)
            self.assertEqual(outcome.stats.skipped, 0)
            self.assertEqual(outcome.stats.errored, 0)
            self.assertEqual(store.as_dict(), {})

            self.assertEqual(client.list_calls[0], ("'F1' in parents and trashed = false", None))
            item_id, permission, options = client.mutations[0]
            self.assertEqual(permission, {"id": "perm-a", "role": "owner"})
            self.assertEqual(options, {"transferOwnership": True})

        asyncio.run(run())

    def test_folders_are_visited_breadth_first(self):
        async def run():
            clock = FakeClock()
            client = FakeDriveClient(
                children={
                    "F1": [folder("A"), folder("B"), acceptable("x")],
                    "A": [folder("A1"), acceptable("y")],
                    "B": [acceptable("z")],
                    "A1": [acceptable("w")],
                }
            )

            outcome = await make_controller(scoped_accept(), client, InMemoryCheckpointStore(), clock).run()

            self.assertEqual(outcome.status, RunStatus.COMPLETED)
            visited = [query.split("'")[1] for query, _ in client.list_calls]
            self.assertEqual(visited, ["F1", "A", "B", "A1"])
            self.assertEqual(client.mutated_ids, ["x", "y", "z", "w"])

        asyncio.run(run())

    def test_resume_after_timeouts_matches_uninterrupted_run(self):
        tree = {
            "F1": [acceptable("f1a"), folder("D1"), acceptable("f1b"), plain("f1c"), folder("D2")],
            "D1": [acceptable("d1a"), acceptable("d1b"), acceptable("d1c")],
            "D2": [folder("D3"), acceptable("d2a")],
            "D3": [acceptable("d3a")],
        }

        async def run():
            reference_client = FakeDriveClient(children=tree)
            reference = await make_controller(
                scoped_accept(), reference_client, InMemoryCheckpointStore(), FakeClock(), page_size=2
            ).run()
            self.assertEqual(reference.status, RunStatus.COMPLETED)

            clock = FakeClock()
            store = InMemoryCheckpointStore()
            client = FakeDriveClient(children=tree, clock=clock, list_latency=1.0)

            outcomes = []
            for _ in range(50):
                outcome = await make_controller(
                    scoped_accept(), client, store, clock, page_size=2, soft_deadline=1.5
                ).run()
                outcomes.append(outcome)
                if outcome.status is RunStatus.COMPLETED:
                    break

            self.assertEqual(outcomes[-1].status, RunStatus.COMPLETED)
            timeouts = [o for o in outcomes if o.reason is SuspendReason.TIMEOUT]
            self.assertGreaterEqual(len(timeouts), 2)

            processed = [o.stats.processed for o in outcomes]
            self.assertEqual(processed, sorted(processed))

            self.assertEqual(client.mutated_ids, reference_client.mutated_ids)
            self.assertEqual(len(set(client.mutated_ids)), len(client.mutated_ids))
            self.assertEqual(outcomes[-1].stats, reference.stats)
            self.assertEqual(reference.stats.processed, 8)
            self.assertEqual(reference.stats.succeeded, 7)
            self.assertEqual(reference.stats.skipped, 1)
            self.assertEqual(store.as_dict(), {})

        asyncio.run(run())

    def test_checkpoint_from_other_root_is_discarded(self):
        async def run():
            store = InMemoryCheckpointStore(
                {
                    "ACCEPT_TREE_PAGE_TOKEN": "2",
                    "ACCEPT_TREE_FOLDER_QUEUE": '["OLD"]',
                    "ACCEPT_TREE_SCOPE": "OLD",
                    "ACCEPT_TREE_STATS_PROCESSED": "5",
                    "ACCEPT_TREE_STATS_SUCCEEDED": "5",
                }
            )
            client = FakeDriveClient(children={"F1": [acceptable("a")]})

            outcome = await make_controller(scoped_accept(), client, store, FakeClock()).run()

            self.assertEqual(outcome.status, RunStatus.COMPLETED)
            self.assertEqual(client.list_calls, [("'F1' in parents and trashed = false", None)])
            self.assertEqual(outcome.stats.processed, 1)

        asyncio.run(run())

    def test_listing_error_aborts_and_keeps_position(self):
        async def run():
            store = InMemoryCheckpointStore()
            client = FakeDriveClient(children={"F1": [acceptable("a")]})
            client.list_errors = [ApiError("File not found: F1", status_code=404, reason="notFound")]

            outcome = await make_controller(scoped_accept(), client, store, FakeClock()).run()

            self.assertEqual(outcome.status, RunStatus.ABORTED)
            self.assertIn("File not found", outcome.error)
            self.assertEqual(store.get("ACCEPT_TREE_FOLDER_QUEUE"), '["F1"]')
            self.assertEqual(client.mutated_ids, [])

        asyncio.run(run())

    def test_transient_listing_error_is_retried(self):
        async def run():
            clock = FakeClock()
            client = FakeDriveClient(children={"F1": [acceptable("a")]})
            client.list_errors = [ApiError("Backend Error", status_code=503)]

            outcome = await make_controller(scoped_accept(), client, InMemoryCheckpointStore(), clock).run()

            self.assertEqual(outcome.status, RunStatus.COMPLETED)
            self.assertEqual(len(client.list_calls), 2)
            self.assertIn(2.0, clock.slept)

        asyncio.run(run())


class TestQuotaAndCooldown(unittest.TestCase):
    def test_quota_mid_page_resumes_after_cooldown_without_double_counting(self):
        async def run():
            clock = FakeClock()
            store = InMemoryCheckpointStore()
            client = FakeDriveClient(global_items=[acceptable(i) for i in ("a", "b", "c", "d")])
            client.mutate_errors["c"] = [
                ApiError("User rate limit exceeded", status_code=403, reason="userRateLimitExceeded")
            ]

            first = await make_controller(global_accept(), client, store, clock).run()
            self.assertEqual(first.status, RunStatus.SUSPENDED)
            self.assertEqual(first.reason, SuspendReason.QUOTA)
            self.assertEqual(first.stats.processed, 2)
            self.assertEqual(store.get("ACCEPT_GLOBAL_PAGE_OFFSET"), "2")
            self.assertEqual(store.get("ACCEPT_SUSPEND_UNTIL"), str(int((clock.now + DAY) * 1000)))
            self.assertEqual(client.mutate_attempts["c"], 1)

            calls_before = client.remote_calls
            second = await make_controller(global_accept(), client, store, clock).run()
            self.assertEqual(second.reason, SuspendReason.COOLDOWN)
            self.assertEqual(second.stats.processed, 2)
            self.assertEqual(client.remote_calls, calls_before)

            clock.now += DAY + 1
            third = await make_controller(global_accept(), client, store, clock).run()
            self.assertEqual(third.status, RunStatus.COMPLETED)
            self.assertEqual(client.mutated_ids, ["a", "b", "c", "d"])
            self.assertEqual(third.stats.processed, 4)
            self.assertEqual(third.stats.succeeded, 4)
            self.assertEqual(store.as_dict(), {})

        asyncio.run(run())

    def test_cooldown_is_shared_by_the_action_family(self):
        async def run():
            clock = FakeClock()
            store = InMemoryCheckpointStore({"ACCEPT_SUSPEND_UNTIL": str(int((clock.now + 3600) * 1000))})
            client = FakeDriveClient(children={"F1": [acceptable("a")]}, global_items=[acceptable("g")])

            scoped = await make_controller(scoped_accept(), client, store, clock).run()
            unscoped = await make_controller(global_accept(), client, store, clock).run()

            for outcome in (scoped, unscoped):
                self.assertEqual(outcome.status, RunStatus.SUSPENDED)
                self.assertEqual(outcome.reason, SuspendReason.COOLDOWN)
                self.assertAlmostEqual(outcome.resume_at, clock.now + 3600, places=2)
            self.assertEqual(client.remote_calls, 0)

            clock.now += 3601
            outcome = await make_controller(scoped_accept(), client, store, clock).run()
            self.assertEqual(outcome.status, RunStatus.COMPLETED)
            self.assertIsNone(store.get("ACCEPT_SUSPEND_UNTIL"))

        asyncio.run(run())

    def test_quota_mid_page_in_a_tree_keeps_the_queued_subfolder(self):
        def tree():
            return {
                "F1": [folder("D"), acceptable("a"), acceptable("b"), acceptable("c")],
                "D": [acceptable("d1")],
            }

        async def run():
            clock = FakeClock()
            store = InMemoryCheckpointStore()
            client = FakeDriveClient(children=tree())
            client.mutate_errors["b"] = [ApiError("Quota exceeded", status_code=403, reason="quotaExceeded")]

            first = await make_controller(scoped_accept(), client, store, clock).run()
            self.assertEqual(first.reason, SuspendReason.QUOTA)
            self.assertEqual(store.get("ACCEPT_TREE_FOLDER_QUEUE"), '["F1", "D"]')
            self.assertEqual(store.get("ACCEPT_TREE_PAGE_OFFSET"), "2")

            clock.now += DAY + 1
            second = await make_controller(scoped_accept(), client, store, clock).run()
            self.assertEqual(second.status, RunStatus.COMPLETED)
            self.assertEqual(client.mutated_ids, ["a", "b", "c", "d1"])
            d_listings = [query for query, _ in client.list_calls if query.startswith("'D' in parents")]
            self.assertEqual(len(d_listings), 1)

            reference = await make_controller(
                scoped_accept(), FakeDriveClient(children=tree()), InMemoryCheckpointStore(), FakeClock()
            ).run()
            self.assertEqual(second.stats, reference.stats)
            self.assertEqual(second.stats.processed, 4)
            self.assertEqual(second.stats.succeeded, 4)

        asyncio.run(run())

    def test_listing_quota_arms_cooldown(self):
        async def run():
            clock = FakeClock()
            store = InMemoryCheckpointStore()
            client = FakeDriveClient(global_items=[acceptable("a")])
            client.list_errors = [ApiError("Too Many Requests", status_code=429)]

            outcome = await make_controller(global_accept(), client, store, clock).run()

            self.assertEqual(outcome.reason, SuspendReason.QUOTA)
            self.assertIsNotNone(store.get("ACCEPT_SUSPEND_UNTIL"))
            self.assertIsNone(store.get("TRANSFER_SUSPEND_UNTIL"))
            self.assertEqual(client.mutated_ids, [])

        asyncio.run(run())


class TestMutationFailures(unittest.TestCase):
    def test_transient_failure_is_retried_up_to_the_bound(self):
        async def run():
            clock = FakeClock()
            client = FakeDriveClient(global_items=[acceptable("a"), acceptable("b")])
            client.always_fail["a"] = ApiError("Backend Error", status_code=500, reason="backendError")

            outcome = await make_controller(global_accept(), client, InMemoryCheckpointStore(), clock, max_retries=2).run()

            self.assertEqual(outcome.status, RunStatus.COMPLETED)
            self.assertEqual(client.mutate_attempts["a"], 3)
            self.assertEqual(clock.slept[:2], [2.0, 4.0])
            self.assertEqual(outcome.stats.errored, 1)
            self.assertEqual(outcome.stats.succeeded, 1)
            self.assertEqual(outcome.stats.processed, 2)

        asyncio.run(run())

    def test_permanent_failure_is_not_retried(self):
        async def run():
            client = FakeDriveClient(global_items=[acceptable("a")])
            client.always_fail["a"] = ApiError(
                "The user does not have sufficient permissions", status_code=403, reason="insufficientFilePermissions"
            )

            outcome = await make_controller(global_accept(), client, InMemoryCheckpointStore(), FakeClock()).run()

            self.assertEqual(client.mutate_attempts["a"], 1)
            self.assertEqual(outcome.stats.errored, 1)

        asyncio.run(run())


class TestAbortedTicks(unittest.TestCase):
    def test_auth_failure_aborts_without_cooldown_and_keeps_the_checkpoint(self):
        async def run():
            clock = FakeClock()
            store = InMemoryCheckpointStore()
            client = FakeDriveClient(global_items=[acceptable(i) for i in ("a", "b", "c", "d")])
            for item_id in ("b", "c", "d"):
                client.always_fail[item_id] = ApiError("MISSING_DRIVE_API_TOKEN", status_code=401, reason="authError")

            first = await make_controller(global_accept(), client, store, clock).run()
            self.assertEqual(first.status, RunStatus.ABORTED)
            self.assertIn("MISSING_DRIVE_API_TOKEN", first.error)
            self.assertEqual(first.stats.processed, 1)
            self.assertEqual(first.stats.succeeded, 1)
            self.assertEqual(first.stats.errored, 0)
            self.assertEqual(client.mutate_attempts["b"], 1)
            self.assertNotIn("c", client.mutate_attempts)
            self.assertEqual(store.get("ACCEPT_GLOBAL_PAGE_OFFSET"), "1")
            self.assertEqual(store.get("ACCEPT_GLOBAL_STATS_PROCESSED"), "1")
            self.assertIsNone(store.get("ACCEPT_SUSPEND_UNTIL"))

            client.always_fail.clear()
            second = await make_controller(global_accept(), client, store, clock).run()
            self.assertEqual(second.status, RunStatus.COMPLETED)
            self.assertEqual(client.mutated_ids, ["a", "b", "c", "d"])
            self.assertEqual(second.stats.processed, 4)
            self.assertEqual(second.stats.errored, 0)

        asyncio.run(run())

    def test_auth_failure_while_listing_aborts_without_cooldown(self):
        async def run():
            store = InMemoryCheckpointStore()
            client = FakeDriveClient(global_items=[acceptable("a")])
            client.list_errors = [ApiError("Invalid Credentials", status_code=401, reason="authError")]

            outcome = await make_controller(global_accept(), client, store, FakeClock()).run()

            self.assertEqual(outcome.status, RunStatus.ABORTED)
            self.assertEqual(len(client.list_calls), 1)
            self.assertIsNone(store.get("ACCEPT_SUSPEND_UNTIL"))
            self.assertEqual(client.mutated_ids, [])

        asyncio.run(run())

    def test_unexpected_error_mid_page_keeps_accounted_items(self):
        async def run():
            clock = FakeClock()
            store = InMemoryCheckpointStore()
            client = FakeDriveClient(global_items=[acceptable(i) for i in ("a", "b", "c", "d")])
            client.mutate_errors["c"] = [ValueError("unexpected payload")]

            first = await make_controller(global_accept(), client, store, clock).run()
            self.assertEqual(first.status, RunStatus.ABORTED)
            self.assertIn("ValueError", first.error)
            self.assertEqual(first.stats.processed, 2)
            self.assertEqual(store.get("ACCEPT_GLOBAL_PAGE_OFFSET"), "2")
            self.assertEqual(store.get("ACCEPT_GLOBAL_STATS_SUCCEEDED"), "2")

            second = await make_controller(global_accept(), client, store, clock).run()
            self.assertEqual(second.status, RunStatus.COMPLETED)
            self.assertEqual(client.mutated_ids, ["a", "b", "c", "d"])
            self.assertEqual(client.mutate_attempts["a"], 1)
            self.assertEqual(second.stats.processed, 4)
            self.assertEqual(second.stats.succeeded, 4)

        asyncio.run(run())


class TestTransferJob(unittest.TestCase):
    def test_pending_owner_transfer_of_owned_items(self):
        async def run():
            already_offered = DriveItem(
                id="o2",
                name="o2",
                ownedByMe=True,
                permissions=[{"id": "p-boss", "emailAddress": NEW_OWNER, "role": "writer", "pendingOwner": True}],
            )
            client = FakeDriveClient(global_items=[owned("o1"), plain("p"), already_offered])
            settings = JobSettings(new_owner_email=NEW_OWNER)

            outcome = await make_controller(
                transfer_job_definition(settings), client, InMemoryCheckpointStore(), FakeClock()
            ).run()

            self.assertEqual(outcome.status, RunStatus.COMPLETED)
            self.assertEqual(client.list_calls[0][0], "'me' in owners and trashed = false")
            item_id, permission, options = client.mutations[0]
            self.assertEqual(item_id, "o1")
            self.assertEqual(permission["pendingOwner"], True)
            self.assertEqual(permission["role"], "writer")
            self.assertEqual(permission["emailAddress"], NEW_OWNER)
            self.assertEqual(options["transferOwnership"], False)

        asyncio.run(run())


if __name__ == "__main__":
    unittest.main()

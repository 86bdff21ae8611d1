"""In-memory Drive used by the job tests.

``FakeDriveClient`` serves a folder tree (or a flat global listing) page by
page, records every remote call, and can be told to fail specific calls with
an ``ApiError`` or any other exception. ``FakeClock`` doubles as the injected
clock and sleep so tests control elapsed time deterministically.
"""

import re
from typing import Dict, List, Optional

from drive_handover.adapters.remote_collection import RemoteCollectionClient
from drive_handover.core.errors import ApiError
from drive_handover.models.drive_item import FOLDER_MIME_TYPE, DriveItem, ListPage


ACTOR = "me@example.com"
NEW_OWNER = "boss@example.com"

_PARENT_QUERY = re.compile(r"^'(?P<folder>(?:[^'\\]|\\.)*)' in parents")


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start
        self.slept: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.slept.append(seconds)
        self.now += seconds


def acceptable(item_id: str, name: Optional[str] = None, actor: str = ACTOR) -> DriveItem:
    """A file whose ownership is being transferred to ``actor``."""
    return DriveItem(
        id=item_id,
        name=name or item_id,
        capabilities={"canAcceptOwnership": True},
        permissions=[{"id": f"perm-{item_id}", "emailAddress": actor, "role": "writer"}],
    )


def owned(item_id: str, name: Optional[str] = None) -> DriveItem:
    return DriveItem(id=item_id, name=name or item_id, ownedByMe=True)


def plain(item_id: str) -> DriveItem:
    """A file that no job considers eligible."""
    return DriveItem(id=item_id, name=item_id)


def folder(item_id: str, **kwargs) -> DriveItem:
    return DriveItem(id=item_id, name=item_id, mimeType=FOLDER_MIME_TYPE, **kwargs)


class FakeDriveClient(RemoteCollectionClient):
    """Serves ``children`` by parent id, or ``global_items`` for any other query."""

    def __init__(
        self,
        children: Optional[Dict[str, List[DriveItem]]] = None,
        global_items: Optional[List[DriveItem]] = None,
        clock: Optional[FakeClock] = None,
        list_latency: float = 0.0,
        actor_email: str = ACTOR,
    ) -> None:
        self.children = children or {}
        self.global_items = global_items or []
        self.clock = clock
        self.list_latency = list_latency
        self.actor_email = actor_email

        self.list_calls: List[tuple] = []
        self.mutations: List[tuple] = []
        self.mutate_attempts: Dict[str, int] = {}
        self.mutate_errors: Dict[str, List[Exception]] = {}
        self.always_fail: Dict[str, ApiError] = {}
        self.list_errors: List[ApiError] = []

    @property
    def remote_calls(self) -> int:
        return len(self.list_calls) + sum(self.mutate_attempts.values())

    @property
    def mutated_ids(self) -> List[str]:
        return [item_id for item_id, _, _ in self.mutations]

    def _source(self, query: str) -> List[DriveItem]:
        match = _PARENT_QUERY.match(query)
        if match:
            return self.children.get(match.group("folder"), [])
        return self.global_items

    async def list_page(self, query: str, page_token: Optional[str], page_size: int) -> ListPage:
        self.list_calls.append((query, page_token))
        if self.clock is not None:
            self.clock.now += self.list_latency
        if self.list_errors:
            raise self.list_errors.pop(0)

        items = self._source(query)
        start = int(page_token) if page_token else 0
        end = start + page_size
        next_token = str(end) if end < len(items) else None
        return ListPage(items=items[start:end], next_page_token=next_token)

    async def mutate(self, item_id: str, permission: dict, options: dict) -> None:
        self.mutate_attempts[item_id] = self.mutate_attempts.get(item_id, 0) + 1
        if item_id in self.always_fail:
            raise self.always_fail[item_id]
        queued = self.mutate_errors.get(item_id)
        if queued:
            raise queued.pop(0)
        self.mutations.append((item_id, dict(permission), dict(options)))

    async def get_actor_email(self) -> str:
        return self.actor_email

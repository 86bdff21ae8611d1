"""Scope, eligibility and mutation strategies of the ownership jobs.

One engine serves every job variant. A variant is the combination of:
- a ``Scope``: the whole Drive, or the subtree under one root folder
- an ``EligibilityPredicate``: which listed items qualify, and what the
  mutation needs to know about them
- a ``MutationAction``: the permission change applied to each eligible item
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from drive_handover.adapters.remote_collection import RemoteCollectionClient
from drive_handover.models.drive_item import BatchEntry, DriveItem


def quote_query_value(value: str) -> str:
    """Quote a literal for the Drive ``q`` syntax."""

    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


@dataclass(frozen=True)
class Scope:
    """Where a job looks for items.

    Attributes:
        root_folder_id: Root of the subtree to traverse, or None for the whole
            Drive.
        global_query: Listing query used in global mode.
    """

    root_folder_id: Optional[str] = None
    global_query: str = "trashed = false"

    @property
    def is_global(self) -> bool:
        return not self.root_folder_id

    @property
    def marker(self) -> str:
        return self.root_folder_id or ""

    def query_for(self, folder_id: Optional[str]) -> str:
        """Listing query for the given queue head (ignored in global mode)."""

        if self.is_global or not folder_id:
            return self.global_query
        return f"{quote_query_value(folder_id)} in parents and trashed = false"


class EligibilityPredicate(ABC):
    """Decides whether an item qualifies for the mutation."""

    @abstractmethod
    def select(self, item: DriveItem) -> Optional[BatchEntry]:
        """Return the batch entry for an eligible item, or None."""


class WriterRoleEligibility(EligibilityPredicate):
    """The actor holds a ``writer`` permission on the item.

    This is the state an item is in after its owner started a pending
    ownership transfer to the actor.
    """

    def __init__(self, actor_email: str) -> None:
        self.actor_email = actor_email

    def select(self, item: DriveItem) -> Optional[BatchEntry]:
        perm = item.permission_for(self.actor_email)
        if perm is None or perm.role != "writer":
            return None
        return BatchEntry(item_id=item.id, name=item.name, permission_id=perm.id)


class AcceptCapabilityEligibility(EligibilityPredicate):
    """Drive reports ``canAcceptOwnership`` and the actor has a permission."""

    def __init__(self, actor_email: str) -> None:
        self.actor_email = actor_email

    def select(self, item: DriveItem) -> Optional[BatchEntry]:
        if not item.capabilities.can_accept_ownership:
            return None
        perm = item.permission_for(self.actor_email)
        if perm is None:
            return None
        return BatchEntry(item_id=item.id, name=item.name, permission_id=perm.id)


class OwnedByActorEligibility(EligibilityPredicate):
    """The actor owns the item and the new owner is not already pending."""

    def __init__(self, new_owner_email: str) -> None:
        self.new_owner_email = new_owner_email

    def select(self, item: DriveItem) -> Optional[BatchEntry]:
        if not item.owned_by_me:
            return None
        target = item.permission_for(self.new_owner_email)
        if target is not None and target.pending_owner:
            return None
        return BatchEntry(item_id=item.id, name=item.name)


class MutationAction(ABC):
    """A permission change applied to one eligible item."""

    name: str = "mutate"

    @abstractmethod
    async def apply(self, client: RemoteCollectionClient, entry: BatchEntry) -> None:
        """Apply the change. Raises ``ApiError`` on failure."""


class AcceptOwnershipAction(MutationAction):
    """Upgrade the actor's own permission to owner."""

    name = "accept"

    async def apply(self, client: RemoteCollectionClient, entry: BatchEntry) -> None:
        if not entry.permission_id:
            raise ValueError(f"accept needs a permission id for item {entry.item_id}")
        await client.mutate(
            entry.item_id,
            {"id": entry.permission_id, "role": "owner"},
            {"transferOwnership": True},
        )


class DirectTransferAction(MutationAction):
    """Make the new owner the owner in one call.

    Only works where Drive allows immediate transfers (same Workspace domain).
    """

    name = "transfer"

    def __init__(self, new_owner_email: str, send_notification_email: bool = False) -> None:
        self.new_owner_email = new_owner_email
        self.send_notification_email = send_notification_email

    async def apply(self, client: RemoteCollectionClient, entry: BatchEntry) -> None:
        await client.mutate(
            entry.item_id,
            {"role": "owner", "type": "user", "emailAddress": self.new_owner_email},
            {"transferOwnership": True, "sendNotificationEmail": self.send_notification_email},
        )


class PendingOwnerTransferAction(MutationAction):
    """Grant the new owner ``writer`` with the pending-owner flag.

    The transfer completes when the recipient accepts it, e.g. by running the
    accept job under their own account.
    """

    name = "transfer"

    def __init__(self, new_owner_email: str, send_notification_email: bool = False) -> None:
        self.new_owner_email = new_owner_email
        self.send_notification_email = send_notification_email

    async def apply(self, client: RemoteCollectionClient, entry: BatchEntry) -> None:
        await client.mutate(
            entry.item_id,
            {
                "role": "writer",
                "type": "user",
                "emailAddress": self.new_owner_email,
                "pendingOwner": True,
            },
            {"transferOwnership": False, "sendNotificationEmail": self.send_notification_email},
        )

"""Item models for Drive Handover.

``DriveItem`` mirrors the subset of a Drive ``files`` resource the jobs ask
for in their ``fields`` selector. Field aliases match the Drive REST JSON, so
a raw ``files.list`` entry validates directly.
"""

from dataclasses import dataclass
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"


class DrivePermission(BaseModel):
    """One entry of a file's ``permissions`` list."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    email_address: Optional[str] = Field(default=None, alias="emailAddress")
    role: Optional[str] = None
    type: Optional[str] = None
    pending_owner: bool = Field(default=False, alias="pendingOwner")


class DriveCapabilities(BaseModel):
    """Capability flags of the acting user on a file."""

    model_config = ConfigDict(populate_by_name=True)

    can_accept_ownership: bool = Field(default=False, alias="canAcceptOwnership")


class DriveItem(BaseModel):
    """A file or folder returned by one listing page."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str = ""
    mime_type: str = Field(default="", alias="mimeType")
    owned_by_me: bool = Field(default=False, alias="ownedByMe")
    capabilities: DriveCapabilities = Field(default_factory=DriveCapabilities)
    permissions: List[DrivePermission] = Field(default_factory=list)

    @property
    def is_container(self) -> bool:
        return self.mime_type == FOLDER_MIME_TYPE

    def permission_for(self, email: Optional[str]) -> Optional[DrivePermission]:
        """Return the permission held by ``email``, matched case-insensitively."""

        if not email:
            return None
        wanted = email.strip().lower()
        for perm in self.permissions:
            if perm.email_address and perm.email_address.strip().lower() == wanted:
                return perm
        return None


class ListPage(BaseModel):
    """One page of a paginated listing."""

    items: List[DriveItem] = Field(default_factory=list)
    next_page_token: Optional[str] = None


@dataclass
class BatchEntry:
    """What the mutation call needs to know about one eligible item.

    Attributes:
        item_id: Drive file id.
        name: Display name, for logging only.
        permission_id: The acting user's permission to update, for
            acceptance-style actions.
    """

    item_id: str
    name: str
    permission_id: Optional[str] = None

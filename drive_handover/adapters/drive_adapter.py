"""Google Drive implementation of the remote collection client.

This adapter turns the dict-returning primitives of ``services.drive`` into
the ``RemoteCollectionClient`` contract: typed pages on success, ``ApiError``
carrying the HTTP status and Drive error reason on failure.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from drive_handover.adapters.remote_collection import RemoteCollectionClient
from drive_handover.core.errors import ApiError
from drive_handover.models.drive_item import DriveItem, ListPage
from drive_handover.services.drive import (
    drive_create_permission,
    drive_get_about_user,
    drive_list_files_page,
    drive_update_permission,
)


def _raise_for_result(result: Dict[str, Any]) -> None:
    if result.get("success"):
        return
    raise ApiError(
        str(result.get("error") or "Unknown Drive API error"),
        status_code=result.get("status_code"),
        reason=result.get("reason"),
    )


class DriveCollectionAdapter(RemoteCollectionClient):
    """Drive v3 backend for the ownership jobs."""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self._transport = transport

    async def list_page(
        self,
        query: str,
        page_token: Optional[str],
        page_size: int,
    ) -> ListPage:
        result = await drive_list_files_page(
            query=query,
            page_size=page_size,
            page_token=page_token,
            transport=self._transport,
        )
        _raise_for_result(result)

        data = result.get("data") or {}
        items = [DriveItem.model_validate(f) for f in data.get("files") or []]
        return ListPage(items=items, next_page_token=data.get("next_page_token"))

    async def mutate(
        self,
        item_id: str,
        permission: Dict[str, Any],
        options: Dict[str, Any],
    ) -> None:
        body = dict(permission)
        permission_id = body.pop("id", None)
        transfer_ownership = bool(options.get("transferOwnership", False))

        if permission_id:
            result = await drive_update_permission(
                file_id=item_id,
                permission_id=permission_id,
                body=body,
                transfer_ownership=transfer_ownership,
                transport=self._transport,
            )
        else:
            result = await drive_create_permission(
                file_id=item_id,
                body=body,
                transfer_ownership=transfer_ownership,
                send_notification_email=bool(options.get("sendNotificationEmail", False)),
                transport=self._transport,
            )
        _raise_for_result(result)

    async def get_actor_email(self) -> str:
        result = await drive_get_about_user(transport=self._transport)
        _raise_for_result(result)

        email = (result.get("data") or {}).get("email")
        if not email:
            raise ApiError("Drive about.get returned no emailAddress")
        return str(email)

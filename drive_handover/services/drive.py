"""Google Drive REST primitives.

This module provides the *single-call* Drive primitives the ownership jobs
need:
- One files.list page fetch
- One permissions.update call
- One permissions.create call
- One about.get call (who am I)

Every function performs at most ONE HTTP request and returns a normalized
dict: ``{"success": True, "data": ...}`` or ``{"success": False, "error": ...,
"status_code": ..., "reason": ...}``. Nothing here loops over pages or
retries; those decisions belong to the job engine.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx
import logging

from drive_handover.services.google_oauth import get_google_access_token


logger = logging.getLogger("drive_handover.drive")

DRIVE_API_BASE = "https://www.googleapis.com/drive/v3"

LIST_FIELDS = (
    "nextPageToken, files(id, name, mimeType, ownedByMe, "
    "capabilities(canAcceptOwnership), "
    "permissions(id, emailAddress, role, type, pendingOwner))"
)


async def _drive_auth_headers() -> Dict[str, str]:
    """Return auth headers for Drive, using the refresh-token flow if needed."""

    token = await get_google_access_token()
    if not token:
        logger.error(
            "No valid Drive access token; set GOOGLE_ACCESS_TOKEN or "
            "GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET / GOOGLE_REFRESH_TOKEN.",
        )
        return {}

    return {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}


def _status_error(exc: httpx.HTTPStatusError) -> Dict[str, Any]:
    """Normalize a Drive error response.

    Drive error bodies look like
    ``{"error": {"code": 403, "message": "...", "errors": [{"reason": "..."}]}}``.
    """

    status_code = exc.response.status_code
    message = exc.response.text
    reason: Optional[str] = None
    try:
        body = exc.response.json()
    except ValueError:
        body = None

    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        err = body["error"]
        message = str(err.get("message") or message)
        errors = err.get("errors") or []
        if errors and isinstance(errors[0], dict):
            reason = errors[0].get("reason")
        if not reason and isinstance(err.get("status"), str):
            reason = err["status"]

    return {
        "success": False,
        "error": f"API_ERROR: {status_code}: {message}",
        "status_code": status_code,
        "reason": reason,
    }


async def _drive_request(
    method: str,
    path: str,
    *,
    params: Optional[Dict[str, Any]] = None,
    json_body: Optional[Dict[str, Any]] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    headers = await _drive_auth_headers()
    if not headers:
        return {"success": False, "error": "MISSING_DRIVE_API_TOKEN", "status_code": 401, "reason": "authError"}

    url = f"{DRIVE_API_BASE}{path}"
    try:
        async with httpx.AsyncClient(timeout=30.0, transport=transport) as client:
            resp = await client.request(method, url, headers=headers, params=params, json=json_body)
        resp.raise_for_status()
    except httpx.HTTPStatusError as exc:
        return _status_error(exc)
    except httpx.RequestError as exc:
        return {"success": False, "error": f"HTTP_ERROR: {exc!r}", "status_code": None, "reason": None}

    if not resp.content:
        return {"success": True, "data": {}}
    try:
        data = resp.json()
    except ValueError:
        logger.error("Drive returned a non-JSON body for %s %s", method, path)
        return {
            "success": False,
            "error": f"INVALID_RESPONSE: {resp.status_code}: body is not JSON",
            "status_code": resp.status_code,
            "reason": "invalidResponse",
        }
    return {"success": True, "data": data}


async def drive_list_files_page(
    *,
    query: str,
    page_size: int,
    page_token: Optional[str] = None,
    fields: str = LIST_FIELDS,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    """Fetch exactly ONE files.list page.

    Returns:
        {
          "success": bool,
          "data": {"files": [dict, ...], "next_page_token": str|None}
        }
    """

    params: Dict[str, Any] = {"q": query, "pageSize": page_size, "fields": fields}
    if page_token:
        params["pageToken"] = page_token

    result = await _drive_request("GET", "/files", params=params, transport=transport)
    if not result.get("success"):
        return result

    payload = result.get("data") or {}
    return {
        "success": True,
        "data": {
            "files": list(payload.get("files") or []),
            "next_page_token": payload.get("nextPageToken") or None,
        },
    }


async def drive_update_permission(
    *,
    file_id: str,
    permission_id: str,
    body: Dict[str, Any],
    transfer_ownership: bool = False,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    """Update an existing permission with ONE permissions.update call."""

    params: Dict[str, Any] = {"transferOwnership": transfer_ownership}
    return await _drive_request(
        "PATCH",
        f"/files/{file_id}/permissions/{permission_id}",
        params=params,
        json_body=body,
        transport=transport,
    )


async def drive_create_permission(
    *,
    file_id: str,
    body: Dict[str, Any],
    transfer_ownership: bool = False,
    send_notification_email: bool = False,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    """Create a permission with ONE permissions.create call."""

    params: Dict[str, Any] = {
        "transferOwnership": transfer_ownership,
        "sendNotificationEmail": send_notification_email,
    }
    return await _drive_request(
        "POST",
        f"/files/{file_id}/permissions",
        params=params,
        json_body=body,
        transport=transport,
    )


async def drive_get_about_user(
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    """Return the authenticated user (``about.get?fields=user``)."""

    result = await _drive_request("GET", "/about", params={"fields": "user"}, transport=transport)
    if not result.get("success"):
        return result
    user = (result.get("data") or {}).get("user") or {}
    return {"success": True, "data": {"email": user.get("emailAddress"), "name": user.get("displayName")}}

"""Google OAuth token handling for the Drive jobs.

Two grants go through the token endpoint here:
- ``authorization_code``, once, from the ``/oauth2/callback`` route, to obtain
  a refresh token with the Drive scope
- ``refresh_token``, on every tick, to mint short-lived access tokens

Failures never raise. Callers get None and the Drive layer reports a missing
token as an ``authError``, which stops the tick without a cooldown.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import logging
import os
import time

import httpx


logger = logging.getLogger("drive_handover.google_oauth")

TOKEN_URL = "https://oauth2.googleapis.com/token"
DRIVE_SCOPE = "https://www.googleapis.com/auth/drive"

# Lifetime assumed when the endpoint omits expires_in, and the margin kept
# before the real expiry.
DEFAULT_TOKEN_LIFETIME = 3600
EXPIRY_MARGIN = 60
REFRESH_ATTEMPTS = 2


@dataclass(frozen=True)
class OAuthClient:
    client_id: str
    client_secret: str
    refresh_token: Optional[str] = None

    @classmethod
    def from_env(cls) -> Optional["OAuthClient"]:
        """Read the client from the environment; None without id and secret."""

        client_id = os.getenv("GOOGLE_CLIENT_ID")
        client_secret = os.getenv("GOOGLE_CLIENT_SECRET")
        if not client_id or not client_secret:
            return None
        return cls(client_id, client_secret, os.getenv("GOOGLE_REFRESH_TOKEN") or None)


@dataclass
class _CachedToken:
    value: Optional[str] = None
    expires_at: float = 0.0

    def usable(self, now: float) -> bool:
        return bool(self.value) and now < self.expires_at


_cache = _CachedToken()


def reset_token_cache() -> None:
    _cache.value = None
    _cache.expires_at = 0.0


async def _post_token_form(
    form: Dict[str, str],
    *,
    attempts: int = 1,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Optional[Dict[str, Any]]:
    """POST ``form`` to the token endpoint and return the JSON body.

    Connection errors are retried up to ``attempts`` times. An error status or
    a body that is not a JSON object is final.
    """

    for attempt in range(1, attempts + 1):
        try:
            async with httpx.AsyncClient(timeout=20.0, transport=transport) as client:
                resp = await client.post(TOKEN_URL, data=form)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "Token endpoint rejected %s grant with %s: %s",
                form.get("grant_type"),
                exc.response.status_code,
                exc.response.text,
            )
            return None
        except httpx.RequestError as exc:
            logger.warning("Token endpoint unreachable (attempt %d/%d): %r", attempt, attempts, exc)
            continue

        try:
            payload = resp.json()
        except ValueError:
            logger.error("Token endpoint returned a non-JSON body")
            return None
        if not isinstance(payload, dict):
            logger.error("Token endpoint returned %s instead of an object", type(payload).__name__)
            return None
        return payload

    return None


def _lifetime_seconds(payload: Dict[str, Any]) -> int:
    try:
        return int(payload.get("expires_in", DEFAULT_TOKEN_LIFETIME))
    except (TypeError, ValueError):
        return DEFAULT_TOKEN_LIFETIME


async def get_google_access_token(
    force_refresh: bool = False,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    clock: Callable[[], float] = time.time,
) -> Optional[str]:
    """Return an access token for Drive, or None if none can be obtained.

    ``GOOGLE_ACCESS_TOKEN`` wins when set. Otherwise a refreshed token is
    cached until shortly before it expires; ``force_refresh`` drops the cache.
    """

    explicit = os.getenv("GOOGLE_ACCESS_TOKEN")
    if explicit:
        return explicit

    now = clock()
    if force_refresh:
        logger.info("Forcing Google access token refresh")
        reset_token_cache()
    elif _cache.usable(now):
        return _cache.value

    client = OAuthClient.from_env()
    if client is None or not client.refresh_token:
        logger.error("GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET and GOOGLE_REFRESH_TOKEN are required to refresh")
        return None

    payload = await _post_token_form(
        {
            "client_id": client.client_id,
            "client_secret": client.client_secret,
            "refresh_token": client.refresh_token,
            "grant_type": "refresh_token",
        },
        attempts=REFRESH_ATTEMPTS,
        transport=transport,
    )
    if payload is None:
        return None

    token = payload.get("access_token")
    if not token:
        logger.error("Token endpoint response has no access_token")
        return None

    _cache.value = token
    _cache.expires_at = now + max(0, _lifetime_seconds(payload) - EXPIRY_MARGIN)
    return token


async def exchange_authorization_code(
    client: OAuthClient,
    code: str,
    redirect_uri: str,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Optional[Dict[str, Any]]:
    """Trade an authorization code for tokens; None if the exchange failed."""

    return await _post_token_form(
        {
            "code": code,
            "client_id": client.client_id,
            "client_secret": client.client_secret,
            "redirect_uri": redirect_uri,
            "grant_type": "authorization_code",
        },
        transport=transport,
    )

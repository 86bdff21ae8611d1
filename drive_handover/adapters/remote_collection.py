"""Remote collection client interface for Drive Handover.

This module defines the contract the job engine consumes. The engine only
knows how to:
1. Fetch one page of a listing for a query
2. Apply one permission mutation to one item
3. Ask who the acting user is

Implementations raise ``ApiError`` for every failed remote call and never
retry on their own; retrying is the engine's decision.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from drive_handover.models.drive_item import ListPage


class RemoteCollectionClient(ABC):
    """Abstract base class for paginated collection backends."""

    @abstractmethod
    async def list_page(
        self,
        query: str,
        page_token: Optional[str],
        page_size: int,
    ) -> ListPage:
        """Fetch exactly ONE page of items matching ``query``.

        Args:
            query: Backend query string (Drive ``q`` syntax).
            page_token: Continuation token from the previous page, or None for
                the first page.
            page_size: Maximum number of items to return.

        Returns:
            The page's items and the token of the next page (None on the last
            page).

        Raises:
            ApiError: If the listing call fails.
        """

    @abstractmethod
    async def mutate(
        self,
        item_id: str,
        permission: Dict[str, Any],
        options: Dict[str, Any],
    ) -> None:
        """Apply one permission change to one item.

        Args:
            item_id: Target item.
            permission: Permission resource body. When it carries an ``id``,
                that existing permission is updated; otherwise a new one is
                created.
            options: Query options of the call (e.g. ``transferOwnership``).

        Raises:
            ApiError: If the mutation fails.
        """

    @abstractmethod
    async def get_actor_email(self) -> str:
        """Return the email address of the authenticated user.

        Raises:
            ApiError: If the identity lookup fails.
        """

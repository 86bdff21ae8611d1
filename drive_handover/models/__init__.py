"""Models package for Drive Handover."""

from drive_handover.models.drive_item import (
    FOLDER_MIME_TYPE,
    BatchEntry,
    DriveCapabilities,
    DriveItem,
    DrivePermission,
    ListPage,
)

__all__ = [
    "FOLDER_MIME_TYPE",
    "BatchEntry",
    "DriveCapabilities",
    "DriveItem",
    "DrivePermission",
    "ListPage",
]

"""Adapters package for Drive Handover.

This package contains the external collaborators of the job engine: the
remote collection client and the checkpoint store, each as an interface plus
concrete implementations.
"""

from drive_handover.adapters.checkpoint_store import (
    CheckpointStore,
    InMemoryCheckpointStore,
    JsonFileCheckpointStore,
)
from drive_handover.adapters.drive_adapter import DriveCollectionAdapter
from drive_handover.adapters.remote_collection import RemoteCollectionClient

__all__ = [
    "CheckpointStore",
    "DriveCollectionAdapter",
    "InMemoryCheckpointStore",
    "JsonFileCheckpointStore",
    "RemoteCollectionClient",
]

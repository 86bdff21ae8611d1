"""Drive Handover: resumable Google Drive ownership jobs."""

__version__ = "0.1.0"

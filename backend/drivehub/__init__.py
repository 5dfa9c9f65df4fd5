"""DriveHub: multi-account Google Drive aggregation backend."""

__version__ = "0.3.0"

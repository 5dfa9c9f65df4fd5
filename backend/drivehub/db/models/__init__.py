"""Database models for DriveHub."""

from drivehub.db.models.enums import ConnectionStatus
from drivehub.db.models.linked_account import LinkedAccount
from drivehub.db.models.mirrored_file import FOLDER_MIME_TYPE, MirroredFile

__all__ = [
    # Models
    "LinkedAccount",
    "MirroredFile",
    # Enums
    "ConnectionStatus",
    # Constants
    "FOLDER_MIME_TYPE",
]

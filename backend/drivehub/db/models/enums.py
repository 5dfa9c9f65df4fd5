"""Enum types for database models."""

from __future__ import annotations

import enum


class ConnectionStatus(str, enum.Enum):
    """Connectivity state of a linked Drive account."""

    ACTIVE = "active"
    REVOKED = "revoked"  # Credentials rejected; needs a new consent flow
    ERROR = "error"  # Last operation failed for a non-auth reason
    DISCONNECTED = "disconnected"  # Explicitly disconnected by the user

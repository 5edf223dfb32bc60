"""Domain models for the audit management user service."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass
class User:
    """Represents a user record stored in the audit management database."""

    id: Optional[int]
    username: str
    email: str
    role: str
    created_at: Optional[datetime] = None


@dataclass
class UserPayload:
    """User data exchanged with callers of :class:`~audit_management.service.UserService`.

    ``id`` and ``created_at`` are ``None`` until the store has persisted the user.
    """

    username: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None


__all__ = ["User", "UserPayload"]

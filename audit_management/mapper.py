"""Conversion between stored user records and their external representation."""
from __future__ import annotations

from typing import Optional

from .models import User, UserPayload


class UserMapper:
    """Stateless mapper between :class:`User` records and :class:`UserPayload` objects."""

    def to_external(self, record: Optional[User]) -> Optional[UserPayload]:
        if record is None:
            return None
        return UserPayload(
            id=record.id,
            username=record.username,
            email=record.email,
            role=record.role,
            created_at=record.created_at,
        )

    def to_record(self, payload: Optional[UserPayload]) -> Optional[User]:
        if payload is None:
            return None
        return User(
            id=payload.id,
            username=payload.username,  # type: ignore[arg-type]
            email=payload.email,  # type: ignore[arg-type]
            role=payload.role,  # type: ignore[arg-type]
            created_at=payload.created_at,
        )

    def apply_update(self, existing: User, payload: UserPayload) -> None:
        """Copy the non-empty editable fields of ``payload`` onto ``existing``.

        ``id`` and ``created_at`` are never modified.
        """

        if payload.username:
            existing.username = payload.username
        if payload.email:
            existing.email = payload.email
        if payload.role:
            existing.role = payload.role


__all__ = ["UserMapper"]

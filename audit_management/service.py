"""Business rules for creating, reading, updating and deleting users."""

from __future__ import annotations

import logging
import sqlite3
from typing import List, Optional, cast

from .database import Database
from .errors import DuplicateResourceError, ResourceNotFoundError
from .mapper import UserMapper
from .models import User, UserPayload

logger = logging.getLogger("auditmanagement.service")

_RESOURCE = "User"


class UserService:
    """Enforce existence and uniqueness rules on top of the user store.

    The service keeps no state of its own. Each public method runs inside a
    single store transaction; writes take the store's write lock before the
    uniqueness checks so the check and the write cannot interleave with
    another writer.
    """

    def __init__(self, store: Database, mapper: Optional[UserMapper] = None) -> None:
        self._store = store
        self._mapper = mapper or UserMapper()

    def list_all(self) -> List[UserPayload]:
        logger.debug("Listing all users")
        with self._store.transaction() as conn:
            records = self._store.find_all(conn)
        return self._to_external_list(records)

    def get_by_id(self, user_id: int) -> UserPayload:
        logger.debug("Fetching user with id %s", user_id)
        with self._store.transaction() as conn:
            record = self._require(conn, user_id)
        return self._to_external(record)

    def create(self, payload: UserPayload) -> UserPayload:
        logger.debug("Creating user %s", payload.username)
        record = self._mapper.to_record(payload)
        if record is None:
            raise ValueError("A user payload is required")
        # The store assigns both values on insert.
        record.id = None
        record.created_at = None

        with self._store.transaction(immediate=True) as conn:
            self._ensure_unique(conn, payload, exclude_id=None)
            saved = self._store.save(conn, record)

        logger.info("Created user id=%s", saved.id)
        return self._to_external(saved)

    def update(self, user_id: int, payload: UserPayload) -> UserPayload:
        logger.debug("Updating user with id %s", user_id)
        with self._store.transaction(immediate=True) as conn:
            existing = self._require(conn, user_id)
            self._ensure_unique(conn, payload, exclude_id=user_id)
            self._mapper.apply_update(existing, payload)
            saved = self._store.save(conn, existing)

        logger.info("Updated user id=%s", user_id)
        return self._to_external(saved)

    def delete(self, user_id: int) -> None:
        logger.debug("Deleting user with id %s", user_id)
        with self._store.transaction(immediate=True) as conn:
            if not self._store.exists_by_id(conn, user_id):
                raise ResourceNotFoundError(_RESOURCE, "id", user_id)
            self._store.delete_by_id(conn, user_id)

        logger.info("Deleted user id=%s", user_id)

    def list_by_role(self, role: str) -> List[UserPayload]:
        logger.debug("Listing users with role %s", role)
        with self._store.transaction() as conn:
            records = self._store.find_by_role(conn, role)
        return self._to_external_list(records)

    def search_by_username(self, fragment: str) -> List[UserPayload]:
        logger.debug("Searching users whose username contains %s", fragment)
        with self._store.transaction() as conn:
            records = self._store.find_by_username_containing(conn, fragment)
        return self._to_external_list(records)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _require(self, conn: sqlite3.Connection, user_id: int) -> User:
        record = self._store.find_by_id(conn, user_id)
        if record is None:
            raise ResourceNotFoundError(_RESOURCE, "id", user_id)
        return record

    def _ensure_unique(
        self,
        conn: sqlite3.Connection,
        payload: UserPayload,
        *,
        exclude_id: Optional[int],
    ) -> None:
        """Raise :class:`DuplicateResourceError` if another user holds the username or email.

        Username is checked first; when it conflicts the email is not looked up.
        """

        if payload.username:
            holder = self._store.find_by_username(conn, payload.username)
            if holder is not None and holder.id != exclude_id:
                raise DuplicateResourceError(_RESOURCE, "username", payload.username)

        if payload.email:
            holder = self._store.find_by_email(conn, payload.email)
            if holder is not None and holder.id != exclude_id:
                raise DuplicateResourceError(_RESOURCE, "email", payload.email)

    def _to_external(self, record: User) -> UserPayload:
        return cast(UserPayload, self._mapper.to_external(record))

    def _to_external_list(self, records: List[User]) -> List[UserPayload]:
        return [self._to_external(record) for record in records]


__all__ = ["UserService"]

"""Exceptions raised by the user management service and its store."""
from __future__ import annotations


class UserManagementError(Exception):
    """Base class for errors raised by the user management core."""


class ResourceNotFoundError(UserManagementError):
    """Raised when a lookup by identifier matches no stored record."""

    def __init__(self, resource: str, field: str, value: object) -> None:
        super().__init__(f"{resource} not found with {field}: '{value}'")
        self.resource = resource
        self.field = field
        self.value = value


class DuplicateResourceError(UserManagementError):
    """Raised when a write would give two records the same unique value."""

    def __init__(self, resource: str, field: str, value: object) -> None:
        super().__init__(f"{resource} already exists with {field}: '{value}'")
        self.resource = resource
        self.field = field
        self.value = value


class StorageError(UserManagementError):
    """Raised when the underlying database fails for reasons other than a conflict."""


__all__ = [
    "DuplicateResourceError",
    "ResourceNotFoundError",
    "StorageError",
    "UserManagementError",
]

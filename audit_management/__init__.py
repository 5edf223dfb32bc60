"""User management core and HTTP API for the audit management application."""

from __future__ import annotations

from typing import Any

from .database import Database, resolve_database_path
from .errors import DuplicateResourceError, ResourceNotFoundError, StorageError, UserManagementError
from .mapper import UserMapper
from .models import User, UserPayload
from .service import UserService


def create_app(*args: Any, **kwargs: Any):
    """Factory function that returns the FastAPI application."""

    from .api import create_app as _create_app

    return _create_app(*args, **kwargs)


__all__ = [
    "Database",
    "DuplicateResourceError",
    "ResourceNotFoundError",
    "StorageError",
    "User",
    "UserManagementError",
    "UserMapper",
    "UserPayload",
    "UserService",
    "create_app",
    "resolve_database_path",
]

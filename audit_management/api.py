"""FastAPI application exposing the user management endpoints."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from .config import Settings, load_settings
from .database import Database
from .errors import DuplicateResourceError, ResourceNotFoundError, StorageError
from .mapper import UserMapper
from .schemas import ErrorResponse, UserRequest, UserResponse, payload_to_response
from .service import UserService

logger = logging.getLogger("auditmanagement.api")

API_TITLE = "Audit Management API"
API_VERSION = "1.0.0"
API_DESCRIPTION = """
REST API for the audit management application.

Manages the users of the audit system with full CRUD operations.

## Features
- User management (create, read, update, delete)
- Search by username or filter by role
- Input validation

## Authentication
The API does not require authentication.
"""

_CORS_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"]
_CORS_MAX_AGE = 3600

_NOT_FOUND_RESPONSE = {"model": ErrorResponse, "description": "User not found"}
_CONFLICT_RESPONSE = {"model": ErrorResponse, "description": "Username or email already in use"}
_INVALID_RESPONSE = {"model": ErrorResponse, "description": "Invalid input"}
_SERVER_ERROR_RESPONSE = {"model": ErrorResponse, "description": "Internal server error"}


def _error_content(
    request: Request,
    status_code: int,
    error: str,
    message: str,
    validation_errors: Optional[Dict[str, str]] = None,
) -> Dict[str, object]:
    body = ErrorResponse(
        timestamp=datetime.now(timezone.utc),
        status=status_code,
        error=error,
        message=message,
        path=request.url.path,
        validation_errors=validation_errors,
    )
    return body.model_dump(mode="json", by_alias=True, exclude_none=True)


def _collect_validation_errors(exc: RequestValidationError) -> Dict[str, str]:
    errors: Dict[str, str] = {}
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part != "body"]
        field = location[-1] if location else "body"
        errors.setdefault(field, str(error.get("msg", "Invalid value")))
    return errors


def _trusted_proxy_hosts(settings: Settings) -> list[str] | str:
    hosts = [host for host in settings.trusted_proxies if host]
    if not hosts or "*" in hosts:
        return "*"
    return hosts


def create_app(
    *,
    database: Database | None = None,
    settings: Settings | None = None,
    initialize_database: bool = False,
) -> FastAPI:
    if settings is None:
        settings = load_settings()

    if database is None:
        database = Database(settings.database_path)
        database.initialize()
    elif initialize_database:
        database.initialize()

    service = UserService(database, UserMapper())

    app = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=API_VERSION,
        contact={
            "name": "Audit Management Team",
            "email": "contact@audit-management.com",
            "url": "https://github.com/audit-management/audit-management",
        },
        license_info={"name": "MIT License", "url": "https://opensource.org/licenses/MIT"},
        docs_url="/swagger-ui",
        redoc_url=None,
        openapi_url="/api-docs",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=_CORS_METHODS,
        allow_headers=["*"],
        max_age=_CORS_MAX_AGE,
    )
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=_trusted_proxy_hosts(settings))
    app.state.database = database
    app.state.service = service
    app.state.settings = settings

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=_error_content(
                request,
                status.HTTP_400_BAD_REQUEST,
                "Validation error",
                "The submitted data is not valid",
                _collect_validation_errors(exc),
            ),
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        try:
            reason = HTTPStatus(exc.status_code).phrase
        except ValueError:
            reason = "Error"
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_content(request, exc.status_code, reason, str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(ResourceNotFoundError)
    async def handle_not_found(request: Request, exc: ResourceNotFoundError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content=_error_content(request, status.HTTP_404_NOT_FOUND, "Resource not found", str(exc)),
        )

    @app.exception_handler(DuplicateResourceError)
    async def handle_conflict(request: Request, exc: DuplicateResourceError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content=_error_content(request, status.HTTP_409_CONFLICT, "Data conflict", str(exc)),
        )

    @app.exception_handler(StorageError)
    async def handle_storage_error(request: Request, exc: StorageError) -> JSONResponse:
        logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_content(
                request,
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "Internal server error",
                "An unexpected error occurred",
            ),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_content(
                request,
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "Internal server error",
                "An unexpected error occurred",
            ),
        )

    def get_service() -> UserService:
        return service

    @app.get("/health")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    router = APIRouter(
        prefix="/api/users",
        tags=["Users"],
        responses={status.HTTP_500_INTERNAL_SERVER_ERROR: _SERVER_ERROR_RESPONSE},
    )

    @router.get("", response_model=List[UserResponse], summary="List all users")
    def list_users(users: UserService = Depends(get_service)) -> List[UserResponse]:
        logger.info("GET /api/users")
        return [payload_to_response(user) for user in users.list_all()]

    @router.get(
        "/search",
        response_model=List[UserResponse],
        summary="Search users by username",
        description="Return users whose username contains the given text, ignoring case.",
        responses={status.HTTP_400_BAD_REQUEST: _INVALID_RESPONSE},
    )
    def search_users(
        username: str = Query(..., description="Text to look for in usernames", examples=["john"]),
        users: UserService = Depends(get_service),
    ) -> List[UserResponse]:
        logger.info("GET /api/users/search?username=%s", username)
        return [payload_to_response(user) for user in users.search_by_username(username)]

    @router.get(
        "/role/{role}",
        response_model=List[UserResponse],
        summary="List users with a role",
    )
    def list_users_by_role(role: str, users: UserService = Depends(get_service)) -> List[UserResponse]:
        logger.info("GET /api/users/role/%s", role)
        return [payload_to_response(user) for user in users.list_by_role(role)]

    @router.get(
        "/{user_id}",
        response_model=UserResponse,
        summary="Get a user by id",
        responses={status.HTTP_404_NOT_FOUND: _NOT_FOUND_RESPONSE},
    )
    def read_user(user_id: int, users: UserService = Depends(get_service)) -> UserResponse:
        logger.info("GET /api/users/%s", user_id)
        return payload_to_response(users.get_by_id(user_id))

    @router.post(
        "",
        response_model=UserResponse,
        status_code=status.HTTP_201_CREATED,
        summary="Create a user",
        responses={
            status.HTTP_400_BAD_REQUEST: _INVALID_RESPONSE,
            status.HTTP_409_CONFLICT: _CONFLICT_RESPONSE,
        },
    )
    def create_user(payload: UserRequest, users: UserService = Depends(get_service)) -> UserResponse:
        logger.info("POST /api/users username=%s", payload.username)
        return payload_to_response(users.create(payload.to_payload()))

    @router.put(
        "/{user_id}",
        response_model=UserResponse,
        summary="Update a user",
        responses={
            status.HTTP_400_BAD_REQUEST: _INVALID_RESPONSE,
            status.HTTP_404_NOT_FOUND: _NOT_FOUND_RESPONSE,
            status.HTTP_409_CONFLICT: _CONFLICT_RESPONSE,
        },
    )
    def update_user(
        user_id: int,
        payload: UserRequest,
        users: UserService = Depends(get_service),
    ) -> UserResponse:
        logger.info("PUT /api/users/%s", user_id)
        return payload_to_response(users.update(user_id, payload.to_payload()))

    @router.delete(
        "/{user_id}",
        status_code=status.HTTP_204_NO_CONTENT,
        response_class=Response,
        summary="Delete a user",
        responses={status.HTTP_404_NOT_FOUND: _NOT_FOUND_RESPONSE},
    )
    def delete_user(user_id: int, users: UserService = Depends(get_service)) -> Response:
        logger.info("DELETE /api/users/%s", user_id)
        users.delete(user_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    app.include_router(router)
    return app


__all__ = ["API_TITLE", "API_VERSION", "create_app"]

"""Request and response models validated at the HTTP and CLI boundary."""
from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from .models import UserPayload

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 50
EMAIL_MAX_LENGTH = 100
ROLE_MAX_LENGTH = 30


class UserRequest(BaseModel):
    """Body accepted when creating or replacing a user.

    ``id`` and ``createdAt`` are read-only and silently dropped if supplied.
    """

    username: str = Field(
        ...,
        min_length=USERNAME_MIN_LENGTH,
        max_length=USERNAME_MAX_LENGTH,
        description="Unique username",
        examples=["john.doe"],
    )
    email: EmailStr = Field(
        ...,
        description="Unique email address",
        examples=["john.doe@example.com"],
    )
    role: str = Field(
        ...,
        min_length=1,
        max_length=ROLE_MAX_LENGTH,
        description="Role of the user in the audit system",
        examples=["AUDITOR"],
    )

    @field_validator("username", "role")
    @classmethod
    def _reject_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value

    @field_validator("email")
    @classmethod
    def _limit_email_length(cls, value: str) -> str:
        if len(value) > EMAIL_MAX_LENGTH:
            raise ValueError(f"email must be at most {EMAIL_MAX_LENGTH} characters")
        return value

    def to_payload(self) -> UserPayload:
        return UserPayload(username=self.username, email=str(self.email), role=self.role)


class UserResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int = Field(..., examples=[1])
    username: str = Field(..., examples=["john.doe"])
    email: str = Field(..., examples=["john.doe@example.com"])
    role: str = Field(..., examples=["AUDITOR"])
    created_at: datetime = Field(..., alias="createdAt")


class ErrorResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    timestamp: datetime
    status: int
    error: str
    message: str
    path: str
    validation_errors: Optional[Dict[str, str]] = Field(default=None, alias="validationErrors")


def payload_to_response(payload: UserPayload) -> UserResponse:
    return UserResponse(
        id=payload.id,
        username=payload.username,
        email=payload.email,
        role=payload.role,
        created_at=payload.created_at,
    )


__all__ = [
    "EMAIL_MAX_LENGTH",
    "ErrorResponse",
    "ROLE_MAX_LENGTH",
    "USERNAME_MAX_LENGTH",
    "USERNAME_MIN_LENGTH",
    "UserRequest",
    "UserResponse",
    "payload_to_response",
]

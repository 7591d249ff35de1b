"""Authentication-related Pydantic models."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, EmailStr, Field


class SignUpRequest(BaseModel):
    """Request model for account creation."""

    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)


class SignInRequest(BaseModel):
    """Request model for password sign-in."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


class ConfirmRequest(BaseModel):
    """Request model for email confirmation."""

    token: str


class UserResponse(BaseModel):
    """Response model for user data."""

    id: str
    email: str
    status: Literal["pending", "active", "disabled"]
    created_at: datetime


class SignUpResponse(BaseModel):
    """Response model for sign-up."""

    user: UserResponse
    confirmation_required: bool


class AuthResponse(BaseModel):
    """Response model for sign-in."""

    access_token: str
    token_type: str
    user: UserResponse

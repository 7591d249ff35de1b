"""Authentication utilities for password hashing and JWT token management."""

from __future__ import annotations

import os
from datetime import UTC, datetime, timedelta

import structlog
from bson import ObjectId
from bson.errors import InvalidId
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from opentelemetry import trace
from passlib.context import CryptContext

from .database import get_db

# Initialize logger
logger = structlog.get_logger(__name__)


# JWT Configuration
SECRET_KEY = os.getenv("JWT_SECRET_KEY", "your-secret-key-here-change-in-production")
ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
EXPIRATION_DAYS = int(os.getenv("JWT_EXPIRATION_DAYS", "30"))

security = HTTPBearer()

# pbkdf2 is implemented by passlib itself, so no native backend is required
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(plain: str) -> str:
    """Hash a plaintext password for storage."""
    return pwd_context.hash(plain)


def verify_password(plain: str, hashed: str) -> bool:
    """Check a plaintext password against a stored hash."""
    try:
        return pwd_context.verify(plain, hashed)
    except ValueError:
        logger.warning("password_hash_unrecognized")
        return False


def create_access_token(user_id: str, email: str) -> str:
    """
    Create a JWT access token for a user.

    Args:
        user_id: The user's ID
        email: The user's email

    Returns:
        Encoded JWT token
    """
    tracer = trace.get_tracer(__name__)

    with tracer.start_as_current_span("create_access_token") as span:
        span.set_attribute("user.id", user_id)

        expire = datetime.now(UTC) + timedelta(days=EXPIRATION_DAYS)
        to_encode = {
            "sub": user_id,  # Subject (user_id)
            "email": email,
            "exp": expire,
        }
        encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)

        logger.debug("jwt_token_created", user_id=user_id)

        return encoded_jwt


def decode_access_token(token: str) -> dict | None:
    """
    Decode and verify a JWT token.

    Returns:
        Decoded token payload or None if invalid
    """
    tracer = trace.get_tracer(__name__)

    with tracer.start_as_current_span("decode_access_token") as span:
        try:
            payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
            span.set_attribute("user.id", payload.get("sub") or "")
            return payload
        except JWTError as e:
            logger.warning("jwt_token_decode_failed", error=str(e), error_type=type(e).__name__)
            span.set_attribute("error", True)
            span.set_attribute("error.type", type(e).__name__)
            return None


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security)):
    """
    Dependency to get the current authenticated user.

    Validates JWT token and retrieves user from database.
    Raises 401 if token is invalid or user not found.
    """
    tracer = trace.get_tracer(__name__)

    with tracer.start_as_current_span("get_current_user") as span:
        payload = decode_access_token(credentials.credentials)
        if payload is None:
            logger.warning("auth_failed_invalid_token")
            raise _unauthorized("Invalid authentication credentials")

        user_id: str | None = payload.get("sub")
        if user_id is None:
            logger.warning("auth_failed_missing_user_id")
            raise _unauthorized("Invalid authentication credentials")

        span.set_attribute("user.id", user_id)

        db = get_db()
        try:
            user = await db.users.find_one({"_id": ObjectId(user_id)})
        except InvalidId:
            logger.warning("auth_failed_invalid_user_id", user_id=user_id)
            raise _unauthorized("Invalid user ID")

        if user is None:
            logger.warning("auth_failed_user_not_found", user_id=user_id)
            raise _unauthorized("User not found")

        if user.get("status") != "active":
            logger.warning("auth_failed_account_inactive", user_id=user_id)
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN, detail="User account is not active"
            )

        return user

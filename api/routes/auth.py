"""Authentication endpoints."""

import os
import secrets
from datetime import UTC, datetime

import structlog
from fastapi import APIRouter, Depends, HTTPException, Response
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from ..auth import create_access_token, get_current_user, hash_password, verify_password
from ..database import get_db
from ..models import (
    AuthResponse,
    ConfirmRequest,
    SignInRequest,
    SignUpRequest,
    SignUpResponse,
    UserResponse,
)
from ..observability import get_app_metrics, get_tracer

# Initialize logger
logger = structlog.get_logger(__name__)

# Get tracer and metrics
tracer = get_tracer(__name__)
metrics = get_app_metrics()

AUTO_CONFIRM = os.getenv("AUTH_AUTO_CONFIRM", "false").lower() == "true"

router = APIRouter(prefix="/auth", tags=["authentication"])


def _user_response(user: dict) -> UserResponse:
    return UserResponse(
        id=str(user["_id"]),
        email=user["email"],
        status=user["status"],
        created_at=user["created_at"],
    )


@router.post("/signup", response_model=SignUpResponse, status_code=201)
async def sign_up(request: SignUpRequest):
    """
    Create an account with email and password.

    The account stays pending until the confirmation token is redeemed at
    /auth/confirm. Delivery of the token is out of band; it is logged here.
    """
    with tracer.start_as_current_span("sign_up") as span:
        span.set_attribute("user.email", request.email)

        logger.info("user_signup_attempt", email=request.email)

        db = get_db()

        user_doc = {
            "email": request.email,
            "password_hash": hash_password(request.password),
            "created_at": datetime.now(UTC),
            "status": "active" if AUTO_CONFIRM else "pending",
        }
        if not AUTO_CONFIRM:
            user_doc["confirmation_token"] = secrets.token_urlsafe(24)

        try:
            result = await db.users.insert_one(user_doc)
        except DuplicateKeyError:
            logger.warning("signup_failed_duplicate_email", email=request.email)
            metrics.auth_failures.add(1, {"reason": "duplicate_email"})
            raise HTTPException(status_code=400, detail="Email already registered")

        user_doc["_id"] = result.inserted_id
        span.set_attribute("user.id", str(result.inserted_id))

        if not AUTO_CONFIRM:
            logger.info(
                "confirmation_token_issued",
                user_id=str(result.inserted_id),
                email=request.email,
                token=user_doc["confirmation_token"],
            )

        logger.info("user_signed_up", user_id=str(result.inserted_id), email=request.email)
        metrics.user_signups.add(1)

        return SignUpResponse(user=_user_response(user_doc), confirmation_required=not AUTO_CONFIRM)


@router.post("/confirm", response_model=UserResponse)
async def confirm_email(request: ConfirmRequest):
    """Activate a pending account."""
    with tracer.start_as_current_span("confirm_email"):
        db = get_db()

        user = await db.users.find_one_and_update(
            {"confirmation_token": request.token, "status": "pending"},
            {"$set": {"status": "active"}, "$unset": {"confirmation_token": ""}},
            return_document=ReturnDocument.AFTER,
        )
        if user is None:
            logger.warning("confirmation_failed_unknown_token")
            raise HTTPException(status_code=400, detail="Invalid or expired confirmation token")

        logger.info("user_confirmed", user_id=str(user["_id"]))
        return _user_response(user)


@router.post("/signin", response_model=AuthResponse)
async def sign_in(request: SignInRequest):
    """
    Sign in with email and password and return a JWT token.

    Unconfirmed and disabled accounts are refused with 403.
    """
    with tracer.start_as_current_span("sign_in") as span:
        span.set_attribute("user.email", request.email)

        logger.info("user_signin_attempt", email=request.email)

        db = get_db()

        user = await db.users.find_one({"email": request.email})
        if not user or not verify_password(request.password, user.get("password_hash", "")):
            logger.warning("signin_failed_invalid_credentials", email=request.email)
            metrics.auth_failures.add(1, {"reason": "invalid_credentials"})
            raise HTTPException(status_code=401, detail="Invalid login credentials")

        if user.get("status") == "pending":
            logger.warning("signin_failed_unconfirmed", email=request.email)
            metrics.auth_failures.add(1, {"reason": "unconfirmed"})
            raise HTTPException(status_code=403, detail="Email not confirmed")

        if user.get("status") != "active":
            logger.warning("signin_failed_account_disabled", email=request.email)
            metrics.auth_failures.add(1, {"reason": "account_disabled"})
            raise HTTPException(status_code=403, detail="User account is disabled")

        user_id = str(user["_id"])
        span.set_attribute("user.id", user_id)

        access_token = create_access_token(user_id=user_id, email=user["email"])

        logger.info("user_signed_in", user_id=user_id, email=request.email)
        metrics.user_signins.add(1)

        return AuthResponse(
            access_token=access_token, token_type="bearer", user=_user_response(user)
        )


@router.get("/session", response_model=UserResponse)
async def get_session(current_user: dict = Depends(get_current_user)):
    """Return the user behind a still-valid bearer token."""
    return _user_response(current_user)


@router.post("/signout", status_code=204)
async def sign_out(current_user: dict = Depends(get_current_user)):
    """
    Acknowledge a sign-out.

    Tokens are stateless, so the client discarding its token ends the session.
    """
    logger.info("user_signed_out", user_id=str(current_user["_id"]))
    return Response(status_code=204)

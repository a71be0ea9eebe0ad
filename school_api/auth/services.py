import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import status
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from school_api.auth.models import RefreshToken, User
from school_api.auth.schemas import (
    CurrentUser,
    LoginRequest,
    LoginResponse,
    RefreshRequest,
    RegisterRequest,
    TokenResponse,
    UserInfo,
    UserResponse,
)
from school_api.auth.security import (
    access_token_claims,
    create_access_token,
    create_refresh_token,
    hash_password,
    verify_password,
)
from school_api.core.exceptions import ServiceError
from school_api.core.models import School

logger = logging.getLogger(__name__)


async def _email_taken(db: AsyncSession, email: str) -> bool:
    stmt = select(User.id).where(func.lower(User.email) == func.lower(email))
    result = await db.execute(stmt)
    return result.first() is not None


async def register_user(db: AsyncSession, payload: RegisterRequest) -> UserResponse:
    if await _email_taken(db, payload.email):
        raise ServiceError("User with this email already exists", status.HTTP_409_CONFLICT)

    if payload.school_id is not None and not await db.get(School, payload.school_id):
        raise ServiceError("School not found", status.HTTP_404_NOT_FOUND)

    user = User(
        first_name=payload.first_name,
        last_name=payload.last_name,
        email=payload.email.lower(),
        password_hash=hash_password(payload.password),
        role=payload.role.value,
        school_id=payload.school_id,
        phone_number=payload.phone_number,
        is_active=True,
    )
    db.add(user)
    try:
        await db.commit()
        await db.refresh(user)
    except IntegrityError as e:
        await db.rollback()
        raise ServiceError("User with this email already exists", status.HTTP_409_CONFLICT) from e

    logger.info("Registered %s user %s", user.role, user.id)
    return UserResponse.model_validate(user)


async def login_user(db: AsyncSession, payload: LoginRequest) -> LoginResponse:
    # 1. Find user by email (case-insensitive)
    user_stmt = select(User).where(func.lower(User.email) == func.lower(payload.email))
    user_result = await db.execute(user_stmt)
    user: Optional[User] = user_result.scalar_one_or_none()
    if not user:
        raise ServiceError("Invalid credentials", status.HTTP_401_UNAUTHORIZED)

    # 2. Verify password hash
    if not verify_password(payload.password, user.password_hash):
        raise ServiceError("Invalid credentials", status.HTTP_401_UNAUTHORIZED)

    # 3. Check user status
    if not user.is_active:
        raise ServiceError("User is inactive", status.HTTP_403_FORBIDDEN)

    issued_at = datetime.now(timezone.utc)
    access_payload = access_token_claims(user)
    access_payload["iat"] = int(issued_at.timestamp())
    access_token = create_access_token(subject=access_payload)

    # 4. Generate and store refresh token
    refresh_token_str, refresh_expires_at = create_refresh_token()
    db.add(
        RefreshToken(
            user_id=user.id,
            token=refresh_token_str,
            expires_at=refresh_expires_at,
        )
    )
    user.last_login_at = issued_at
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise ServiceError(
            "Failed to persist authentication state",
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        ) from e

    logger.info("User %s logged in", user.id)
    return LoginResponse(
        access_token=access_token,
        refresh_token=refresh_token_str,
        user=UserInfo(
            id=user.id,
            name=user.full_name,
            email=user.email,
            role=user.role,
            school_id=user.school_id,
        ),
        issued_at=issued_at,
    )


async def refresh_access_token(db: AsyncSession, payload: RefreshRequest) -> TokenResponse:
    """Exchange a stored, unexpired refresh token for a new access token."""
    stmt = select(RefreshToken).where(
        RefreshToken.token == payload.refresh_token,
        RefreshToken.expires_at > datetime.now(timezone.utc),
    )
    result = await db.execute(stmt)
    stored = result.scalar_one_or_none()
    if not stored:
        raise ServiceError("Invalid or expired refresh token", status.HTTP_401_UNAUTHORIZED)

    user = await db.get(User, stored.user_id)
    if not user or not user.is_active:
        raise ServiceError("Invalid or expired refresh token", status.HTTP_401_UNAUTHORIZED)

    return TokenResponse(access_token=create_access_token(subject=access_token_claims(user)))


async def get_profile(db: AsyncSession, current_user: CurrentUser) -> UserResponse:
    user = await db.get(User, current_user.id)
    if not user:
        raise ServiceError("User not found", status.HTTP_404_NOT_FOUND)
    return UserResponse.model_validate(user)

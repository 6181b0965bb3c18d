"""
Authentication endpoints for login, registration, token refresh, and user management.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from nibret.core.database import get_db
from nibret.core.rate_limiter import public_write_limit
from nibret.core.security import (
    CurrentUser,
    UserRole,
    create_access_token,
    create_refresh_token,
    decode_token,
    get_current_user,
    hash_password,
    require_role,
    verify_password,
)
from nibret.models.activity import ActivityType
from nibret.models.auth import User
from nibret.schemas.lead import PHONE_PATTERN
from nibret.services.activity_ledger import record_activity

router = APIRouter()


# Request/Response Models
class LoginRequest(BaseModel):
    """Login credentials."""

    email: EmailStr
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class TokenResponse(BaseModel):
    """Token response with access and refresh tokens."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class RegisterRequest(BaseModel):
    """Self-service registration; always yields a customer account."""

    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    email: EmailStr
    phone: str = Field(..., min_length=5, max_length=50, pattern=PHONE_PATTERN)
    password: str = Field(..., min_length=8, max_length=128)


class UserCreate(RegisterRequest):
    """User creation request (Admin only)."""

    role: str = UserRole.AGENT


class UserResponse(BaseModel):
    """User response model."""

    id: UUID
    first_name: str
    last_name: str
    email: str
    phone: str
    role: str
    is_active: bool
    login_count: int
    created_at: Optional[datetime]
    last_login_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


def _tokens(user: User) -> dict:
    token_data = {
        "sub": str(user.id),
        "role": user.role,
        "name": user.full_name,
        "email": user.email,
    }
    return {
        "access_token": create_access_token(token_data),
        "refresh_token": create_refresh_token(token_data),
        "token_type": "bearer",
    }


def _as_actor(user: User) -> CurrentUser:
    return CurrentUser(id=user.id, role=user.role, name=user.full_name, email=user.email)


async def _find_by_email(db: AsyncSession, email: str) -> Optional[User]:
    result = await db.execute(select(User).where(func.lower(User.email) == email.lower()))
    return result.scalar_one_or_none()


# Auth Endpoints
@router.post("/login", response_model=TokenResponse)
async def login(
    credentials: LoginRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Authenticate user and return JWT tokens.

    Returns access token (30 min expiry) and refresh token (7 day expiry).
    """
    user = await _find_by_email(db, credentials.email)

    if not user or not user.is_active or not verify_password(credentials.password, user.hashed_password):
        record_activity(
            ActivityType.LOGIN.value,
            action="login_failed",
            metadata={"success": False},
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user.last_login_at = datetime.now(timezone.utc)
    user.login_count = (user.login_count or 0) + 1
    await db.commit()

    record_activity(
        ActivityType.LOGIN.value,
        action="login",
        actor=_as_actor(user),
        metadata={"success": True},
    )
    return _tokens(user)


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
@public_write_limit
async def register(
    request: Request,
    payload: RegisterRequest,
    db: AsyncSession = Depends(get_db),
):
    if await _find_by_email(db, payload.email):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email already registered",
        )

    user = User(
        first_name=payload.first_name,
        last_name=payload.last_name,
        email=payload.email.lower(),
        phone=payload.phone,
        hashed_password=hash_password(payload.password),
        role=UserRole.CUSTOMER,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)

    record_activity(
        ActivityType.REGISTER.value,
        action="register",
        actor=_as_actor(user),
        metadata={"success": True},
    )
    return _tokens(user)


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(
    payload: RefreshRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Exchange a refresh token for new access and refresh tokens.

    This allows clients to obtain new tokens without re-authentication.
    """
    claims = decode_token(payload.refresh_token)
    if claims.get("type") != "refresh" or not claims.get("sub"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid refresh token",
        )

    try:
        user_id = UUID(str(claims["sub"]))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid refresh token",
        )

    # Verify user still exists and is active
    user = await db.get(User, user_id)
    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )

    return _tokens(user)


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Get current authenticated user information.

    Requires valid access token.
    """
    user = await db.get(User, current_user.id)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )
    return user


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(current_user: CurrentUser = Depends(get_current_user)):
    """Tokens are stateless; this only records the event."""
    record_activity(ActivityType.LOGOUT.value, action="logout", actor=current_user)


# Admin-only User Management Endpoints
@router.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    user_data: UserCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_role(*UserRole.ADMINS)),
):
    """
    Create a staff or customer account (Admin only).

    Only a super administrator may create another administrator.
    """
    if user_data.role not in UserRole.ALL_ROLES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid role. Must be one of: {UserRole.ALL_ROLES}",
        )
    if user_data.role in UserRole.ADMINS and current_user.role != UserRole.SUPER_ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only a super administrator can create administrators",
        )
    if await _find_by_email(db, user_data.email):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email already registered",
        )

    new_user = User(
        first_name=user_data.first_name,
        last_name=user_data.last_name,
        email=user_data.email.lower(),
        phone=user_data.phone,
        hashed_password=hash_password(user_data.password),
        role=user_data.role,
    )
    db.add(new_user)
    await db.commit()
    await db.refresh(new_user)
    return new_user


@router.get("/users", response_model=list[UserResponse])
async def list_users(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_role(*UserRole.ADMINS)),
):
    """
    List all users (Admin only).
    """
    result = await db.execute(select(User).order_by(User.created_at.desc()))
    return result.scalars().all()

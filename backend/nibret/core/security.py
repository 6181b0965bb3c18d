"""
Authentication and security utilities using JWT.

Token issuance and verification live at the boundary; services only ever see
the resulting ``CurrentUser``.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from passlib.context import CryptContext
from pydantic import BaseModel

from nibret.core.config import settings

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# JWT bearer token schemes
security_scheme = HTTPBearer()
optional_security_scheme = HTTPBearer(auto_error=False)

# JWT configuration
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 30
REFRESH_TOKEN_EXPIRE_DAYS = 7


class UserRole:
    """User roles for RBAC."""

    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    AGENT = "agent"
    CUSTOMER = "customer"

    ALL_ROLES = [SUPER_ADMIN, ADMIN, AGENT, CUSTOMER]
    ADMINS = (SUPER_ADMIN, ADMIN)
    STAFF = (SUPER_ADMIN, ADMIN, AGENT)


class CurrentUser(BaseModel):
    """Authenticated caller as seen by the services."""

    id: UUID
    role: str
    name: str = ""
    email: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role in UserRole.ADMINS

    @property
    def is_staff(self) -> bool:
        return self.role in UserRole.STAFF


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash."""
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token.

    Args:
        data: Dictionary of claims to encode in the token
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string
    """
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=ALGORITHM)


def create_refresh_token(data: dict) -> str:
    """Create a JWT refresh token with longer expiration."""
    expires_delta = timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS)
    return create_access_token({**data, "type": "refresh"}, expires_delta)


def decode_token(token: str) -> dict:
    """
    Decode and verify a JWT token.

    Raises:
        HTTPException: If token is invalid or expired
    """
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )


def _user_from_payload(payload: dict) -> CurrentUser:
    user_id = payload.get("sub")
    role = payload.get("role")

    if user_id is None or role is None or payload.get("type") == "refresh":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return CurrentUser(
            id=UUID(str(user_id)),
            role=role,
            name=payload.get("name", ""),
            email=payload.get("email"),
        )
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security_scheme),
) -> CurrentUser:
    """Dependency to extract and validate the current user from JWT token."""
    return _user_from_payload(decode_token(credentials.credentials))


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_security_scheme),
) -> Optional[CurrentUser]:
    """Like ``get_current_user`` but anonymous callers resolve to ``None``."""
    if credentials is None:
        return None
    return _user_from_payload(decode_token(credentials.credentials))


def require_role(*allowed_roles: str):
    """
    Dependency factory for role-based access control.

    Example:
        @router.get("/admin-only")
        async def admin_endpoint(user: CurrentUser = Depends(require_role(*UserRole.ADMINS))):
            ...
    """
    async def role_checker(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Insufficient permissions. Required roles: {allowed_roles}",
            )
        return user

    return role_checker

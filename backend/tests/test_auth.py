"""
Tests for JWT authentication and role-based authorization.
"""

import uuid
from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi import HTTPException

from nibret.core.config import settings
from nibret.core.security import (
    ALGORITHM,
    CurrentUser,
    UserRole,
    create_access_token,
    create_refresh_token,
    decode_token,
    get_current_user,
    get_optional_user,
    hash_password,
    require_role,
    verify_password,
)


class _Credentials:
    def __init__(self, token: str):
        self.credentials = token


class TestPasswordHashing:
    def test_hash_and_verify(self):
        hashed = hash_password("secure_password123")

        assert hashed != "secure_password123"
        assert verify_password("secure_password123", hashed)
        assert not verify_password("wrong_password", hashed)


class TestJWTTokens:
    def test_access_token_claims_and_expiry(self):
        token = create_access_token({"sub": "abc", "role": UserRole.AGENT})

        decoded = jwt.decode(token, options={"verify_signature": False})
        exp = datetime.fromtimestamp(decoded["exp"], tz=timezone.utc)

        assert decoded["sub"] == "abc"
        assert decoded["role"] == "agent"
        assert timedelta(minutes=29) < exp - datetime.now(timezone.utc) < timedelta(minutes=31)

    def test_refresh_token_is_marked_and_long_lived(self):
        token = create_refresh_token({"sub": "abc", "role": UserRole.CUSTOMER})

        decoded = jwt.decode(token, options={"verify_signature": False})
        exp = datetime.fromtimestamp(decoded["exp"], tz=timezone.utc)

        assert decoded["type"] == "refresh"
        assert timedelta(days=6, hours=23) < exp - datetime.now(timezone.utc) < timedelta(days=7, hours=1)

    def test_expired_token_rejected(self):
        token = create_access_token({"sub": "abc", "role": "admin"}, expires_delta=timedelta(hours=-1))

        with pytest.raises(HTTPException) as exc:
            decode_token(token)

        assert exc.value.status_code == 401
        assert "Token has expired" in exc.value.detail

    def test_wrong_secret_rejected(self):
        token = jwt.encode(
            {"sub": "abc", "role": "admin", "exp": datetime.now(timezone.utc) + timedelta(minutes=5)},
            "wrong_secret_key",
            algorithm=ALGORITHM,
        )

        with pytest.raises(HTTPException) as exc:
            decode_token(token)
        assert exc.value.status_code == 401


class TestCurrentUser:
    @pytest.mark.asyncio
    async def test_token_resolves_to_current_user(self):
        user_id = uuid.uuid4()
        token = create_access_token(
            {"sub": str(user_id), "role": UserRole.ADMIN, "name": "Meron", "email": "m@nibret.com"}
        )

        user = await get_current_user(credentials=_Credentials(token))

        assert user.id == user_id
        assert user.role == "admin"
        assert user.name == "Meron"
        assert user.is_admin and user.is_staff

    @pytest.mark.asyncio
    async def test_non_uuid_subject_rejected(self):
        token = create_access_token({"sub": "testuser", "role": "admin"})

        with pytest.raises(HTTPException) as exc:
            await get_current_user(credentials=_Credentials(token))
        assert exc.value.detail == "Invalid token payload"

    @pytest.mark.asyncio
    async def test_refresh_token_is_not_an_access_token(self):
        token = create_refresh_token({"sub": str(uuid.uuid4()), "role": UserRole.ADMIN})

        with pytest.raises(HTTPException) as exc:
            await get_current_user(credentials=_Credentials(token))
        assert exc.value.status_code == 401
        assert exc.value.detail == "Invalid token payload"

    @pytest.mark.asyncio
    async def test_missing_role_rejected(self):
        token = jwt.encode(
            {"sub": str(uuid.uuid4()), "exp": datetime.now(timezone.utc) + timedelta(minutes=5)},
            settings.SECRET_KEY,
            algorithm=ALGORITHM,
        )
        with pytest.raises(HTTPException) as exc:
            await get_current_user(credentials=_Credentials(token))
        assert exc.value.status_code == 401

    @pytest.mark.asyncio
    async def test_optional_user_is_none_without_credentials(self):
        assert await get_optional_user(credentials=None) is None


class TestRoleBasedAccessControl:
    @pytest.mark.parametrize(
        "role, admin, staff",
        [
            (UserRole.SUPER_ADMIN, True, True),
            (UserRole.ADMIN, True, True),
            (UserRole.AGENT, False, True),
            (UserRole.CUSTOMER, False, False),
        ],
    )
    def test_role_flags(self, make_user, role, admin, staff):
        user = make_user(role)
        assert user.is_admin is admin
        assert user.is_staff is staff

    @pytest.mark.asyncio
    async def test_require_role_allows_listed_roles(self, make_user):
        checker = require_role(*UserRole.STAFF)
        agent = make_user(UserRole.AGENT)

        assert await checker(user=agent) is agent

    @pytest.mark.asyncio
    async def test_require_role_denies_others(self, make_user):
        checker = require_role(*UserRole.ADMINS)

        with pytest.raises(HTTPException) as exc:
            await checker(user=make_user(UserRole.AGENT))

        assert exc.value.status_code == 403
        assert "Insufficient permissions" in exc.value.detail


def test_current_user_is_plain_data():
    user = CurrentUser(id=uuid.uuid4(), role=UserRole.CUSTOMER)
    assert user.name == ""
    assert user.email is None

"""Tests for deployment-time administrator provisioning."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from nibret.bootstrap import ProvisioningError, provision_admin
from nibret.core.security import UserRole


def _lookup(existing=None) -> MagicMock:
    result = MagicMock()
    result.scalar_one_or_none.return_value = existing
    return result


@pytest.mark.asyncio
async def test_provision_admin_creates_super_admin():
    session = AsyncMock()
    session.add = MagicMock()
    session.execute.return_value = _lookup()

    with patch("nibret.bootstrap.hash_password", return_value="hashed") as hasher:
        admin, created = await provision_admin(
            session=session, email="Owner@Nibret.com", password="s3cret-pass"
        )

    assert created is True
    hasher.assert_called_once_with("s3cret-pass")
    session.add.assert_called_once_with(admin)
    session.commit.assert_awaited_once()
    assert admin.email == "owner@nibret.com"
    assert admin.role == UserRole.SUPER_ADMIN
    assert admin.hashed_password == "hashed"
    assert admin.is_active is True


@pytest.mark.asyncio
async def test_provision_admin_skips_existing_account():
    existing = object()
    session = AsyncMock()
    session.add = MagicMock()
    session.execute.return_value = _lookup(existing)

    admin, created = await provision_admin(
        session=session, email="owner@nibret.com", password="s3cret-pass"
    )

    assert admin is existing
    assert created is False
    session.add.assert_not_called()
    session.commit.assert_not_awaited()


@pytest.mark.asyncio
async def test_provision_admin_uses_temporary_session():
    session = AsyncMock()
    session.add = MagicMock()
    session.execute.return_value = _lookup(object())

    with patch("nibret.bootstrap.AsyncSessionLocal") as factory:
        factory.return_value.__aenter__.return_value = session
        _, created = await provision_admin(email="owner@nibret.com", password="s3cret-pass")

    assert created is False
    factory.assert_called_once()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "email, password",
    [("", "s3cret-pass"), ("owner@nibret.com", ""), ("owner@nibret.com", "short")],
)
async def test_provision_admin_requires_usable_settings(email, password, monkeypatch):
    monkeypatch.setattr("nibret.bootstrap.settings.ADMIN_EMAIL", "")
    monkeypatch.setattr("nibret.bootstrap.settings.ADMIN_PASSWORD", "")

    with pytest.raises(ProvisioningError):
        await provision_admin(session=AsyncMock(), email=email, password=password)

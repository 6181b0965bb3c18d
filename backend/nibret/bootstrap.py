"""
Deployment-time provisioning (run once, never on the request path).
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from nibret.core.config import settings
from nibret.core.database import AsyncSessionLocal
from nibret.core.security import UserRole, hash_password
from nibret.models.auth import User

logger = logging.getLogger(__name__)


class ProvisioningError(RuntimeError):
    """Provisioning settings are missing or unusable."""


async def _ensure_admin(
    session: AsyncSession,
    email: str,
    password: str,
    phone: str,
    first_name: str,
    last_name: str,
) -> tuple[User, bool]:
    stmt = select(User).where(func.lower(User.email) == email.lower())
    result = await session.execute(stmt)
    existing = result.scalar_one_or_none()
    if existing is not None:
        logger.info("Administrator %s already provisioned", email)
        return existing, False

    admin = User(
        first_name=first_name,
        last_name=last_name,
        email=email.lower(),
        phone=phone,
        hashed_password=hash_password(password),
        role=UserRole.SUPER_ADMIN,
        is_active=True,
    )
    session.add(admin)
    await session.commit()
    await session.refresh(admin)
    logger.info("Provisioned super administrator %s", admin.email)
    return admin, True


async def provision_admin(
    session: AsyncSession | None = None,
    email: Optional[str] = None,
    password: Optional[str] = None,
) -> tuple[User, bool]:
    """
    Ensure the super administrator exists.

    Idempotent: an existing account with the configured email is left untouched
    (its password is not reset). Returns the user and whether it was created.
    If a session is not provided, a temporary AsyncSession will be created.
    """
    email = (email or settings.ADMIN_EMAIL).strip()
    password = password or settings.ADMIN_PASSWORD
    if not email or not password:
        raise ProvisioningError("ADMIN_EMAIL and ADMIN_PASSWORD must be set")
    if len(password) < 8:
        raise ProvisioningError("ADMIN_PASSWORD must be at least 8 characters")

    details = dict(
        email=email,
        password=password,
        phone=settings.ADMIN_PHONE,
        first_name=settings.ADMIN_FIRST_NAME,
        last_name=settings.ADMIN_LAST_NAME,
    )
    if session is None:
        async with AsyncSessionLocal() as temp_session:
            return await _ensure_admin(temp_session, **details)
    return await _ensure_admin(session, **details)

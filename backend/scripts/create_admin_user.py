"""
Provision the Nibret super administrator.

Usage:
    python scripts/create_admin_user.py

Environment Variables Required:
    DATABASE_URL - PostgreSQL connection string
    REDIS_URL - Redis connection string
    SECRET_KEY - Application secret key
    ADMIN_EMAIL / ADMIN_PASSWORD - administrator credentials
    ADMIN_PHONE, ADMIN_FIRST_NAME, ADMIN_LAST_NAME - optional profile fields

Safe to run on every deployment: an existing administrator is left as is.
"""

import asyncio
import sys

from nibret.bootstrap import ProvisioningError, provision_admin
from nibret.core.logging import setup_logging


async def main() -> int:
    setup_logging()
    try:
        admin, created = await provision_admin()
    except ProvisioningError as e:
        print(f"Error: {e}")
        return 1

    state = "created" if created else "already exists"
    print(f"Administrator {admin.email} {state} (role={admin.role}, id={admin.id})")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))

#!/usr/bin/env python3
"""
Quick script to create a store admin with an allocated subdomain.

Usage:
    python create_admin.py <first_name> <last_name> <email> <password> [store_name]

Example:
    python create_admin.py John Doe john@example.com s3cret-pass "John's Store"
"""

import asyncio
import sys

from storefront.core.config import get_settings
from storefront.core.db import create_engine, create_sessionmaker
from storefront.subdomains import AdminEmailTakenError, InvalidSubdomainError, create_admin_account


async def create_admin(first_name: str, last_name: str, email: str, password: str, store_name: str | None):
    settings = get_settings()
    engine = create_engine(settings)
    session_maker = create_sessionmaker(engine)

    try:
        async with session_maker() as session:
            try:
                admin = await create_admin_account(
                    session,
                    first_name=first_name,
                    last_name=last_name,
                    email=email,
                    password=password,
                    store_name=store_name,
                    retries=settings.subdomain_allocation_retries,
                )
            except (AdminEmailTakenError, InvalidSubdomainError) as e:
                print(f"❌ {e}")
                return None

        print(f"✅ Created admin {admin.email} (ID: {admin.id})")
        print(f"   Store: https://{admin.subdomain}.{settings.platform_domain}")
        return admin
    finally:
        await engine.dispose()


async def main():
    if len(sys.argv) not in (5, 6):
        print(__doc__)
        sys.exit(1)

    first_name, last_name, email, password = sys.argv[1:5]
    store_name = sys.argv[5] if len(sys.argv) == 6 else None

    admin = await create_admin(first_name, last_name, email, password, store_name)
    if admin is None:
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())

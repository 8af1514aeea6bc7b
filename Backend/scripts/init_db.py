#!/usr/bin/env python3
"""
Initialize the database schema using SQLAlchemy models.

Safe to run multiple times (idempotent).

Usage:
    export DATABASE_URL="postgresql+asyncpg://localhost:5432/storefront"
    python3 Backend/scripts/init_db.py
"""
import asyncio

from storefront.core.config import get_settings
from storefront.core.db import Base, create_engine
from storefront import models  # noqa: F401  registers tables on Base.metadata


async def init_db():
    settings = get_settings()
    print("🔧 Initializing database...")

    engine = create_engine(settings)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    finally:
        await engine.dispose()

    print("✅ Database schema initialized successfully!")
    print("\n📋 Tables:")
    for table in Base.metadata.sorted_tables:
        print(f"   - {table.name}")


if __name__ == "__main__":
    asyncio.run(init_db())

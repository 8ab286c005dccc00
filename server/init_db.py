"""
Database Initialization Script - server/init_db.py

Creates the accounts, templates and messages tables.
With --drop, drops them first. WARNING: that DELETES ALL DATA.

Usage:
    python -m server.init_db [--drop] [--force]
"""

import asyncio
import sys

from server.core.config import settings
from server.core.db import create_db_engine_and_session_factory

# Import Base and ALL models to register them with Base.metadata
from server.models import Account, Base, Message, Template  # noqa


async def init_db(drop_all: bool = False):
    """Initialize database - optionally drop the tables, then create them."""

    if not settings.DATABASE_URL:
        print("❌ ERROR: DATABASE_URL is not set!")
        sys.exit(1)

    print("=" * 60)
    print("DATABASE INITIALIZATION")
    print(f"Database URL: {settings.DATABASE_URL[:50]}...")
    print("=" * 60)

    engine, _ = create_db_engine_and_session_factory(settings.DATABASE_URL)

    async with engine.begin() as conn:
        if drop_all:
            print("⚠️  Dropping all existing tables...")
            await conn.run_sync(Base.metadata.drop_all)
            print("✅ All tables dropped successfully!\n")

        print("📦 Creating tables...")

        # Create all tables from models
        await conn.run_sync(Base.metadata.create_all)

        print("✅ All tables created successfully!")

    await engine.dispose()

    print("\n" + "=" * 60)
    print("DATABASE INITIALIZATION COMPLETE")
    print("=" * 60)

    # List created tables
    print("\n📋 Tables created:")
    for table_name in Base.metadata.tables.keys():
        print(f"   • {table_name}")
    print(f"\nTotal: {len(Base.metadata.tables)} tables")


async def confirm_and_init():
    """Confirm before dropping tables."""
    if "--drop" not in sys.argv:
        await init_db(drop_all=False)
        return

    print("\n⚠️  " + "=" * 56)
    print("⚠️  WARNING: THIS WILL DELETE ALL DATA IN THE DATABASE!")
    print("⚠️  " + "=" * 56 + "\n")

    # Skip confirmation if --force flag is passed
    if "--force" in sys.argv or "-f" in sys.argv:
        print("Force flag detected. Proceeding without confirmation...")
        await init_db(drop_all=True)
        return

    response = input("Are you sure you want to continue? (yes/no): ").strip().lower()

    if response in ("yes", "y"):
        await init_db(drop_all=True)
    else:
        print("❌ Cancelled. No changes were made.")


if __name__ == "__main__":
    asyncio.run(confirm_and_init())

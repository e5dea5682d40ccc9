#!/usr/bin/env python3
"""
Database setup script for the session store.

Creates the sessions table for the configured database (SESSION_STORE_*
environment variables or .env) and removes rows that have already expired.
"""

import asyncio
import sys

from sessionstore.core.config import StoreSettings
from sessionstore.core.logging_config import setup_logging
from sessionstore.core.session_store import SqlSessionStore


async def setup(settings: StoreSettings) -> bool:
    """Create the sessions table and sweep expired rows"""
    store = SqlSessionStore(settings)
    try:
        print(f"Session table: {store.statements.table_identifier} ({store.statements.dialect_name})")
        print("\n🔧 Creating session table...")
        await store.create_table()

        removed = await store.sweep_expired()
        total = await store.length()
        print("✅ Session table ready")
        print(f"Expired sessions removed: {removed}")
        print(f"Stored sessions: {total if total is not None else 'unknown'}")
        return True

    except Exception as e:
        print(f"❌ Session table setup failed: {e}")
        return False

    finally:
        await store.close()


def main() -> bool:
    """Initialize the session table based on configuration"""
    print("🗄️  Session Store Database Setup")
    print("=" * 40)

    settings = StoreSettings()
    setup_logging(settings.log_level, settings.structured_logging)
    return asyncio.run(setup(settings))


if __name__ == "__main__":
    success = main()
    sys.exit(0 if success else 1)

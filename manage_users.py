#!/usr/bin/env python3
"""
User Management Utility

This script provides utilities to manage catalogue users:
- Create an admin account (bootstraps an empty deployment)
- List all users
- Show catalogue statistics
"""

import asyncio
import sys
from datetime import datetime
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from api.auth import token_issuer
from catalog.database import CatalogDatabase
from catalog.errors import CatalogError
from catalog.models import Role
from catalog.users import UserService
from utilities.config import config
from utilities.logger import setup_logging


def _database() -> CatalogDatabase:
    return CatalogDatabase(
        connection_url=config.mongodb_url,
        database_name=config.mongodb_database,
        authors_collection=config.authors_collection,
        books_collection=config.books_collection,
        users_collection=config.users_collection
    )


async def create_admin(username: str, email: str, password: str) -> bool:
    """Create an admin user directly in the store."""
    print("\n👤 CREATING ADMIN USER")
    print("="*80)

    database = _database()
    try:
        await database.connect()
        service = UserService(database.users, token_issuer, bcrypt_rounds=config.bcrypt_rounds)

        user = await service.register_user({
            "username": username,
            "email": email,
            "age": 0,
            "role": Role.ADMIN.value,
            "password": password,
            "created_at": datetime.utcnow(),
        })

        print("✅ ADMIN CREATED:")
        print(f"   ID: {user['id']}")
        print(f"   Username: {user['username']}")
        print(f"   Email: {user['email']}")
        return True

    except CatalogError as e:
        print(f"❌ Could not create admin: {e.message}")
        return False
    finally:
        await database.disconnect()


async def list_all_users() -> bool:
    """List all users in the database."""
    print("\n" + "="*80)
    print("📋 ALL USERS")
    print("="*80)

    database = _database()
    try:
        await database.connect()
        service = UserService(database.users, token_issuer, bcrypt_rounds=config.bcrypt_rounds)

        users = await service.list_users()

        if not users:
            print("❌ No users found in database")
            return True

        print(f"✅ Found {len(users)} users:")
        print()

        for i, user in enumerate(users, 1):
            print(f"{i:3d}. {user['username']} ({user.get('role')})")
            print(f"     ID: {user['id']}")
            print(f"     Email: {user.get('email')}")
            print(f"     Created: {user.get('created_at')}")
            print()
        return True

    finally:
        await database.disconnect()


async def show_statistics() -> bool:
    """Show document counts for every collection."""
    print("\n📊 CATALOGUE STATISTICS")
    print("="*80)

    database = _database()
    try:
        await database.connect()
        health = await database.health_check()

        if health.get("status") != "healthy":
            print(f"❌ Database unhealthy: {health.get('error')}")
            return False

        print(f"📚 Books: {health.get('books_count', 0)}")
        print(f"✍️  Authors: {health.get('authors_count', 0)}")
        print(f"👤 Users: {health.get('users_count', 0)}")
        return True

    finally:
        await database.disconnect()


async def main():
    """Main function."""
    if len(sys.argv) < 2:
        print("Usage: python manage_users.py [create-admin|list|stats] [args]")
        print()
        print("Commands:")
        print("  create-admin  - Create an admin user")
        print("  list          - List all users")
        print("  stats         - Show catalogue statistics")
        print()
        print("Examples:")
        print("  python manage_users.py create-admin alice alice@example.com s3cret!")
        print("  python manage_users.py list")
        print("  python manage_users.py stats")
        sys.exit(1)

    command = sys.argv[1].lower()

    # Setup logging
    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.get_log_file_path(),
        debug=config.debug
    )

    if command == "create-admin":
        if len(sys.argv) < 5:
            print("❌ Error: username, email and password required for create-admin")
            print("Usage: python manage_users.py create-admin <username> <email> <password>")
            sys.exit(1)
        ok = await create_admin(sys.argv[2], sys.argv[3], sys.argv[4])
    elif command == "list":
        ok = await list_all_users()
    elif command == "stats":
        ok = await show_statistics()
    else:
        print(f"❌ Unknown command: {command}")
        print("Available commands: create-admin, list, stats")
        sys.exit(1)

    if not ok:
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())

"""
Create (or reset the password of) an admin account.

    python scripts/create_admin.py admin@example.com 's3cret-pass'
"""
import argparse
import asyncio
import sys
import os

# Add the project root directory to the Python path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from sqlalchemy import select

from app.models.db_models import Admin
from app.services.auth_service import hash_password
from app.services.auto_migration import run_auto_migration
from app.services.db_service import AsyncSessionLocal, engine
from app.utils.structured_logging import configure_logging
import logging

logger = logging.getLogger(__name__)


async def upsert_admin(session, email: str, password: str) -> str:
    email = email.strip().lower()
    result = await session.execute(select(Admin).where(Admin.email == email))
    admin = result.scalar_one_or_none()
    if admin:
        admin.password = hash_password(password)
        action = "updated"
    else:
        session.add(Admin(email=email, password=hash_password(password)))
        action = "created"
    await session.commit()
    return action


async def main(argv=None) -> int:
    configure_logging()
    parser = argparse.ArgumentParser(description="Create or update an admin account")
    parser.add_argument("email")
    parser.add_argument("password")
    args = parser.parse_args(argv)

    if len(args.password) < 8:
        logger.error("Admin passwords must be at least 8 characters")
        return 1

    await run_auto_migration()
    async with AsyncSessionLocal() as session:
        action = await upsert_admin(session, args.email, args.password)
    await engine.dispose()
    logger.info(f"Admin {args.email} {action}")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))

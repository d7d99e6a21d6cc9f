"""
Seed script to create the first admin user.

Run once (after schema_check) with env set:
  ADMIN_EMAIL=admin@school.example
  ADMIN_PASSWORD=YourSecurePassword

An existing account with that email is promoted to admin and its password reset.
"""
import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from schoolhub.auth.security import hash_password
from schoolhub.auth.services import create_user, get_user_by_email
from schoolhub.core.config import settings
from schoolhub.core.enums import UserRole
from schoolhub.db.session import AsyncSessionLocal

logger = logging.getLogger(__name__)


async def seed_admin(db: AsyncSession, email: str, password: str) -> None:
    user = await get_user_by_email(db, email)
    if not user:
        await create_user(db, email, password, UserRole.ADMIN.value)
        logger.info("Created admin user: %s", email)
    else:
        user.role = UserRole.ADMIN.value
        user.password_hash = hash_password(password)
        user.is_active = True
        logger.info("Updated existing user to admin: %s", email)
    await db.commit()


async def main() -> None:
    logging.basicConfig(level=logging.INFO)
    if not settings.admin_email or not settings.admin_password:
        raise SystemExit("ADMIN_EMAIL and ADMIN_PASSWORD must be set")
    async with AsyncSessionLocal() as db:
        try:
            await seed_admin(db, settings.admin_email, settings.admin_password)
        except Exception:
            await db.rollback()
            logger.exception("Admin seed failed")
            raise


if __name__ == "__main__":
    asyncio.run(main())

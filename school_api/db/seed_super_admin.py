"""
Seed script for the first SUPER_ADMIN user.

Run once after the tables exist, with env set:
  SUPER_ADMIN_EMAIL=admin@example.com
  SUPER_ADMIN_PASSWORD=YourSecurePassword

Usage: python -m school_api.db.seed_super_admin
"""
import asyncio
import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from school_api.auth.models import User
from school_api.auth.security import hash_password
from school_api.core.config import settings
from school_api.core.enums import UserRole
from school_api.core.models import School  # noqa: F401  (registers the schools table for FKs)
from school_api.db.session import AsyncSessionLocal, Base, engine

logger = logging.getLogger(__name__)


async def create_tables() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def seed_super_admin(db: AsyncSession) -> bool:
    """Create or promote the configured super admin. Returns False when nothing is configured."""
    email = settings.super_admin_email
    password = settings.super_admin_password
    if not email or not password:
        logger.warning("SUPER_ADMIN_EMAIL / SUPER_ADMIN_PASSWORD not set; skipping super admin seed")
        return False

    result = await db.execute(select(User).where(func.lower(User.email) == email.lower()))
    user = result.scalar_one_or_none()
    if not user:
        db.add(
            User(
                first_name="Super",
                last_name="Admin",
                email=email.lower(),
                password_hash=hash_password(password),
                role=UserRole.SUPER_ADMIN.value,
                is_active=True,
            )
        )
        logger.info("Created SUPER_ADMIN user %s", email)
    else:
        user.role = UserRole.SUPER_ADMIN.value
        user.school_id = None
        user.password_hash = hash_password(password)
        user.is_active = True
        logger.info("Updated existing user %s to SUPER_ADMIN", email)
    await db.commit()
    return True


async def main() -> None:
    logging.basicConfig(level=settings.log_level.upper())
    await create_tables()
    async with AsyncSessionLocal() as db:
        try:
            await seed_super_admin(db)
        except Exception:
            await db.rollback()
            logger.exception("Super admin seed failed")
            raise


if __name__ == "__main__":
    asyncio.run(main())

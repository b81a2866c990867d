"""Seed the admin user from configuration if not present."""
import logging

from academy.api.deps import get_password_hash
from academy.config import settings
from academy.models.user import User, UserRole

logger = logging.getLogger(__name__)

ADMIN_FULL_NAME = "Academy Admin"


async def seed_admin():
    if not settings.admin_email or not settings.admin_password:
        return
    existing = await User.find_one(User.email == settings.admin_email)
    if existing:
        return
    await User(
        email=settings.admin_email,
        hashed_password=get_password_hash(settings.admin_password),
        role=UserRole.ADMIN,
        full_name=ADMIN_FULL_NAME,
    ).insert()
    logger.info("Seeded admin user %s", settings.admin_email)

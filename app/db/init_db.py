import asyncio
import logging

from sqlalchemy import select

from app.core.roles import RoleName
from app.core.security import get_password_hash
from app.core.settings import settings
from app.db.session import AsyncSessionLocal
from app.models.role import Role
from app.models.user import User
from app.models.user_role import UserRole

logger = logging.getLogger(__name__)


async def _ensure_roles(session) -> dict[str, Role]:
    result = await session.execute(select(Role))
    existing = {role.name: role for role in result.scalars().all()}
    for name in RoleName.list_all():
        if name not in existing:
            role = Role(name=name)
            session.add(role)
            existing[name] = role
            logger.info("Seeded role %s", name)
    await session.flush()
    return existing


async def init_db() -> None:
    """Seed the role catalog and, when a password is configured, an Admin user."""
    async with AsyncSessionLocal() as session:
        roles = await _ensure_roles(session)

        if settings.seed_admin_password:
            stmt = select(User).where(User.email == settings.seed_admin_email)
            user = (await session.execute(stmt)).scalar_one_or_none()
            if not user:
                user = User(
                    email=settings.seed_admin_email,
                    full_name="Administrator",
                    hashed_password=get_password_hash(settings.seed_admin_password),
                    is_active=True,
                    token_version=0,
                )
                session.add(user)
                await session.flush()
                session.add(UserRole(user_id=user.id, role_id=roles[RoleName.ADMIN.value].id))
                logger.info("Seeded admin user %s", settings.seed_admin_email)
            else:
                logger.info("Admin user already exists")

        await session.commit()


if __name__ == "__main__":
    asyncio.run(init_db())

"""Repository for role and feature grants."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from newsgears.models.role import RoleFeature, UserRole


class RoleRepository:
    """Stateless repository for user_roles / role_features."""

    @staticmethod
    async def get_features_for_user(db: AsyncSession, user_id: int) -> set[str]:
        """Collect every feature code granted through the user's roles.

        Args:
            db: Async database session.
            user_id: User primary key.

        Returns:
            Set of feature codes (empty when the user holds no roles).
        """
        stmt = (
            select(RoleFeature.feature_cd)
            .join(UserRole, UserRole.role_name == RoleFeature.role_name)
            .where(UserRole.user_id == user_id)
        )
        result = await db.execute(stmt)
        return set(result.scalars().all())

    @staticmethod
    async def add_role(db: AsyncSession, *, user_id: int, role_name: str) -> UserRole:
        role = UserRole(user_id=user_id, role_name=role_name)
        db.add(role)
        await db.flush()
        return role

    @staticmethod
    async def grant_feature(
        db: AsyncSession, *, role_name: str, feature_cd: str
    ) -> RoleFeature:
        feature = RoleFeature(role_name=role_name, feature_cd=feature_cd)
        db.add(feature)
        await db.flush()
        return feature

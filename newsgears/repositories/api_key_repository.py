"""Repository for ApiKey operations."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from newsgears.models.api_key import ApiKey


class ApiKeyRepository:
    """Stateless repository for ApiKey table operations."""

    @staticmethod
    async def get_by_user_id(db: AsyncSession, user_id: int) -> ApiKey | None:
        """Fetch the API key owned by a user.

        Args:
            db: Async database session.
            user_id: Owner's primary key.

        Returns:
            ApiKey if the user has one, None otherwise.
        """
        stmt = select(ApiKey).where(ApiKey.user_id == user_id)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(
        db: AsyncSession, *, user_id: int, api_key: str, api_secret: str
    ) -> ApiKey:
        """Create an API key for a user.

        Raises:
            sqlalchemy.exc.IntegrityError: If the user already has a key.
        """
        key = ApiKey(user_id=user_id, api_key=api_key, api_secret=api_secret)
        db.add(key)
        await db.flush()
        await db.refresh(key)
        return key

"""Repository for User CRUD operations and claim storage.

Provides database access for the users table, including the single-statement
claim writes the token invalidation protocol depends on.
"""

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from newsgears.models.api_key import ApiKey
from newsgears.models.user import AuthProvider, User

# Claim columns writable through update_claim().
CLAIM_COLUMNS: frozenset[str] = frozenset(
    {
        "auth_claim",
        "pw_reset_claim",
        "pw_reset_auth_claim",
        "verification_claim",
    }
)

# Fields that may be updated via UserRepository.update_profile().
# Security: Never add 'id', 'username', claims, or 'password_hash'.
# Claims and passwords have dedicated methods so every write is deliberate.
_PROFILE_FIELDS: frozenset[str] = frozenset(
    {
        "email_address",
        "auth_provider_username",
        "auth_provider_profile_img_url",
    }
)


class UserRepository:
    """Stateless repository for User table operations.

    All methods are static; no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: int) -> User | None:
        return await db.get(User, user_id)

    @staticmethod
    async def get_by_username(db: AsyncSession, username: str) -> User | None:
        """Fetch a user by username (exact match).

        Args:
            db: Async database session.
            username: Login name.

        Returns:
            User if found, None otherwise.
        """
        stmt = select(User).where(User.username == username)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> User | None:
        """Fetch a user by e-mail address (case-insensitive).

        Args:
            db: Async database session.
            email: E-mail address to look up.

        Returns:
            User if found, None otherwise.
        """
        stmt = select(User).where(User.email_address == email.strip().lower())
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_api_key(db: AsyncSession, api_key: str) -> User | None:
        """Fetch the owner of an API key.

        Args:
            db: Async database session.
            api_key: Public API key id.

        Returns:
            User if the key exists, None otherwise.
        """
        stmt = select(User).join(ApiKey, ApiKey.user_id == User.id).where(
            ApiKey.api_key == api_key
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_auth_provider_id(
        db: AsyncSession, provider: AuthProvider, provider_id: str
    ) -> User | None:
        stmt = select(User).where(
            User.auth_provider == provider,
            User.auth_provider_id == provider_id,
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def username_exists(db: AsyncSession, username: str) -> bool:
        stmt = select(User.id).where(User.username == username)
        result = await db.execute(stmt)
        return result.first() is not None

    @staticmethod
    async def email_exists(db: AsyncSession, email: str) -> bool:
        stmt = select(User.id).where(User.email_address == email.strip().lower())
        result = await db.execute(stmt)
        return result.first() is not None

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        username: str,
        email_address: str | None = None,
        password_hash: str | None = None,
        auth_provider: AuthProvider = AuthProvider.LOCAL,
        auth_provider_id: str | None = None,
        auth_provider_username: str | None = None,
        auth_provider_profile_img_url: str | None = None,
        auth_claim: str | None = None,
        is_verified: bool = False,
    ) -> User:
        """Create a new user.

        E-mail is normalized to lowercase before storage.

        Returns:
            Created User with database-generated fields populated.

        Raises:
            sqlalchemy.exc.IntegrityError: If username or e-mail already exists.
        """
        user = User(
            username=username,
            email_address=email_address.strip().lower() if email_address else None,
            password_hash=password_hash,
            auth_provider=auth_provider,
            auth_provider_id=auth_provider_id,
            auth_provider_username=auth_provider_username,
            auth_provider_profile_img_url=auth_provider_profile_img_url,
            auth_claim=auth_claim,
            is_verified=is_verified,
        )
        db.add(user)
        await db.flush()
        await db.refresh(user)
        return user

    @staticmethod
    async def update_claim(
        db: AsyncSession, username: str, column: str, value: str
    ) -> bool:
        """Overwrite one claim column in a single UPDATE statement.

        The previous value is gone once this flushes; any token carrying
        its hash can no longer be validated.

        Args:
            db: Async database session.
            username: Owner of the claim.
            column: One of CLAIM_COLUMNS.
            value: New claim value.

        Returns:
            True if a row was updated, False if the user does not exist.

        Raises:
            ValueError: If column is not a claim column.
        """
        if column not in CLAIM_COLUMNS:
            msg = f"Unknown claim column: {column}"
            raise ValueError(msg)

        stmt = (
            update(User)
            .where(User.username == username)
            .values({column: value})
            .execution_options(synchronize_session="fetch")
        )
        result = await db.execute(stmt)
        return result.rowcount > 0

    @staticmethod
    async def get_claim(db: AsyncSession, username: str, column: str) -> str | None:
        """Read one claim column straight from the database.

        Raises:
            LookupError: If the user does not exist.
            ValueError: If column is not a claim column.
        """
        if column not in CLAIM_COLUMNS:
            msg = f"Unknown claim column: {column}"
            raise ValueError(msg)

        stmt = select(getattr(User, column)).where(User.username == username)
        result = await db.execute(stmt)
        row = result.first()
        if row is None:
            raise LookupError(username)
        return row[0]

    @staticmethod
    async def update_password(
        db: AsyncSession, username: str, password_hash: str
    ) -> bool:
        stmt = (
            update(User)
            .where(User.username == username)
            .values(password_hash=password_hash)
            .execution_options(synchronize_session="fetch")
        )
        result = await db.execute(stmt)
        return result.rowcount > 0

    @staticmethod
    async def set_verified(db: AsyncSession, username: str) -> bool:
        stmt = (
            update(User)
            .where(User.username == username)
            .values(is_verified=True)
            .execution_options(synchronize_session="fetch")
        )
        result = await db.execute(stmt)
        return result.rowcount > 0

    @staticmethod
    async def update_profile(
        db: AsyncSession,
        user: User,
        **kwargs: str | None,
    ) -> User:
        """Update provider-reported profile fields.

        Only fields in _PROFILE_FIELDS are allowed.

        Raises:
            ValueError: If an unknown field name is passed.
        """
        unknown = set(kwargs) - _PROFILE_FIELDS
        if unknown:
            msg = f"Unknown fields: {', '.join(sorted(unknown))}"
            raise ValueError(msg)

        for field, value in kwargs.items():
            setattr(user, field, value)

        await db.flush()
        await db.refresh(user)
        return user

    @staticmethod
    async def delete(db: AsyncSession, user: User) -> None:
        await db.delete(user)
        await db.flush()

"""User model - identity record and claim store.

Each of the four claim columns is an opaque random secret backing one family
of token purposes. Rotating a claim invalidates every outstanding token that
carries a hash of the previous value.
"""

from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Integer, String, Text, text
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from newsgears.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from newsgears.models.api_key import ApiKey
    from newsgears.models.role import UserRole


class AuthProvider(str, Enum):
    """Identity provider an account was created with."""

    LOCAL = "LOCAL"
    GOOGLE = "GOOGLE"
    GITHUB = "GITHUB"


class User(Base, TimestampMixin):
    """User account for authentication.

    Attributes:
        id: Integer primary key.
        username: Unique, immutable login name.
        email_address: Unique e-mail address (NULL when not supplied).
        password_hash: bcrypt hash. NULL for OAuth-only users.
        is_verified: Whether the e-mail verification link was followed.
        auth_provider: Provider the account was created with.
        auth_provider_id: Provider's unique user id (OAuth accounts).
        auth_provider_username: Display name reported by the provider.
        auth_provider_profile_img_url: Avatar URL reported by the provider.
        auth_claim: Backs APP_AUTH and APP_AUTH_REFRESH tokens.
        pw_reset_claim: Backs the e-mailed password reset link.
        pw_reset_auth_claim: Backs the password update session cookie.
        verification_claim: Backs the e-mailed verification link.
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )
    username: Mapped[str] = mapped_column(
        String(256),
        unique=True,
        nullable=False,
    )
    email_address: Mapped[str | None] = mapped_column(
        String(512),
        unique=True,
        nullable=True,
    )
    password_hash: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    is_verified: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=text("false"),
        default=False,
    )
    auth_provider: Mapped[AuthProvider] = mapped_column(
        SAEnum(AuthProvider, name="auth_provider", native_enum=False, length=16),
        nullable=False,
        default=AuthProvider.LOCAL,
    )
    auth_provider_id: Mapped[str | None] = mapped_column(
        String(256),
        nullable=True,
    )
    auth_provider_username: Mapped[str | None] = mapped_column(
        String(256),
        nullable=True,
    )
    auth_provider_profile_img_url: Mapped[str | None] = mapped_column(
        Text(),
        nullable=True,
    )
    auth_claim: Mapped[str | None] = mapped_column(String(32), nullable=True)
    pw_reset_claim: Mapped[str | None] = mapped_column(String(32), nullable=True)
    pw_reset_auth_claim: Mapped[str | None] = mapped_column(String(32), nullable=True)
    verification_claim: Mapped[str | None] = mapped_column(String(32), nullable=True)

    # Relationships
    api_key: Mapped["ApiKey | None"] = relationship(
        "ApiKey",
        back_populates="user",
        cascade="all, delete-orphan",
        uselist=False,
    )
    roles: Mapped[list["UserRole"]] = relationship(
        "UserRole",
        back_populates="user",
        cascade="all, delete-orphan",
    )

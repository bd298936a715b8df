"""Role grants - explicit authorities for web-session principals.

A user holds roles; each role grants feature codes. Feature codes become
authorities on local principals only.
"""

from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from newsgears.models.base import Base

if TYPE_CHECKING:
    from newsgears.models.user import User


class UserRole(Base):
    """Role assigned to a user.

    Attributes:
        id: Integer primary key.
        user_id: FK to users table.
        role_name: Role name (e.g., "ROLE_PUBLISHER").
    """

    __tablename__ = "user_roles"
    __table_args__ = (
        UniqueConstraint("user_id", "role_name", name="uq_user_roles_user_role"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role_name: Mapped[str] = mapped_column(String(64), nullable=False)

    user: Mapped["User"] = relationship("User", back_populates="roles")


class RoleFeature(Base):
    """Feature code granted by a role.

    Attributes:
        id: Integer primary key.
        role_name: Role granting the feature.
        feature_cd: Feature code, used verbatim as an authority.
    """

    __tablename__ = "role_features"
    __table_args__ = (
        UniqueConstraint("role_name", "feature_cd", name="uq_role_features_role_feature"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    role_name: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    feature_cd: Mapped[str] = mapped_column(String(64), nullable=False)

"""ApiKey model - API credential, one per user.

Not claim-backed: the key and secret are compared directly on each API
request and revoked only by deleting the row.
"""

from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from newsgears.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from newsgears.models.user import User


class ApiKey(Base, TimestampMixin):
    """API key/secret pair.

    Attributes:
        id: Integer primary key.
        user_id: FK to users table (unique, one key per user).
        api_key: Public key id sent in the API key header (uuid4 string).
        api_secret: Secret sent in the API secret header.
    """

    __tablename__ = "api_keys"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    api_key: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    api_secret: Mapped[str] = mapped_column(String(255), nullable=False)

    user: Mapped["User"] = relationship("User", back_populates="api_key")

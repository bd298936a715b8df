"""SQLAlchemy ORM models for NewsGears authentication.

All models are exported from this module for convenient imports:
    from newsgears.models import User, ApiKey, ...

Models are organized by domain:
- user.py: User, AuthProvider (claim store)
- api_key.py: ApiKey
- role.py: UserRole, RoleFeature (granted authorities)
"""

from newsgears.models.api_key import ApiKey
from newsgears.models.base import Base, TimestampMixin
from newsgears.models.role import RoleFeature, UserRole
from newsgears.models.user import AuthProvider, User

__all__ = [
    "ApiKey",
    "AuthProvider",
    "Base",
    "RoleFeature",
    "TimestampMixin",
    "User",
    "UserRole",
]

"""Aggregate all endpoint routers.

Paths are unprefixed; the auth middleware's open-path table matches them
as written here.
"""

from fastapi import APIRouter

from newsgears.api import api_keys, authentication, password_reset, registration

router = APIRouter()

router.include_router(authentication.router, tags=["Authentication"])
router.include_router(password_reset.router, tags=["Password Reset"])
router.include_router(registration.router, tags=["Registration"])
router.include_router(api_keys.router, tags=["API Keys"])

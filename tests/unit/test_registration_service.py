"""Tests for registration, verification, and deregistration."""

import pytest

from newsgears.core.auth import verify_password
from newsgears.core.claims import ClaimService
from newsgears.core.errors import (
    RegistrationError,
    TokenValidationError,
    UsernameNotFoundError,
)
from newsgears.core.tokens import TokenPurpose
from newsgears.repositories.api_key_repository import ApiKeyRepository
from newsgears.repositories.user_repository import UserRepository
from newsgears.services import registration_service


async def _register(db_session, codec, username="carol", email="carol@example.com"):
    return await registration_service.register(
        db_session, codec, username=username, password="carol-pass", email=email
    )


class TestRegister:
    """Tests for registration_service.register()."""

    async def test_creates_local_user_with_claims_and_key(self, db_session, codec):
        result = await _register(db_session, codec)

        user = result.user
        await db_session.refresh(user)
        assert user.username == "carol"
        assert user.email_address == "carol@example.com"
        assert user.is_verified is False
        assert verify_password("carol-pass", user.password_hash)
        assert user.auth_claim
        assert user.pw_reset_claim
        assert user.verification_claim
        assert result.api_key.user_id == user.id
        assert len(result.api_key.api_secret) == 32

    async def test_verification_token_validates(self, db_session, codec):
        result = await _register(db_session, codec)
        validated = await ClaimService(db_session, codec).validate(
            TokenPurpose.VERIFICATION, result.verification_token.token
        )
        assert validated.username == "carol"

    async def test_can_log_in_immediately(self, db_session, codec):
        """The auth claim is set, so session tokens can be issued."""
        await _register(db_session, codec)
        token = await ClaimService(db_session, codec).issue(TokenPurpose.APP_AUTH, "carol")
        assert token.token

    async def test_email_is_normalized(self, db_session, codec):
        result = await _register(db_session, codec, email="Carol@Example.COM")
        assert result.user.email_address == "carol@example.com"

    async def test_duplicates_reported_together(self, db_session, codec, make_user):
        await make_user("carol", email="carol@example.com")

        with pytest.raises(RegistrationError) as exc_info:
            await _register(db_session, codec)

        messages = [d["msg"] for d in exc_info.value.details]
        assert messages == ["Username is already taken", "Email address is already in use"]

    async def test_format_errors_reported_together(self, db_session, codec):
        with pytest.raises(RegistrationError) as exc_info:
            await registration_service.register(
                db_session, codec, username=" ", password="abc", email=""
            )
        messages = [d["msg"] for d in exc_info.value.details]
        assert "Username may not be empty" in messages
        assert "Password must be at least 6 characters" in messages
        assert "Email address may not be empty" in messages


class TestVerify:
    """Tests for registration_service.verify()."""

    async def test_marks_verified(self, db_session, codec):
        result = await _register(db_session, codec)

        username = await registration_service.verify(
            db_session, codec, result.verification_token.token
        )

        assert username == "carol"
        user = await UserRepository.get_by_username(db_session, "carol")
        await db_session.refresh(user)
        assert user.is_verified is True

    async def test_link_is_single_use(self, db_session, codec):
        result = await _register(db_session, codec)
        await registration_service.verify(db_session, codec, result.verification_token.token)

        with pytest.raises(TokenValidationError):
            await registration_service.verify(
                db_session, codec, result.verification_token.token
            )

    async def test_wrong_purpose_token(self, db_session, codec):
        await _register(db_session, codec)
        token = await ClaimService(db_session, codec).issue(TokenPurpose.PW_RESET, "carol")
        with pytest.raises(TokenValidationError):
            await registration_service.verify(db_session, codec, token.token)


class TestDeregister:
    """Tests for registration_service.deregister()."""

    async def test_deletes_user_and_key(self, db_session, codec):
        result = await _register(db_session, codec)
        user_id = result.user.id
        await db_session.commit()

        await registration_service.deregister(db_session, "carol")
        await db_session.commit()

        assert await UserRepository.get_by_username(db_session, "carol") is None
        assert await ApiKeyRepository.get_by_user_id(db_session, user_id) is None

    async def test_unknown_user(self, db_session):
        with pytest.raises(UsernameNotFoundError):
            await registration_service.deregister(db_session, "ghost")

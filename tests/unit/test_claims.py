"""Tests for claim rotation.

Finalizing a purpose's claim must revoke every outstanding token of that
purpose (and of any purpose sharing its claim) and nothing else.
"""

import jwt
import pytest

from newsgears.core.claims import CLAIM_FIELDS, ClaimService, random_claim_value
from newsgears.core.errors import (
    AuthClaimError,
    TokenExpiredError,
    TokenValidationError,
    UsernameNotFoundError,
)
from newsgears.core.tokens import TokenPurpose, hash_claim
from newsgears.repositories.user_repository import UserRepository
from tests.conftest import FIXED_NOW, TEST_TOKEN_SECRET


async def _claim(db_session, username, purpose):
    return await UserRepository.get_claim(db_session, username, CLAIM_FIELDS[purpose])


class TestRandomClaimValue:
    def test_sixteen_alphanumeric_characters(self):
        value = random_claim_value()
        assert len(value) == 16
        assert value.isalnum()

    def test_values_differ(self):
        assert len({random_claim_value() for _ in range(50)}) == 50


class TestFinalize:
    """Tests for ClaimService.finalize()."""

    async def test_replaces_claim_value(self, db_session, codec, make_user):
        await make_user("alice")
        before = await _claim(db_session, "alice", TokenPurpose.PW_RESET)

        new = await ClaimService(db_session, codec).finalize(
            TokenPurpose.PW_RESET, "alice"
        )

        assert new != before
        assert await _claim(db_session, "alice", TokenPurpose.PW_RESET) == new

    async def test_sets_claim_that_was_null(self, db_session, codec, make_user):
        await make_user("alice", with_claims=False)
        await ClaimService(db_session, codec).finalize(TokenPurpose.VERIFICATION, "alice")
        assert await _claim(db_session, "alice", TokenPurpose.VERIFICATION)

    async def test_unknown_user(self, db_session, codec):
        with pytest.raises(UsernameNotFoundError):
            await ClaimService(db_session, codec).finalize(TokenPurpose.APP_AUTH, "ghost")

    async def test_only_touches_its_own_column(self, db_session, codec, make_user):
        await make_user("alice")
        others = {
            p: await _claim(db_session, "alice", p)
            for p in (TokenPurpose.APP_AUTH, TokenPurpose.PW_AUTH, TokenPurpose.VERIFICATION)
        }

        await ClaimService(db_session, codec).finalize(TokenPurpose.PW_RESET, "alice")

        for purpose, value in others.items():
            assert await _claim(db_session, "alice", purpose) == value


class TestIssueAndValidate:
    """Tests for ClaimService.issue() / validate()."""

    @pytest.mark.parametrize("purpose", list(TokenPurpose))
    async def test_fresh_token_validates(self, db_session, codec, make_user, purpose):
        await make_user("alice")
        claims = ClaimService(db_session, codec)

        token = await claims.issue(purpose, "alice")
        validated = await claims.validate(purpose, token.token)

        assert validated.username == "alice"
        assert validated.claim == await _claim(db_session, "alice", purpose)

    @pytest.mark.parametrize("purpose", list(TokenPurpose))
    async def test_finalize_revokes_outstanding_tokens(
        self, db_session, codec, make_user, purpose
    ):
        await make_user("alice")
        claims = ClaimService(db_session, codec)
        token = await claims.issue(purpose, "alice")

        await claims.finalize(purpose, "alice")

        with pytest.raises(TokenValidationError, match="outdated"):
            await claims.validate(purpose, token.token)

    @pytest.mark.parametrize("purpose", list(TokenPurpose))
    async def test_token_issued_after_finalize_validates(
        self, db_session, codec, make_user, purpose
    ):
        await make_user("alice")
        claims = ClaimService(db_session, codec)
        await claims.finalize(purpose, "alice")

        token = await claims.issue(purpose, "alice")

        assert (await claims.validate(purpose, token.token)).username == "alice"

    async def test_session_purposes_share_the_auth_claim(
        self, db_session, codec, make_user
    ):
        """Logging out revokes access and refresh tokens together."""
        await make_user("alice")
        claims = ClaimService(db_session, codec)
        refresh = await claims.issue(TokenPurpose.APP_AUTH_REFRESH, "alice")

        await claims.finalize(TokenPurpose.APP_AUTH, "alice")

        with pytest.raises(TokenValidationError):
            await claims.validate(TokenPurpose.APP_AUTH_REFRESH, refresh.token)

    async def test_rotating_one_purpose_leaves_others_valid(
        self, db_session, codec, make_user
    ):
        await make_user("alice")
        claims = ClaimService(db_session, codec)
        access = await claims.issue(TokenPurpose.APP_AUTH, "alice")
        verification = await claims.issue(TokenPurpose.VERIFICATION, "alice")

        await claims.finalize(TokenPurpose.PW_RESET, "alice")
        await claims.finalize(TokenPurpose.PW_AUTH, "alice")

        await claims.validate(TokenPurpose.APP_AUTH, access.token)
        await claims.validate(TokenPurpose.VERIFICATION, verification.token)

    async def test_logout_on_one_device_signs_out_every_device(
        self, db_session, codec, make_user
    ):
        """alice logs in on a laptop and a phone, then logs out on the phone."""
        await make_user("alice")
        claims = ClaimService(db_session, codec)
        laptop = await claims.issue(TokenPurpose.APP_AUTH, "alice")
        phone = await claims.issue(TokenPurpose.APP_AUTH, "alice")
        await claims.validate(TokenPurpose.APP_AUTH, laptop.token)
        await claims.validate(TokenPurpose.APP_AUTH, phone.token)

        await claims.finalize(TokenPurpose.APP_AUTH, "alice")

        for token in (laptop, phone):
            with pytest.raises(TokenValidationError):
                await claims.validate(TokenPurpose.APP_AUTH, token.token)

    async def test_tokens_are_per_user(self, db_session, codec, make_user):
        await make_user("alice")
        await make_user("bob")
        claims = ClaimService(db_session, codec)
        bob_token = await claims.issue(TokenPurpose.APP_AUTH, "bob")

        await claims.finalize(TokenPurpose.APP_AUTH, "alice")

        assert (await claims.validate(TokenPurpose.APP_AUTH, bob_token.token)).username == "bob"

    async def test_expired_token_rejected(self, db_session, codec, clock, make_user):
        await make_user("alice")
        claims = ClaimService(db_session, codec)
        token = await claims.issue(TokenPurpose.APP_AUTH, "alice")

        clock.advance(TokenPurpose.APP_AUTH.max_age_seconds + 1)

        with pytest.raises(TokenExpiredError):
            await claims.validate(TokenPurpose.APP_AUTH, token.token)


class TestValidateFailures:
    """Tests for validate() rejection paths."""

    async def test_issue_without_claim(self, db_session, codec, make_user):
        await make_user("alice", with_claims=False)
        with pytest.raises(AuthClaimError, match="User has no APP_AUTH claim"):
            await ClaimService(db_session, codec).issue(TokenPurpose.APP_AUTH, "alice")

    async def test_validate_after_claim_cleared(self, db_session, codec, make_user):
        user = await make_user("alice")
        claims = ClaimService(db_session, codec)
        token = await claims.issue(TokenPurpose.APP_AUTH, "alice")
        user.auth_claim = None
        await db_session.commit()

        with pytest.raises(AuthClaimError):
            await claims.validate(TokenPurpose.APP_AUTH, token.token)

    async def test_unknown_user(self, db_session, codec):
        token = codec.issue(TokenPurpose.APP_AUTH, "ghost", "whatever").token
        with pytest.raises(UsernameNotFoundError):
            await ClaimService(db_session, codec).validate(TokenPurpose.APP_AUTH, token)

    async def test_missing_username(self, db_session, codec):
        token = jwt.encode(
            {"aud": "APP_AUTH", "exp": int(FIXED_NOW.timestamp()) + 60},
            TEST_TOKEN_SECRET,
            algorithm="HS256",
        )
        with pytest.raises(TokenValidationError, match="Username is missing"):
            await ClaimService(db_session, codec).validate(TokenPurpose.APP_AUTH, token)

    async def test_missing_claim_hash(self, db_session, codec, make_user):
        await make_user("alice")
        token = jwt.encode(
            {"sub": "alice", "aud": "APP_AUTH", "exp": int(FIXED_NOW.timestamp()) + 60},
            TEST_TOKEN_SECRET,
            algorithm="HS256",
        )
        with pytest.raises(TokenValidationError, match="claim is missing"):
            await ClaimService(db_session, codec).validate(TokenPurpose.APP_AUTH, token)

    async def test_hash_comparison_ignores_case(self, db_session, codec, make_user):
        await make_user("alice")
        claim = await _claim(db_session, "alice", TokenPurpose.APP_AUTH)
        token = jwt.encode(
            {
                "sub": "alice",
                "aud": "APP_AUTH",
                "exp": int(FIXED_NOW.timestamp()) + 60,
                TokenPurpose.APP_AUTH.token_name: hash_claim(claim).upper(),
            },
            TEST_TOKEN_SECRET,
            algorithm="HS256",
        )
        validated = await ClaimService(db_session, codec).validate(
            TokenPurpose.APP_AUTH, token
        )
        assert validated.username == "alice"


class TestConcurrentRotation:
    """Claim writes are last-write-wins; nothing serializes them."""

    async def test_two_rotations_last_write_wins(self, session_factory, codec, make_user):
        await make_user("alice")
        async with session_factory() as first, session_factory() as second:
            token_a = await ClaimService(first, codec).issue(TokenPurpose.APP_AUTH, "alice")

            claim_1 = await ClaimService(first, codec).finalize(TokenPurpose.APP_AUTH, "alice")
            await first.commit()
            token_between = await ClaimService(second, codec).issue(
                TokenPurpose.APP_AUTH, "alice"
            )
            claim_2 = await ClaimService(second, codec).finalize(
                TokenPurpose.APP_AUTH, "alice"
            )
            await second.commit()

            assert claim_1 != claim_2
            assert await _claim(second, "alice", TokenPurpose.APP_AUTH) == claim_2
            # A token issued between the two writes is already stale.
            for token in (token_a, token_between):
                with pytest.raises(TokenValidationError):
                    await ClaimService(second, codec).validate(
                        TokenPurpose.APP_AUTH, token.token
                    )

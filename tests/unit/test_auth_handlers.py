"""Tests for the per-strategy authentication handlers."""

import pytest
from starlette.requests import Request

from newsgears.core.auth_handlers import (
    handle_api_key,
    handle_bearer,
    handle_options_preflight,
    handle_password_update,
    handle_refresh_cookie,
    handle_single_user,
)
from newsgears.core.claims import ClaimService
from newsgears.core.config import settings
from newsgears.core.errors import (
    ApiKeyError,
    MissingOptionsHeaderError,
    TokenValidationError,
    UsernameNotFoundError,
)
from newsgears.core.principal import API_UNVERIFIED, UNVERIFIED
from newsgears.core.tokens import TokenPurpose
from tests.conftest import TEST_API_SECRET


def _request(
    method: str = "GET",
    path: str = "/posts",
    headers: dict[str, str] | None = None,
) -> Request:
    raw = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    return Request({"type": "http", "method": method, "path": path, "headers": raw})


def _api_headers(key: str, secret: str) -> dict[str, str]:
    return {
        settings.api_key_header_name: key,
        settings.api_secret_header_name: secret,
    }


class TestOptionsPreflight:
    """Tests for handle_options_preflight()."""

    def test_both_headers_present(self):
        request = _request(
            "OPTIONS",
            headers={
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "content-type",
            },
        )
        result = handle_options_preflight(request)
        assert result.principal is None
        assert not result.authenticated

    @pytest.mark.parametrize(
        "headers",
        [
            {"Access-Control-Request-Method": "POST"},
            {"Access-Control-Request-Headers": "content-type"},
            {},
        ],
    )
    def test_missing_header_reports_present_names(self, headers):
        request = _request("OPTIONS", headers={**headers, "Origin": "http://x"})
        with pytest.raises(MissingOptionsHeaderError) as exc_info:
            handle_options_preflight(request)
        assert "origin" in exc_info.value.header_names


class TestApiKey:
    """Tests for handle_api_key()."""

    async def test_valid_key_and_secret(self, db_session, make_user):
        await make_user("alice", with_api_key=True)
        request = _request(headers=_api_headers("key-alice", TEST_API_SECRET))

        result = await handle_api_key(db_session, request)

        assert result.principal.username == "alice"
        assert result.principal.is_api
        assert result.principal.has_authority(API_UNVERIFIED)
        assert result.principal.credentials == "key-alice"

    async def test_wrong_secret(self, db_session, make_user):
        await make_user("alice", with_api_key=True)
        request = _request(headers=_api_headers("key-alice", "wrong"))
        with pytest.raises(ApiKeyError, match="mismatch"):
            await handle_api_key(db_session, request)

    async def test_unknown_key(self, db_session, make_user):
        await make_user("alice", with_api_key=True)
        request = _request(headers=_api_headers("key-nobody", TEST_API_SECRET))
        with pytest.raises(ApiKeyError, match="not found"):
            await handle_api_key(db_session, request)

    @pytest.mark.parametrize(("key", "secret"), [("key-alice", " "), ("", TEST_API_SECRET)])
    async def test_blank_header(self, db_session, make_user, key, secret):
        await make_user("alice", with_api_key=True)
        request = _request(headers=_api_headers(key, secret))
        with pytest.raises(ApiKeyError, match="required"):
            await handle_api_key(db_session, request)


class TestBearer:
    """Tests for handle_bearer()."""

    async def test_valid_token(self, db_session, codec, make_user):
        await make_user("alice")
        token = await ClaimService(db_session, codec).issue(TokenPurpose.APP_AUTH, "alice")
        request = _request(headers={"Authorization": f"Bearer {token.token}"})

        result = await handle_bearer(db_session, codec, request)

        assert result.principal.username == "alice"
        assert result.principal.has_authority(UNVERIFIED)
        assert not result.principal.is_api
        assert result.cookies == []

    async def test_scheme_is_case_insensitive(self, db_session, codec, make_user):
        await make_user("alice")
        token = await ClaimService(db_session, codec).issue(TokenPurpose.APP_AUTH, "alice")
        request = _request(headers={"Authorization": f"bearer {token.token}"})
        assert (await handle_bearer(db_session, codec, request)).principal is not None

    @pytest.mark.parametrize("header", [None, "Basic abc", "Bearer ", "Bearer"])
    async def test_missing_token(self, db_session, codec, header):
        headers = {"Authorization": header} if header is not None else {}
        with pytest.raises(TokenValidationError, match="missing"):
            await handle_bearer(db_session, codec, _request(headers=headers))

    async def test_refresh_token_not_accepted_as_bearer(
        self, db_session, codec, make_user
    ):
        await make_user("alice")
        token = await ClaimService(db_session, codec).issue(
            TokenPurpose.APP_AUTH_REFRESH, "alice"
        )
        request = _request(headers={"Authorization": f"Bearer {token.token}"})
        with pytest.raises(TokenValidationError):
            await handle_bearer(db_session, codec, request)


class TestRefreshCookie:
    """Tests for handle_refresh_cookie()."""

    async def test_reissues_cookie_with_same_claim(self, db_session, codec, clock, make_user):
        await make_user("alice")
        claims = ClaimService(db_session, codec)
        token = await claims.issue(TokenPurpose.APP_AUTH_REFRESH, "alice")
        cookie = f"{TokenPurpose.APP_AUTH_REFRESH.token_name}={token.token}"
        clock.advance(60)

        result = await handle_refresh_cookie(
            db_session, codec, _request(path="/currentuser", headers={"Cookie": cookie})
        )

        assert result.principal.username == "alice"
        [reissued] = result.cookies
        assert reissued.purpose is TokenPurpose.APP_AUTH_REFRESH
        assert reissued.token.token != token.token
        # Sliding refresh does not rotate; the old cookie is still good.
        await claims.validate(TokenPurpose.APP_AUTH_REFRESH, token.token)
        await claims.validate(TokenPurpose.APP_AUTH_REFRESH, reissued.token.token)

    async def test_missing_cookie(self, db_session, codec):
        with pytest.raises(TokenValidationError, match="missing"):
            await handle_refresh_cookie(db_session, codec, _request(path="/currentuser"))


class TestPasswordUpdate:
    """Tests for handle_password_update()."""

    async def test_valid_cookie(self, db_session, codec, make_user):
        await make_user("alice")
        token = await ClaimService(db_session, codec).issue(TokenPurpose.PW_AUTH, "alice")
        cookie = f"{TokenPurpose.PW_AUTH.token_name}={token.token}"

        result = await handle_password_update(
            db_session, codec, _request("PUT", "/pw_update", {"Cookie": cookie})
        )

        assert result.principal.username == "alice"
        assert result.cookies == []

    async def test_refresh_cookie_does_not_authorize_update(
        self, db_session, codec, make_user
    ):
        await make_user("alice")
        token = await ClaimService(db_session, codec).issue(
            TokenPurpose.APP_AUTH_REFRESH, "alice"
        )
        cookie = f"{TokenPurpose.APP_AUTH_REFRESH.token_name}={token.token}"
        with pytest.raises(TokenValidationError):
            await handle_password_update(
                db_session, codec, _request("PUT", "/pw_update", {"Cookie": cookie})
            )


class TestSingleUser:
    """Tests for handle_single_user()."""

    async def test_local_principal_for_admin(self, db_session, make_user):
        await make_user(settings.admin_username)
        first = await handle_single_user(db_session, api=False)
        second = await handle_single_user(db_session, api=False)

        assert first.principal.username == settings.admin_username
        assert first.principal.has_authority(UNVERIFIED)
        assert len(first.principal.credentials) == 32
        assert first.principal.credentials != second.principal.credentials

    async def test_api_principal_for_admin(self, db_session, make_user):
        await make_user(settings.admin_username)
        result = await handle_single_user(db_session, api=True)
        assert result.principal.is_api
        assert result.principal.has_authority(API_UNVERIFIED)

    async def test_admin_missing(self, db_session):
        with pytest.raises(UsernameNotFoundError):
            await handle_single_user(db_session, api=False)

"""Error classes.

Two families live here:

- APIError and subclasses: raised from endpoints and services, mapped to
  HTTP status codes and the standard error envelope by the handlers in
  main.py.
- AuthenticationError and subclasses: raised by the request authentication
  handlers and the claim protocol. The auth middleware converts most of them
  into "no principal installed"; only AuthProviderError is surfaced to the
  caller, so a user can be told to sign in with their original provider.
"""

from collections.abc import Iterable


class APIError(Exception):
    """Base class for API errors.

    All API errors have a code, message, and HTTP status.
    Subclasses set default status_code.

    Attributes:
        code: Machine-readable error code (e.g., "NOT_FOUND").
        message: Human-readable error message.
        status_code: HTTP status code to return.
        details: Optional list of additional error details.
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: list[dict] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class ValidationError(APIError):
    """Field validation failed (400).

    Use for request body validation errors, query param errors, etc.
    """

    def __init__(
        self,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            status_code=400,
            details=details,
        )


class RegistrationError(APIError):
    """Registration request rejected (400).

    Details carry every failed rule so the client can show them together.
    """

    def __init__(self, messages: list[str]) -> None:
        super().__init__(
            code="REGISTRATION_FAILED",
            message="Registration failed",
            status_code=400,
            details=[{"msg": m} for m in messages],
        )


class UnauthorizedError(APIError):
    """Authentication required (401).

    Use when no valid auth credentials provided.
    """

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(
            code="UNAUTHORIZED",
            message=message,
            status_code=401,
        )


class ForbiddenError(APIError):
    """Not allowed to access resource (403).

    Use when auth is valid but the principal lacks the required authority.
    """

    def __init__(self, message: str = "Access denied") -> None:
        super().__init__(
            code="FORBIDDEN",
            message=message,
            status_code=403,
        )


class NotFoundError(APIError):
    """Resource not found (404)."""

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        else:
            message = f"{resource} not found"
        super().__init__(
            code="NOT_FOUND",
            message=message,
            status_code=404,
        )


class ConflictError(APIError):
    """Duplicate or conflicting resource (409).

    Accepts custom code for specific conflict types.
    """

    def __init__(
        self,
        code: str,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details,
        )


class InternalError(APIError):
    """Unexpected server error (500).

    Use for unhandled exceptions. Never expose stack traces to clients.
    """

    def __init__(self, message: str = "An unexpected error occurred") -> None:
        super().__init__(
            code="INTERNAL_ERROR",
            message=message,
            status_code=500,
        )


# =============================================================================
# Authentication taxonomy
# =============================================================================


class AuthenticationError(Exception):
    """Base class for request authentication failures."""


class ApiKeyError(AuthenticationError):
    """API key or secret missing, mismatched, or user has no API key."""


class AuthClaimError(AuthenticationError):
    """The claim column backing a token purpose is absent on the user."""


class TokenValidationError(AuthenticationError):
    """Token failed signature, expiry, username, or claim-hash checks."""


class TokenInvalidError(TokenValidationError):
    """Token is malformed, badly signed, or issued for another purpose."""


class TokenExpiredError(TokenValidationError):
    """Token expiry has passed."""


class AuthProviderError(AuthenticationError):
    """User's recorded auth provider differs from the one authenticating them.

    Prevents, e.g., a GitHub-linked account from being taken over with a
    Google assertion carrying the same e-mail address.

    Attributes:
        username: Account the attempt targeted.
        expected: Provider the caller attempted to authenticate with.
        actual: Provider recorded on the account.
    """

    def __init__(self, username: str, expected: str, actual: str | None) -> None:
        self.username = username
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"User={username} is not associated with auth provider={expected} "
            f"(actual auth provider={actual})"
        )


class UsernameNotFoundError(AuthenticationError):
    """No user matched the lookup.

    Security: Never surfaced with the username to clients.
    """

    def __init__(self, username: str | None = None) -> None:
        self.username = username
        super().__init__(f"User not found: {username}" if username else "User not found")


class MissingOptionsHeaderError(AuthenticationError):
    """CORS preflight lacks a required Access-Control-Request-* header.

    Attributes:
        header_names: Every header name present on the request, for diagnosis.
    """

    def __init__(self, header_names: Iterable[str]) -> None:
        self.header_names = sorted(header_names)
        super().__init__("Missing required OPTIONS header(s)")

"""Application configuration loaded from environment variables.

Settings for the database, CORS, token signing, request authentication
strategies, rate limiting, and outbound e-mail. Uses pydantic-settings for
validation and .env file support.
"""

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Known insecure default password that must not be used in production
# Security: Runtime check in check_production_security() prevents use in production
_INSECURE_DEFAULT_PASSWORD = "newsgears_dev_password"  # nosec B105

# Minimum length for TOKEN_SECRET in production (256 bits = 32 bytes)
_MIN_TOKEN_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_host: str = "localhost"
    database_port: int = 5432
    database_name: str = "newsgears"
    database_user: str = "newsgears_user"
    database_password: str = _INSECURE_DEFAULT_PASSWORD

    # CORS (Security)
    # CRITICAL: Never set to ["*"]; auth cookies require credentialed CORS
    allowed_origins: list[str] = ["http://localhost:3000"]

    # Application
    environment: str = "development"
    log_level: str = "INFO"
    # Development flag: drops the Secure cookie attribute and grants "dev"
    development: bool = False

    # Token signing
    token_secret: SecretStr = SecretStr("")

    # Request authentication strategies
    # Single-user mode authenticates every request as admin_username
    single_user_mode: bool = False
    admin_username: str = "me"
    api_key_header_name: str = "X-ComposableRSS-API-Key"
    api_secret_header_name: str = "X-ComposableRSS-API-Secret"
    current_user_path: str = "/currentuser"
    password_update_prefix: str = "/pw_update"
    open_paths: list[str] = [
        "/authenticate",
        "/v3/api-docs",
        "/docs",
        "/openapi.json",
        "/health",
    ]
    open_path_prefixes: list[str] = [
        "/pw_reset",
        "/register",
        "/verify",
        "/stripe",
        "/proxy/unsecured",
    ]

    # Rate Limiting (Security)
    # Format: "count/period" (e.g., "20/minute", "100/hour")
    rate_limit_enabled: bool = True  # Disable for testing
    rate_limit_per_principal: str = "20/minute"  # every authenticated request
    rate_limit_login: str = "5/15minute"  # /authenticate, per IP
    rate_limit_account: str = "3/hour"  # /register, /pw_reset, per IP
    # memory:// for a single instance; redis://host:6379 when clustered
    rate_limit_storage_uri: str = "memory://"

    # Email (Resend)
    email_from: str = "noreply@newsgears.io"
    resend_api_key: SecretStr = SecretStr("")
    mail_disabled: bool = False
    mail_log_messages: bool = False
    pw_reset_email_url_template: str = "http://localhost:8080/pw_reset/{token}"
    verification_email_url_template: str = "http://localhost:8080/verify/{token}"

    # Redirects after e-mailed links are followed
    pw_reset_continue_url: str = "http://localhost:3000/pw_update"
    pw_reset_error_url: str = "http://localhost:3000/pw_reset_error"
    verification_continue_url: str = "http://localhost:3000/verified"
    verification_error_url: str = "http://localhost:3000/verification_error"

    # OAuth success redirects are only followed to these URIs
    authorized_redirect_uris: list[str] = ["http://localhost:3000/app"]

    @property
    def database_url(self) -> str:
        """Async database URL for SQLAlchemy."""
        return (
            f"postgresql+asyncpg://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @property
    def database_url_sync(self) -> str:
        """Sync database URL for Alembic."""
        return (
            f"postgresql://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @model_validator(mode="after")
    def check_production_security(self) -> "Settings":
        """Validate security requirements.

        Security: Prevents deployment with known insecure defaults.
        Checks:
        - CORS must not use wildcard origin (incompatible with credentials)
        - Single-user mode needs an admin username to authenticate as
        - Database password must not be the default in production
        - TOKEN_SECRET must be set and >= 32 chars in production
        - The development flag must be off in production
        """
        if "*" in self.allowed_origins:
            msg = (
                "ALLOWED_ORIGINS must not contain '*' (wildcard). "
                "This application uses credentials (cookies) which are "
                "incompatible with wildcard CORS origins."
            )
            raise ValueError(msg)

        if self.single_user_mode and not self.admin_username.strip():
            msg = "ADMIN_USERNAME must be set when SINGLE_USER_MODE=true."
            raise ValueError(msg)

        if self.environment == "production":
            if self.database_password == _INSECURE_DEFAULT_PASSWORD:
                msg = (
                    "Cannot use default database password in production. "
                    "Set DATABASE_PASSWORD environment variable to a secure value."
                )
                raise ValueError(msg)

            secret_value = self.token_secret.get_secret_value()
            if not secret_value:
                msg = (
                    "TOKEN_SECRET must be set in production. "
                    'Generate with: python -c "import secrets; '
                    'print(secrets.token_hex(32))"'
                )
                raise ValueError(msg)
            if len(secret_value) < _MIN_TOKEN_SECRET_LENGTH:
                msg = (
                    f"TOKEN_SECRET must be at least {_MIN_TOKEN_SECRET_LENGTH} "
                    "characters for adequate security."
                )
                raise ValueError(msg)

            if self.development:
                msg = "DEVELOPMENT must be false in production (cookies lose Secure)."
                raise ValueError(msg)

        return self


settings = Settings()

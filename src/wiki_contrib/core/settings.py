"""Application settings and configuration.

This module defines all configuration options for the wiki contribution
service. Settings are loaded from environment variables with sensible
defaults. Secrets default to ``None``; the component that needs a missing
secret raises ``ConfigurationError`` when it is first used.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Wiki Contrib", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    environment: str = Field(default="production", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    site_name: str = Field(default="Slayer Legend Wiki", alias="SITE_NAME")
    site_url: str = Field(default="https://slayerlegend.wiki", alias="SITE_URL")

    # Secrets
    github_token: str | None = Field(default=None, alias="GITHUB_TOKEN")
    openai_api_key: str | None = Field(default=None, alias="OPENAI_API_KEY")
    sendgrid_api_key: str | None = Field(default=None, alias="SENDGRID_API_KEY")
    sendgrid_from_email: str | None = Field(default=None, alias="SENDGRID_FROM_EMAIL")
    recaptcha_secret_key: str | None = Field(default=None, alias="RECAPTCHA_SECRET_KEY")
    code_encryption_secret: str | None = Field(default=None, alias="CODE_ENCRYPTION_SECRET")
    token_signing_secret: str | None = Field(default=None, alias="TOKEN_SIGNING_SECRET")

    # Hosting repository that receives contributions
    github_api_url: str = Field(default="https://api.github.com", alias="GITHUB_API_URL")
    github_owner: str = Field(default="slayerlegend", alias="GITHUB_OWNER")
    github_repo: str = Field(default="wiki", alias="GITHUB_REPO")
    github_default_branch: str = Field(default="main", alias="GITHUB_DEFAULT_BRANCH")
    content_path_template: str = Field(
        default="public/content/{section}/{page_id}.md",
        alias="CONTENT_PATH_TEMPLATE",
    )

    # Shared state store
    store_backend: str = Field(default="redis", alias="STORE_BACKEND")
    redis_url: str = Field(default="redis://localhost:6379", alias="REDIS_URL")
    database_url: str = Field(default="sqlite:///./wiki_contrib.db", alias="DATABASE_URL")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Email verification
    verification_code_ttl_seconds: int = Field(default=600, alias="VERIFICATION_CODE_TTL_SECONDS")
    verification_token_ttl_seconds: int = Field(
        default=86_400,
        alias="VERIFICATION_TOKEN_TTL_SECONDS",
    )
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    code_requests_per_window: int = Field(default=5, alias="CODE_REQUESTS_PER_WINDOW")
    code_request_window_seconds: int = Field(default=3600, alias="CODE_REQUEST_WINDOW_SECONDS")
    code_confirm_failures_per_window: int = Field(
        default=5,
        alias="CODE_CONFIRM_FAILURES_PER_WINDOW",
    )

    # Anti-abuse
    recaptcha_verify_url: str = Field(
        default="https://www.google.com/recaptcha/api/siteverify",
        alias="RECAPTCHA_VERIFY_URL",
    )
    captcha_min_score: float = Field(default=0.5, alias="CAPTCHA_MIN_SCORE")
    contributions_per_window: int = Field(default=5, alias="CONTRIBUTIONS_PER_WINDOW")
    contribution_window_seconds: int = Field(default=3600, alias="CONTRIBUTION_WINDOW_SECONDS")
    rate_limit_history_size: int = Field(default=10, alias="RATE_LIMIT_HISTORY_SIZE")
    # Proxies in front of the service that append to X-Forwarded-For; 0 trusts no headers.
    trusted_proxy_hops: int = Field(default=1, alias="TRUSTED_PROXY_HOPS")

    # Content moderation
    openai_moderation_url: str = Field(
        default="https://api.openai.com/v1/moderations",
        alias="OPENAI_MODERATION_URL",
    )
    openai_moderation_model: str = Field(
        default="omni-moderation-latest",
        alias="OPENAI_MODERATION_MODEL",
    )
    moderation_sample_chars: int = Field(default=5000, alias="MODERATION_SAMPLE_CHARS")

    # Outbound email
    sendgrid_api_url: str = Field(
        default="https://api.sendgrid.com/v3/mail/send",
        alias="SENDGRID_API_URL",
    )

    # Outbound HTTP
    http_timeout_seconds: float = Field(default=10.0, alias="HTTP_TIMEOUT_SECONDS")

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(
        default=["*"],
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=False, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(
        default=["*"],
        alias="CORS_ALLOW_HEADERS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def is_development(self) -> bool:
        """Return True when running outside production."""
        return self.environment.lower() in {"development", "dev", "local", "test"}

    @property
    def database_url_sync(self) -> str:
        """Return a sync-compatible database URL for tooling.

        Strips an async driver suffix so Alembic can use the default
        synchronous driver.
        """
        url = self.database_url
        if url.startswith("postgresql+asyncpg"):
            return url.replace("postgresql+asyncpg", "postgresql", 1)
        return url


settings = Settings()

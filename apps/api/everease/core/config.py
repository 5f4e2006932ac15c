"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.01.00"

    # Proxy/Load Balancer Settings
    # Set to True when running behind nginx/Cloudflare to trust X-Forwarded-For
    TRUST_PROXY_HEADERS: bool = False

    # Database
    DATABASE_URL: str

    # Frontend origin (acceptance links point here)
    APP_ORIGIN: str = "http://localhost:5173"

    # CORS
    CORS_ORIGINS: str = "http://localhost:5173"

    # Session Token (supports key rotation)
    JWT_SECRET: str = "change-this-in-production"
    JWT_SECRET_PREVIOUS: str = ""  # Set during rotation, clear after
    JWT_EXPIRES_HOURS: int = 4

    # Invitation continuation state (survives the sign-in redirect)
    CONTINUATION_EXPIRES_MINUTES: int = 30

    # Identity provider (GoTrue-compatible auth server)
    IDENTITY_PROVIDER_URL: str = ""
    IDENTITY_PROVIDER_ANON_KEY: str = ""
    IDENTITY_PROVIDER_SERVICE_KEY: str = ""  # Admin lookups by email

    # Blob storage
    STORAGE_BACKEND: str = "local"  # local | s3
    LOCAL_STORAGE_PATH: str = "/tmp/everease-documents"
    S3_BUCKET: str = "everease-documents"
    S3_REGION: str = "us-east-1"
    S3_ENDPOINT_URL: str = ""
    AWS_ACCESS_KEY_ID: str = ""
    AWS_SECRET_ACCESS_KEY: str = ""
    SIGNED_URL_EXPIRY_SECONDS: int = 300

    # Outbound email (Resend)
    RESEND_API_KEY: str = ""
    EMAIL_FROM: str = ""  # e.g. "Ever Ease <noreply@everease.app>"

    # Invitation policy
    INVITATION_EXPIRY_DAYS: int = 7
    INVITATION_RESEND_COOLDOWN_MINUTES: int = 5

    # Death verification
    DEATH_CERTIFICATE_MAX_BYTES: int = 10 * 1024 * 1024  # 10 MiB
    VERIFICATION_AUTHORITY: str = "automatic"

    # When a deferred (post sign-in) acceptance hits an email mismatch, drop the
    # invitation as well as the continuation. Off: the link stays usable.
    DISCARD_INVITATION_ON_DEFERRED_MISMATCH: bool = False

    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""

    # Rate Limiting (requests per minute)
    RATE_LIMIT_AUTH: int = 5  # Sign-in attempts
    RATE_LIMIT_INVITATIONS: int = 20  # Token lookups / acceptance
    RATE_LIMIT_API: int = 60  # General API

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def jwt_secrets(self) -> list[str]:
        """Returns list of valid secrets (current first, then previous if set)."""
        secrets = [self.JWT_SECRET]
        if self.JWT_SECRET_PREVIOUS:
            secrets.append(self.JWT_SECRET_PREVIOUS)
        return secrets

    @property
    def cookie_secure(self) -> bool:
        """Secure cookies only outside dev/test."""
        return self.ENV not in ("dev", "test")

    @property
    def identity_provider_configured(self) -> bool:
        return bool(self.IDENTITY_PROVIDER_URL and self.IDENTITY_PROVIDER_ANON_KEY)

    @property
    def mail_configured(self) -> bool:
        return bool(self.RESEND_API_KEY and self.EMAIL_FROM)


settings = Settings()

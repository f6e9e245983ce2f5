# tierquota/config.py
import warnings
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "postgresql://localhost/tierquota"
    redis_url: str = ""  # Empty disables the policy cache
    jwt_secret: str = ""  # Required for JWT authentication
    jwt_expiry_seconds: int = 86400

    # Quota windows
    quota_timezone: str = "UTC"
    default_tier: str = "free"
    premium_tiers: str = "premium,admin"
    strict_quota_enforcement: bool = False

    # Policy cache
    policy_cache_enabled: bool = False
    policy_cache_ttl_seconds: int = 300

    # Admin access by email, comma separated
    admin_emails: str = ""

    # Image provider
    provider_url: str = "https://fal.run"
    provider_api_key: str = ""
    provider_timeout_seconds: float = 120.0

    class Config:
        env_file = ".env"

    @property
    def premium_tier_names(self) -> set[str]:
        return {t.strip() for t in self.premium_tiers.split(",") if t.strip()}

    @property
    def admin_email_list(self) -> set[str]:
        return {e.strip().lower() for e in self.admin_emails.split(",") if e.strip()}

    def validate_secrets(self) -> None:
        """Validate that required secrets are configured.

        Call this at application startup to fail fast if secrets are missing.
        """
        if not self.jwt_secret:
            raise ValueError(
                "Required secrets not configured: JWT_SECRET. "
                "Set this environment variable before starting the server."
            )


settings = Settings()

# Warn at import time if secrets are not configured (don't fail yet for tests)
if not settings.jwt_secret:
    warnings.warn(
        "JWT_SECRET not configured. "
        "The server will fail to start. Set this environment variable.",
        UserWarning,
    )

"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.03.00"

    # Proxy/Load Balancer Settings
    # Set to True when running behind nginx/Cloudflare to trust X-Forwarded-For
    TRUST_PROXY_HEADERS: bool = False

    # Database
    DATABASE_URL: str

    # PII digests (HMAC key) and at-rest encryption (Fernet key)
    PII_HASH_KEY: str = ""
    DATA_ENCRYPTION_KEY: str = ""  # Generate with: python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"

    # Origins allowed to call the public signup endpoints (comma-separated)
    TRUSTED_ORIGINS: str = ""

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # Internal endpoints (/process) - protected by X-Internal-Secret
    INTERNAL_SECRET: str = ""

    # Cloudflare Turnstile
    TURNSTILE_SECRET_KEY: str = ""
    TURNSTILE_VERIFY_URL: str = "https://challenges.cloudflare.com/turnstile/v0/siteverify"
    TURNSTILE_TIMEOUT_SECONDS: float = 5.0

    # Geolocation database (MaxMind .mmdb), loaded once per process
    GEOIP_DATABASE_PATH: str = ""

    # Signup rate limiting (historical submissions)
    RATE_LIMIT_WINDOW_DAYS: int = 365

    # HTTP rate limiting (requests per minute, per client IP)
    RATE_LIMIT_PUBLIC_SUBMIT: int = 30
    RATE_LIMIT_PUBLIC_READ: int = 60
    REDIS_URL: str = "redis://localhost:6379/0"

    # Phone verification
    VERIFICATION_CODE_LENGTH: int = 6
    VERIFICATION_CODE_TTL_MINUTES: int = 10
    VERIFICATION_MAX_ATTEMPTS: int = 5
    SMS_API_URL: str = ""
    SMS_API_KEY: str = ""
    SMS_SENDER_ID: str = "Leadflow"
    VERIFICATION_TIMEOUT_SECONDS: float = 10.0

    # Enrichment waterfall, highest priority first: "name=url,name=url"
    ENRICHMENT_PROVIDERS: str = ""
    ENRICHMENT_API_KEY: str = ""
    ENRICHMENT_TIMEOUT_SECONDS: float = 4.0

    # Downstream collaborators
    PROVISIONING_API_URL: str = ""
    PROVISIONING_API_KEY: str = ""
    MARKETING_API_URL: str = ""
    MARKETING_API_KEY: str = ""
    DOWNSTREAM_TIMEOUT_SECONDS: float = 15.0

    # Classification
    SPAM_SCORE_THRESHOLD: int = 70

    # Dedup claims for async processing
    DEDUP_CLAIM_TTL_MINUTES: int = 60

    # Completed submissions left undispatched longer than this are re-queued
    DISPATCH_STRANDED_AFTER_MINUTES: int = 15

    # Worker
    WORKER_POLL_INTERVAL: int = 10
    WORKER_BATCH_SIZE: int = 10

    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def trusted_origins_list(self) -> list[str]:
        """Parse TRUSTED_ORIGINS into a normalized list (no trailing slash)."""
        return [
            o.strip().rstrip("/").lower() for o in self.TRUSTED_ORIGINS.split(",") if o.strip()
        ]

    @property
    def enrichment_providers_list(self) -> list[tuple[str, str]]:
        """Parse ENRICHMENT_PROVIDERS into ordered (name, url) pairs."""
        providers: list[tuple[str, str]] = []
        for item in self.ENRICHMENT_PROVIDERS.split(","):
            name, sep, url = item.strip().partition("=")
            if sep and name.strip() and url.strip():
                providers.append((name.strip(), url.strip()))
        return providers


# Public formType -> internal formName (rate-limit partition)
FORM_TYPES: dict[str, str] = {
    "trial": "free_trial",
    "demo": "demo_request",
    "sandbox": "sandbox_signup",
}

# Destination regions a completed signup can be provisioned into
DESTINATION_REGIONS: tuple[str, ...] = (
    "US_E",
    "US_W",
    "CA_C",
    "EU_W",
    "EU_C",
    "UK_S",
    "AP_SE",
    "AP_NE",
    "AU_E",
)


settings = Settings()

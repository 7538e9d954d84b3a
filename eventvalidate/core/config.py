# eventvalidate/core/config.py

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Values are read from the process environment (docker compose passes the
    # root .env through). Defaults only make a local checkout importable.
    model_config = SettingsConfigDict(extra="ignore")

    # The environment mode: 'local' or 'prod'
    ENV: str = "local"

    # --- Production URLs (for inside Docker) ---
    DATABASE_URL_PROD: str = "postgresql://postgres:postgres@db:5432/eventvalidate"
    REDIS_URL_PROD: str = "redis://redis:6379/0"
    KAFKA_BOOTSTRAP_SERVERS_PROD: str = "kafka:9092"

    # --- Local Development URLs (for running locally) ---
    DATABASE_URL_LOCAL: str = "sqlite:///./eventvalidate.db"
    REDIS_URL_LOCAL: str = "redis://localhost:6379/0"
    KAFKA_BOOTSTRAP_SERVERS_LOCAL: str = "localhost:9092"

    # Other secrets
    JWT_SECRET: str = "CHANGE-ME-staff-token-secret"
    QR_SIGNING_SECRET: str = "CHANGE-ME-IN-PRODUCTION-use-a-64-char-random-string"
    PAYMENT_GATEWAY_SECRET: str = "CHANGE-ME-gateway-webhook-secret"
    AWS_ACCESS_KEY_ID: str = ""
    AWS_SECRET_ACCESS_KEY: str = ""
    AWS_S3_BUCKET_NAME: str = "eventvalidate-uploads"
    AWS_S3_REGION: str = "us-east-1"
    AWS_S3_ENDPOINT_URL: str | None = None

    LOG_LEVEL: str = "INFO"

    # --- Credential issuance ---
    QR_TOKEN_TTL_DAYS: int = 30
    MANUAL_CODE_LENGTH: int = 6
    CREDENTIAL_MAX_ATTEMPTS: int = 10
    DEFAULT_PAYMENT_CURRENCY: str = "NGN"

    # --- Entrance validation ---
    CONFIRMATION_TOKEN_TTL_SECONDS: int = 600
    SIMILARITY_AUTO_APPROVE: float = 0.65
    SIMILARITY_MANUAL_REVIEW: float = 0.40
    VALIDATION_RATE_LIMIT: str = "60/minute"

    # --- Payments ---
    STALE_PAYMENT_MINUTES: int = 60

    # --- Outbox relay ---
    # A claim older than this belongs to a relay that died mid-run
    OUTBOX_CLAIM_TIMEOUT_SECONDS: int = 300

    # --- Dynamic Properties ---
    @property
    def DATABASE_URL(self) -> str:
        return (
            self.DATABASE_URL_LOCAL if self.ENV == "local" else self.DATABASE_URL_PROD
        )

    @property
    def REDIS_URL(self) -> str:
        return self.REDIS_URL_LOCAL if self.ENV == "local" else self.REDIS_URL_PROD

    @property
    def KAFKA_BOOTSTRAP_SERVERS(self) -> str:
        return (
            self.KAFKA_BOOTSTRAP_SERVERS_LOCAL
            if self.ENV == "local"
            else self.KAFKA_BOOTSTRAP_SERVERS_PROD
        )


# Create a single instance of the settings
settings = Settings()

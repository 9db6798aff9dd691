"""
Centralized configuration using pydantic-settings.

How it works:
- Reads environment variables automatically (e.g., POSTGRES_HOST env var → Settings.POSTGRES_HOST)
- Falls back to defaults defined here if env vars are not set
- Can also read from a .env file in the project root

Every module imports `settings` from here instead of hardcoding values.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── PostgreSQL ──────────────────────────────────────────────
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "genjobs"
    POSTGRES_PASSWORD: str = "genjobs"
    POSTGRES_DB: str = "genjobs"

    # ── Redis (job events + dead-letter list) ───────────────────
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0

    # ── Worker ──────────────────────────────────────────────────
    WORKER_POOL_SIZE: int = 5          # caps concurrent calls to the provider
    WORKER_POLL_INTERVAL: float = 0.5  # seconds between scheduler loop ticks
    RUNNING_JOB_TIMEOUT: float = 120.0 # RUNNING longer than this is reclaimed

    # ── Retry ───────────────────────────────────────────────────
    MAX_ATTEMPTS: int = 3
    RETRY_BACKOFF_BASE: float = 2.0    # delay = base * 2**attempt
    RETRY_BACKOFF_MAX: float = 300.0

    # ── Generation provider ─────────────────────────────────────
    GENERATION_BACKEND: str = "simulated"  # "http" or "simulated"
    GENERATION_API_URL: str = "https://api.example-imagegen.com/v1/images"
    GENERATION_API_KEY: str = ""
    GENERATION_MODEL: str = "product-photo-v1"
    GENERATION_TIMEOUT: float = 30.0

    # Simulated backend knobs (local development and demos)
    SIMULATED_LATENCY: float = 1.0
    SIMULATED_TRANSIENT_FAILURE_RATE: float = 0.0
    SIMULATED_PERMANENT_FAILURE_RATE: float = 0.0

    # ── Storage ─────────────────────────────────────────────────
    STORAGE_BACKEND: str = "local"     # "s3" or "local"
    ASSET_KEY_PREFIX: str = "generations"
    STORAGE_PUBLISH_ATTEMPTS: int = 3
    STORAGE_RETRY_WAIT: float = 0.5    # exponential wait multiplier (seconds)

    S3_ENDPOINT_URL: str | None = None
    S3_ACCESS_KEY_ID: str | None = None
    S3_SECRET_ACCESS_KEY: str | None = None
    S3_REGION: str = "us-east-1"
    S3_BUCKET_NAME: str = "generated-images"
    S3_PUBLIC_BASE_URL: str | None = None  # CDN in front of the bucket

    LOCAL_STORAGE_ROOT: str = "./data/assets"
    LOCAL_STORAGE_BASE_URL: str = "http://localhost:8000/assets"

    # ── App ─────────────────────────────────────────────────────
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    @property
    def database_url(self) -> str:
        """Async connection string for FastAPI (uses asyncpg driver)."""
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def sync_database_url(self) -> str:
        """Sync connection string for worker threads (uses psycopg2 driver)."""
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def redis_url(self) -> str:
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


# Singleton — import this everywhere
settings = Settings()

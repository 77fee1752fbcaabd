"""Application configuration"""

from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings"""

    # Database
    database_url: str = "sqlite:///./reportsync.db"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Public base URL of this deployment, e.g. "https://bugs.example.com".
    # Webhook callbacks and linked attachment URLs are built from it; automatic
    # sync cannot be enabled while it is unset.
    app_url: str | None = None

    # GitHub
    github_api_url: str = "https://api.github.com"
    github_api_version: str = "2022-11-28"
    http_timeout_seconds: float = 30.0

    # Local attachment storage root (FileStore.read_bytes)
    storage_path: str = "./data/uploads"

    # Sync queue
    sync_queue_interval_seconds: float = 5.0
    sync_queue_max_concurrent: int = 3
    sync_queue_max_attempts: int = 3
    sync_retry_delays_seconds: List[float] = [1.0, 5.0, 15.0]
    # Pause between reports in a batch sync (GitHub secondary rate limits)
    batch_sync_delay_seconds: float = 0.5

    # Logging
    log_level: str = "INFO"

    # Auth (optional)
    # When enabled, the admin API is protected by HTTP Basic auth, except for
    # /health and the webhook endpoints (those are authenticated by signature).
    auth_enabled: bool = False
    auth_username: str | None = None
    auth_password: str | None = None

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()

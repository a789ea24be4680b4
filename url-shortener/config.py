import os
from dataclasses import dataclass

@dataclass(frozen=True)
class Settings:
    base_url: str = os.getenv("BASE_URL", "")
    default_validity_minutes: int = int(os.getenv("DEFAULT_VALIDITY_MINUTES", "30"))
    max_validity_minutes: int = int(os.getenv("MAX_VALIDITY_MINUTES", "525600"))
    cleanup_interval_minutes: float = float(os.getenv("CLEANUP_INTERVAL_MINUTES", "30"))
    log_dir: str = os.getenv("LOG_DIR", "logs")
    remote_log_url: str = os.getenv("REMOTE_LOG_URL", "")
    remote_log_max_retries: int = int(os.getenv("REMOTE_LOG_MAX_RETRIES", "3"))
    remote_log_retry_delay: float = float(os.getenv("REMOTE_LOG_RETRY_DELAY", "1.0"))
    remote_log_timeout: float = float(os.getenv("REMOTE_LOG_TIMEOUT", "5.0"))
    remote_log_console: bool = os.getenv("REMOTE_LOG_CONSOLE", "false").lower() in ("1", "true", "yes")
    cors_origins: str = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")
    rate_limit_max_requests: int = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "100"))
    rate_limit_window_seconds: float = float(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "900"))

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

settings = Settings()

"""
Tap4Service settings.

Values come from the process environment or a local ``.env`` file; every
field has a default that runs the API against a SQLite file on one machine.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the Tap4Service backend."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # -- Application --
    app_name: str = "Tap4Service API"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"

    # -- Database --
    database_url: str = "sqlite+aiosqlite:///./tap4service.db"
    sql_echo: bool = False
    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_create_tables: bool = True

    # -- API --
    api_prefix: str = "/api"
    cors_allowed_origins: str = "*"

    # -- JWT / Auth --
    jwt_secret: str = "tap4service-dev-secret-change-me"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24 * 30
    bcrypt_rounds: int = 12

    # -- Scheduling --
    display_timezone: str = "Pacific/Auckland"
    notice_window_hours: int = 2
    poll_interval_seconds: float = 20.0

    # -- WebSocket --
    ws_cors_allowed_origins: str = "*"
    ws_ping_timeout: int = 30
    ws_ping_interval: int = 25
    # Leave empty for a single process; set to redis://... to fan out across workers
    ws_redis_url: str = ""


settings = Settings()

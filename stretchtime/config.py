"""Application configuration management using Pydantic's BaseSettings."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Defines runtime settings for the service, loaded from .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_prefix="STRETCHTIME_")

    # App settings
    debug: bool = False
    log_level: str = "INFO"

    # Local control API
    api_host: str = "127.0.0.1"
    api_port: int = 8230

    # User settings storage
    data_dir: Path = Path("data")
    settings_file: str = "settings.enc"
    key_file: str = ".key"

    # Reminder timer
    timer_check_interval_seconds: float = 30.0

    # Calendar availability
    calendar_poll_interval_seconds: float = 300.0
    calendar_cache_ttl_seconds: float = 300.0
    calendar_lookahead_minutes: int = 120

    # OAuth
    token_expiry_margin_seconds: int = 60
    auth_timeout_seconds: float = 120.0
    http_timeout_seconds: float = 10.0

    @property
    def settings_path(self) -> Path:
        return self.data_dir / self.settings_file

    @property
    def key_path(self) -> Path:
        return self.data_dir / self.key_file


settings = Settings()

from typing import ClassVar
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path


def _split_comma_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    app_name: ClassVar[str] = "Vorleser"
    version: ClassVar[str] = "0.2.0"

    database_url: str = "sqlite:///./storage/database/vorleser.db"

    # --- ALLOWED ORIGINS ---
    # Comma-separated list of domains (e.g., "http://localhost:3000,http://localhost:8000")
    allowed_origins_raw: str = Field(default="*", alias="ALLOWED_ORIGINS")

    @property
    def allowed_origins(self) -> list[str]:
        return _split_comma_list(self.allowed_origins_raw)

    # Logging
    log_dir: Path = Path("storage/logs")
    log_level: str = "INFO"

    # Supported audio formats (lowercase, with dot)
    supported_extensions: list = [".mp3", ".m4a", ".m4b", ".ogg", ".opus", ".flac", ".wav", ".aac"]

    # --- SCANNER ---
    # Bytes read per chunk while hashing (memory stays constant per file)
    hash_chunk_size: int = 1024 * 1024
    # Number of libraries scanned in parallel
    scan_workers: int = 2

    # --- SCHEDULER ---
    # hourly | daily | weekly | disabled
    scan_interval: str = "daily"
    scan_hour: int = 4

    # --- WATCHER ---
    watch_enabled: bool = False
    watch_batch_seconds: int = 600

    model_config = SettingsConfigDict(env_file=".env",
                                      extra="ignore",
                                      env_ignore_empty=True,
                                      case_sensitive=False,
                                      env_nested_delimiter=None
                                      )


settings = Settings()

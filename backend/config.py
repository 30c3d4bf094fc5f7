from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List


class Settings(BaseSettings):
    # CORS origins: set ALLOWED_ORIGINS env var for production (JSON list)
    allowed_origins: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]
    # A connection silent for longer than this is treated as disconnected
    heartbeat_timeout_seconds: float = 30.0
    # How often the presence monitor sweeps for silent connections
    heartbeat_interval_seconds: float = 25.0
    # Room id draws before giving up on finding a free 6-digit id
    room_id_attempts: int = 20
    log_level: str = "INFO"
    debug: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
    )


settings = Settings()

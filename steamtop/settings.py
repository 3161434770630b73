from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # http
    http_timeout: float = 10.0
    http_max_retries: int = 1
    http_backoff_factor: float = 1.5
    user_agent: str = "steamtop/0.1"
    # pipeline
    max_workers: int = 12
    # server
    max_json_games: int = 10000
    max_request_size: int = 128
    gzip_minimum_size: int = 500
    # logging
    log_level: str = "INFO"
    # storage
    default_database: Path = Path.home() / ".config" / "steamdb" / "steam.db"

    class Config:
        env_prefix = "STEAMTOP_"
        env_file = ".env"
        extra = "ignore"

settings = Settings()

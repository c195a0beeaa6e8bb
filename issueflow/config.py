from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="ISSUEFLOW_", env_file=".env", extra="ignore")

    app_env: str = "dev"
    database_url: str = "sqlite:///./issueflow.db"
    db_timeout_seconds: float = 10.0
    # Fan-out of board synchronization after publish; 1 runs projects inline
    sync_max_workers: int = 4
    sync_timeout_seconds: float = 30.0
    log_level: str = "INFO"
    cors_origins: List[str] = ["http://localhost:5173", "http://localhost:3000"]

settings = Settings()  # reads from env

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    timezone: str = "UTC"
    sqlite_path: str = "data/habits.db"
    log_path: str = "logs/habits.log"
    log_level: str = "INFO"
    horizon_days: int = 14
    allow_backfill: bool = True
    rollover_check_interval_sec: int = 60
    dispatcher_url: str = "http://127.0.0.1:8090"
    dispatcher_token: str = ""
    dispatcher_timeout_sec: float = 10.0
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    run_migrations_on_start: bool = True


settings = Settings()

from pathlib import Path
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    BOT_TOKEN: str = ""
    DB_PATH: Path = Path.home() / "event_bot.db"
    # Full SQLAlchemy URL; overrides DB_PATH when set (e.g. for a shared server DB)
    DATABASE_URL: str | None = None

    # Dynamic numbers and reserved numbers live in 1..MAX_DYNAMIC_NUMBER,
    # fixed bindings may use the wider 1..MAX_FIXED_NUMBER range.
    MAX_DYNAMIC_NUMBER: int = 99
    MAX_FIXED_NUMBER: int = 999

    # Unfinished bot registrations are dropped after this many idle minutes
    REGISTRATION_TTL_MINUTES: int = 30

    ADMIN_API_HOST: str = "127.0.0.1"
    ADMIN_API_PORT: int = 8080
    ADMIN_API_TOKEN: str | None = None

    TIMEZONE: str = "Europe/Moscow"
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @property
    def database_url(self) -> str:
        return self.DATABASE_URL or f"sqlite+aiosqlite:///{self.DB_PATH}"


settings = Settings()

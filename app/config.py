from pydantic_settings import BaseSettings
from functools import lru_cache
import os

class Settings(BaseSettings):
    # Auth
    jwt_secret: str = "change-me"
    jwt_expire_days: int = 7

    # Environment: development / production / test
    environment: str = "development"

    # Database - DATABASE_URL from the platform, fallback to SQLite for local
    database_url: str = None

    # n8n roadmap generation workflow
    n8n_roadmap_webhook_url: str = ""
    n8n_webhook_secret: str = ""
    webhook_timeout_seconds: float = 10.0
    backend_url: str = "http://localhost:5000"

    # Contact form mail delivery
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""

    # App Settings
    app_name: str = "SkillSync"
    app_version: str = "1.0.0"
    debug: bool = False

    # CORS / rate limiting
    allowed_origins: str = "http://localhost:3000"
    rate_limit: str = "100/15minutes"
    rate_limit_enabled: bool = True

    # API Settings
    backend_host: str = "0.0.0.0"
    backend_port: int = int(os.getenv("PORT", "5000"))

    class Config:
        env_file = ".env"

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        if self.database_url is None:
            self.database_url = "sqlite+aiosqlite:///./skillsync.db"
        # SQLAlchemy async needs postgresql+asyncpg://
        if self.database_url.startswith("postgres://"):
            self.database_url = self.database_url.replace("postgres://", "postgresql+asyncpg://", 1)
        elif self.database_url.startswith("postgresql://"):
            self.database_url = self.database_url.replace("postgresql://", "postgresql+asyncpg://", 1)

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

@lru_cache()
def get_settings() -> Settings:
    return Settings()

import logging
from typing import List, Optional

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    # Application Information
    app_name: str = Field(default="Skills Assessment Platform")
    app_description: str = Field(default="Timed candidate test attempts")
    app_version: str = Field(default="1.0.0")
    app_url: str = Field(default="http://localhost:8000")
    debug: bool = Field(default=True)
    production: bool = Field(default=False)
    timezone: str = Field(default="UTC")

    # Database Configuration
    database_url: Optional[str] = Field(default=None)
    db_host: str = Field(default="127.0.0.1")
    db_port: int = Field(default=5432)
    db_database: str = Field(default="assessment")
    db_username: str = Field(default="home")
    db_password: str = Field(default="123")

    # Security Settings
    cors_allowed_origins: List[str] = Field(default=["http://localhost:3000"])
    rate_limit_enabled: bool = Field(default=True)
    rate_limit_storage_uri: str = Field(default="memory://")
    rate_limit_default: str = Field(default="120/minute")

    # JWT Configuration
    jwt_secret: str = Field(default="your-secret-key-change-in-production")
    jwt_algorithm: str = Field(default="HS256")
    jwt_candidate_expiration: int = Field(default=1)
    jwt_issuer: str = Field(default="Skills Assessment Platform")

    # Proctoring
    proctor_warning_limit: int = Field(default=5, ge=1)

    # Attempt expiry sweep
    expiry_sweep_enabled: bool = Field(default=True)
    expiry_sweep_interval_seconds: int = Field(default=60, ge=5)
    expiry_sweep_batch_size: int = Field(default=200, ge=1)

    # Notifications
    notification_workers: int = Field(default=2, ge=1)
    telegram_bot_token: str = Field(default="")
    telegram_notification_enabled: bool = Field(default=False)

    # Logging
    log_level: str = Field(default="info")
    log_file: str = Field(default="logs/app.log")

    @property
    def sqlalchemy_url(self) -> str:
        if self.database_url:
            return self.database_url
        return "postgresql+psycopg2://{user}:{password}@{host}:{port}/{database}".format(
            user=self.db_username,
            password=self.db_password,
            host=self.db_host,
            port=self.db_port,
            database=self.db_database,
        )

    # ============================
    # Generic comma-separated parser
    # ============================
    @staticmethod
    def _parse_csv(value, default):
        if isinstance(value, str):
            items = [x.strip() for x in value.split(",") if x.strip()]
            return items if items else default
        if isinstance(value, list):
            return value
        return default

    @field_validator("cors_allowed_origins", mode="before")
    def validate_cors(cls, v):
        return cls._parse_csv(v, ["http://localhost:3000"])

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }


def load_settings():
    try:
        settings = Settings()
        logger.debug("Settings loaded successfully")
        return settings
    except ValidationError as e:
        logger.error(f"Settings validation error: {e}")
        raise


settings = load_settings()

"""Application settings loaded from environment variables or a `.env` file."""

from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):

    app_name: str = Field(default="Hash View Chat", alias="APP_NAME")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # MongoDB
    mongodb_url: str = Field(default="mongodb://localhost:27017", alias="MONGODB_URL")
    mongodb_db: str = Field(default="hashview", alias="MONGODB_DB")

    # JWT
    secret_key: str = Field(alias="SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(default=60 * 24, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    # Presence mirror; disabled when unset
    redis_url: Optional[str] = Field(default=None, alias="REDIS_URL")
    presence_ttl_seconds: int = Field(default=60, alias="PRESENCE_TTL_SECONDS")

    # Firebase Cloud Messaging; push is a no-op when unset
    fcm_service_account_file: Optional[str] = Field(default=None, alias="FCM_SERVICE_ACCOUNT_FILE")
    fcm_project_id: Optional[str] = Field(default=None, alias="FCM_PROJECT_ID")

    cors_origins: List[str] = Field(default=["*"], alias="CORS_ORIGINS")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )


settings = Settings()  # type: ignore[call-arg]

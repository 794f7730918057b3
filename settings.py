from typing import List, Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Process configuration, read once from the environment (or `.env`)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server
    host: str = Field("0.0.0.0", alias="HOST")
    port: int = Field(8080, alias="PORT")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"], alias="CORS_ORIGINS")
    static_dir: str = Field("public", alias="STATIC_DIR")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    # MongoDB
    database_url: str = Field("mongodb://localhost:27017", alias="DATABASE_URL")
    database_name: str = Field("cfDB", alias="DATABASE_NAME")

    # Auth / JWT
    jwt_secret: SecretStr = Field(SecretStr("dev-secret-key"), alias="JWT_SECRET")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")
    jwt_expires_in: int = Field(7 * 24 * 60 * 60, alias="JWT_EXPIRES_IN")  # seconds

    # Password hashing work factor
    bcrypt_rounds: int = Field(10, ge=4, le=31, alias="BCRYPT_ROUNDS")


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Load cached Settings."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset settings cache (useful in tests)."""
    global _settings
    _settings = None

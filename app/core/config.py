from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field(..., alias="DATABASE_URL")

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    # Receipt numbers look like GVS2026-000042
    receipt_sequence_width: int = Field(6, alias="RECEIPT_SEQUENCE_WIDTH")
    receipt_sequence_max_retries: int = Field(3, alias="RECEIPT_SEQUENCE_MAX_RETRIES")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()

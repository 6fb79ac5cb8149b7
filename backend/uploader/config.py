from pydantic_settings import BaseSettings
from pydantic import Field, validator
import logging
import sys
import os
from pathlib import Path
from typing import List, Optional
from .core.exceptions import ConfigurationError


class Settings(BaseSettings):
    # Storage backend
    web3storage_token: Optional[str] = Field(
        None, description="Bearer token for the web3.storage upload API"
    )
    storage_api_url: str = Field(
        "https://api.web3.storage", description="Base URL of the storage backend"
    )

    # Upload Settings
    max_upload_bytes: int = Field(
        10 * 1024 * 1024, description="Maximum payload size of a single part", gt=0
    )
    max_request_bytes: int = Field(
        11 * 1024 * 1024, description="Maximum size of the whole request body", gt=0
    )
    max_parts: int = Field(
        8, description="Maximum number of parts in one multipart body", gt=0
    )
    request_timeout_seconds: float = Field(
        60.0, description="Deadline for reading the body and both uploads", gt=0
    )

    # Metadata defaults
    default_name: str = Field("Untitled", description="Fallback metadata name")
    default_description: str = Field(
        "Uploaded via the asset upload service",
        description="Fallback metadata description",
    )

    # HTTP Settings
    cors_allow_origins: List[str] = Field(
        default_factory=lambda: ["*"], description="Allowed CORS origins"
    )

    # Logging Settings
    log_level: str = Field("INFO", description="Logging level")
    log_file: Optional[str] = Field(None, description="Log file path")

    @validator("log_level")
    def validate_log_level(cls, v):
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ConfigurationError(
                f"Invalid log level. Must be one of {valid_levels}"
            )
        return v.upper()

    class Config:
        env_file = os.getenv("ENV_FILE", ".env")
        extra = "ignore"


settings = Settings()


def setup_logging():
    """Configure logging with console and optional file handlers."""
    try:
        log_level = getattr(logging, settings.log_level)

        handlers = [logging.StreamHandler(sys.stdout)]

        if settings.log_file:
            log_path = Path(settings.log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(log_path))

        logging.basicConfig(
            level=log_level,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            handlers=handlers,
        )

        logger = logging.getLogger(__name__)
        logger.info(f"Logging configured with level: {settings.log_level}")
        return logger

    except Exception as e:
        raise ConfigurationError(f"Failed to setup logging: {str(e)}")


logger = setup_logging()

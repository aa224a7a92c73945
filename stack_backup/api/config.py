"""Configuration for FastAPI application."""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator
from typing import List, Optional, Union
import json


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",  # Ignore extra environment variables
    )

    # API Configuration
    api_prefix: str = "/api"
    api_title: str = "stack-backup API"
    api_version: str = "0.3.0"
    allowed_origins: Union[str, List[str]] = ["*"]

    @field_validator('allowed_origins', mode='before')
    @classmethod
    def parse_allowed_origins(cls, v):
        """Parse allowed_origins from string or list."""
        if isinstance(v, str):
            # If it's a JSON array string, parse it
            if v.startswith('['):
                try:
                    return json.loads(v)
                except json.JSONDecodeError:
                    return [v]
            # Single origin string
            return [v]
        return v

    # Uploads
    upload_chunk_size: int = 1024 * 1024

    # Job tracking
    redis_url: Optional[str] = None
    redis_password: Optional[str] = None
    job_ttl: int = 604800  # 7 days
    max_local_jobs: int = 1000

    # Progress channel
    progress_send_timeout: float = 5.0


settings = Settings()

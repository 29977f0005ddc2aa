from pydantic_settings import BaseSettings
from typing import List, Union
from pydantic import field_validator
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # API Settings
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "Resume Pipeline API"

    # Database Settings
    POSTGRES_USER: str = "user"
    POSTGRES_PASSWORD: str = "password"
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_PORT: str = "5432"
    POSTGRES_DB: str = "talent_db"

    @property
    def DATABASE_URL(self) -> str:
        return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    # Redis Settings (Celery broker and result backend)
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0

    @property
    def REDIS_URL(self) -> str:
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    # Celery worker behaviour
    CELERY_TASK_ALWAYS_EAGER: bool = False  # Run tasks in-process (single-instance dev setups)
    CELERY_WORKER_CONCURRENCY: int = 4

    # OpenAI Settings
    OPENAI_API_KEY: str = ""
    OPENAI_MODEL: str = "gpt-4o"  # Vision model used for image OCR
    OPENAI_PARSING_MODEL: str = "gpt-4o-mini"  # Cheaper model for structured parsing
    OPENAI_TEMPERATURE: float = 0.0
    OPENAI_MAX_RETRIES: int = 2  # Client-level retries inside a single pipeline attempt
    OPENAI_TIMEOUT: float = 60.0

    # File Storage Settings
    USE_S3: bool = False
    S3_BUCKET_NAME: str = ""
    AWS_ACCESS_KEY_ID: str = ""
    AWS_SECRET_ACCESS_KEY: str = ""
    AWS_REGION: str = "us-east-1"
    LOCAL_STORAGE_DIR: str = "uploads"

    # Resume Pipeline Settings
    MAX_UPLOAD_SIZE_MB: int = 10
    PIPELINE_MAX_ATTEMPTS: int = 3
    PIPELINE_BACKOFF_DELAY_MS: int = 2000  # First retry delay, doubled on every attempt
    PIPELINE_BACKOFF_MAX_SECONDS: int = 60
    PIPELINE_STATUS_RETENTION_HOURS: int = 24

    # Logging
    LOG_LEVEL: str = "INFO"
    JSON_LOGS: bool = True

    # CORS Settings - can be set as JSON string in .env
    BACKEND_CORS_ORIGINS: Union[List[str], str] = ["http://localhost:3000", "http://localhost:8000"]

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: Union[List[str], str]) -> List[str]:
        """Parse CORS origins from JSON string or list"""
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                # If not valid JSON, split by comma
                return [origin.strip() for origin in v.split(",")]
        return v

    @property
    def MAX_UPLOAD_SIZE_BYTES(self) -> int:
        return self.MAX_UPLOAD_SIZE_MB * 1024 * 1024

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()

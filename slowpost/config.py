# slowpost/config.py
from pydantic_settings import BaseSettings
from pydantic import ConfigDict, field_validator
from typing import Optional


class Settings(BaseSettings):
    model_config = ConfigDict(env_file=".env", extra="allow", frozen=True)

    # Local store
    data_dir: str = "./data"
    letters_file_name: str = "letters.json"
    uploads_dir_name: str = "uploads"

    # Relational store (SQLAlchemy async URL, table "letters")
    database_url: Optional[str] = None

    # Object store (S3 or S3-compatible)
    s3_bucket: Optional[str] = None
    s3_region: str = "us-east-1"
    s3_endpoint_url: Optional[str] = None
    s3_public_base_url: Optional[str] = None
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None

    # Upload limits
    max_upload_files: int = 10
    max_upload_size_mb: int = 10

    # Resilience
    upload_retries: int = 2
    upload_backoff_ms: int = 600
    insert_max_attempts: int = 12

    # Edit password hashing cost
    password_kdf_rounds: int = 64

    # Sender country lookup
    geo_lookup_enabled: bool = True
    geo_lookup_url: str = "http://ip-api.com/json/{ip}?fields=status,country"
    geo_lookup_timeout_seconds: float = 3.0

    # App Settings
    host: str = "0.0.0.0"
    port: int = 3001
    debug: bool = False
    log_level: str = "INFO"

    @field_validator("insert_max_attempts")
    @classmethod
    def _cap_insert_attempts(cls, value: int) -> int:
        return max(1, min(value, 12))

    @field_validator("upload_retries")
    @classmethod
    def _non_negative_retries(cls, value: int) -> int:
        return max(0, value)

    @property
    def cloud_configured(self) -> bool:
        """Cloud mode needs both the relational store and the object store."""
        return bool(self.database_url and self.s3_bucket)

    @property
    def max_upload_size_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024


settings = Settings()

"""
Service configuration loaded from environment variables.
Required database and API settings must be present and non-empty.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import ValidationInfo, field_validator
from pydantic_settings import BaseSettings
from sqlalchemy.engine import URL, make_url


class ServiceConfig(BaseSettings):
    """
    Configuration for the book records service.
    Uses pydantic BaseSettings for environment variable management.
    """

    # Server Settings
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False

    # Database Settings
    db_server: str
    db_user: str
    db_password: str
    db_port: int
    db_name: str
    db_driver: str = "mssql+aioodbc"
    db_odbc_driver: str = "ODBC Driver 18 for SQL Server"
    db_trust_server_certificate: bool = True
    db_table: str = "tbl_book"
    db_schema: str = "dbo"
    database_url: Optional[str] = None  # Overrides the URL built from the DB_* fields
    verify_schema: bool = True

    # Security Settings
    api_key: str
    auth_scheme: str = "static"

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"
    log_file: Optional[str] = None

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",  # Ignore extra fields from .env
    }

    @field_validator("db_server", "db_user", "db_password", "db_name", "api_key")
    @classmethod
    def validate_required(cls, v, info: ValidationInfo):
        """Reject empty or whitespace-only required values."""
        if not v or not v.strip():
            raise ValueError(f"{info.field_name} must not be empty")
        return v

    @field_validator("db_port", "port")
    @classmethod
    def validate_port(cls, v):
        """Ensure ports are in the valid TCP range."""
        if v < 1 or v > 65535:
            raise ValueError("port must be between 1 and 65535")
        return v

    @field_validator("auth_scheme")
    @classmethod
    def validate_auth_scheme(cls, v):
        """Ensure the credential scheme is one we can verify."""
        valid_schemes = ["static", "sha256"]
        if v.lower() not in valid_schemes:
            raise ValueError(f"auth_scheme must be one of: {valid_schemes}")
        return v.lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Ensure log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v):
        """Ensure log format is valid."""
        valid_formats = ["json", "console"]
        if v.lower() not in valid_formats:
            raise ValueError(f"log_format must be one of: {valid_formats}")
        return v.lower()

    def get_database_url(self) -> URL:
        """Build the SQLAlchemy URL, honouring DATABASE_URL when set."""
        if self.database_url:
            return make_url(self.database_url)

        query = {"driver": self.db_odbc_driver}
        if self.db_trust_server_certificate:
            query["TrustServerCertificate"] = "yes"

        return URL.create(
            self.db_driver,
            username=self.db_user,
            password=self.db_password,
            host=self.db_server,
            port=self.db_port,
            database=self.db_name,
            query=query,
        )

    def get_table_schema(self) -> Optional[str]:
        """Schema qualifying the book table, or None for the default one."""
        return self.db_schema or None

    def get_log_file_path(self) -> Optional[Path]:
        """Get log file path as Path object."""
        if self.log_file:
            return Path(self.log_file)
        return None


@lru_cache
def get_config() -> ServiceConfig:
    """Load configuration once per process."""
    return ServiceConfig()

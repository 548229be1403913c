from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from qualtrics_mcp.app.exceptions import ConfigurationError


class Settings(BaseSettings):
    """Server settings loaded from environment variables.

    All settings can be configured via environment variables or .env file.
    The Qualtrics variables keep the names used by existing deployments
    (QUALTRICS_API_TOKEN, RATE_LIMIT_RPM, REQUEST_TIMEOUT, ...).
    """

    # Qualtrics credentials
    qualtrics_api_token: str = Field(default="", validation_alias="QUALTRICS_API_TOKEN")
    qualtrics_data_center: str = Field(
        default="", validation_alias="QUALTRICS_DATA_CENTER"
    )
    qualtrics_base_url: str = Field(default="", validation_alias="QUALTRICS_BASE_URL")

    # Outbound rate limiting
    rate_limiting_enabled: bool = Field(
        default=True, validation_alias="RATE_LIMITING_ENABLED"
    )
    rate_limit_rpm: int = Field(default=50, validation_alias="RATE_LIMIT_RPM")

    # Hard deadline for a single API call, in milliseconds
    request_timeout_ms: int = Field(default=30000, validation_alias="REQUEST_TIMEOUT")

    # HTTP Client connection pool settings
    httpx_connect_timeout: float = 10.0
    httpx_read_timeout: float = 60.0
    httpx_write_timeout: float = 10.0
    httpx_pool_timeout: float = 5.0
    httpx_keepalive_expiry: float = 30.0
    httpx_max_connections: int = 20
    httpx_max_keepalive_connections: int = 10

    # Where exports are written when they are too large to return inline
    export_download_dir: Path = Field(
        default_factory=lambda: Path.home() / "Downloads",
        validation_alias="EXPORT_DOWNLOAD_DIR",
    )

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    @property
    def base_url(self) -> str:
        """Build the Qualtrics API base URL.

        Priority:
        1. qualtrics_base_url (from QUALTRICS_BASE_URL)
        2. Derived from the data center id
        """
        if self.qualtrics_base_url:
            return self.qualtrics_base_url.rstrip("/")
        return f"https://{self.qualtrics_data_center}.qualtrics.com/API/v3"

    @property
    def request_timeout(self) -> float:
        """Request deadline in seconds."""
        return self.request_timeout_ms / 1000

    def check_credentials(self) -> None:
        """Fail fast when the server cannot authenticate against Qualtrics.

        Raises:
            ConfigurationError: If the API token or data center is missing.
        """
        missing = []
        if not self.qualtrics_api_token.strip():
            missing.append("QUALTRICS_API_TOKEN")
        if not self.qualtrics_data_center.strip() and not self.qualtrics_base_url:
            missing.append("QUALTRICS_DATA_CENTER")
        if missing:
            raise ConfigurationError(
                "Invalid configuration. Missing environment variables: "
                + ", ".join(missing)
            )

    @field_validator("rate_limit_rpm")
    @classmethod
    def validate_rate_limit_positive(cls, v: int) -> int:
        """Validate rate limit values are positive."""
        if v < 1:
            raise ValueError("RATE_LIMIT_RPM must be at least 1")
        return v

    @field_validator("request_timeout_ms")
    @classmethod
    def validate_request_timeout(cls, v: int) -> int:
        """Validate request timeout is positive."""
        if v <= 0:
            raise ValueError("REQUEST_TIMEOUT must be positive")
        return v

    @field_validator("httpx_connect_timeout", "httpx_read_timeout")
    @classmethod
    def validate_timeout_positive(cls, v: float) -> float:
        """Validate timeout values are positive."""
        if v <= 0:
            raise ValueError("Timeout values must be positive")
        return v

    model_config = SettingsConfigDict(
        env_file=".env", extra="ignore", populate_by_name=True
    )


# Global settings instance
settings = Settings()

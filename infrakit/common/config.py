"""Client configuration using pydantic-settings.

Settings are read from environment variables with the INFRAKIT_ prefix
(e.g., INFRAKIT_GITHUB_TOKEN). Every field has a default; the GitHub token must
be set before building a GitHubClient from settings. The Cloud Mail settings
default to the monitoring project the setup entrypoint provisions.
"""

from typing import Optional

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from infrakit.common.retry import RetryPolicy


class InfrakitSettings(BaseSettings):
    """infrakit configuration from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="INFRAKIT_",
        case_sensitive=False,
    )

    # -------------------------------------------------------------------------
    # GitHub Configuration
    # -------------------------------------------------------------------------
    # Required by GitHubClient.from_settings
    github_token: Optional[str] = None

    # Base URL for GitHub API (supports GitHub Enterprise)
    github_base_url: str = "https://api.github.com"

    github_timeout: float = 30.0

    # -------------------------------------------------------------------------
    # Retry / Pagination Configuration
    # -------------------------------------------------------------------------
    max_retry_count: int = 5
    retry_base_delay: float = 1.0
    retry_max_delay: float = 60.0
    per_page: int = 100

    # -------------------------------------------------------------------------
    # Cloud Mail Configuration
    # -------------------------------------------------------------------------
    # OAuth access token for the Cloud Mail API
    cloudmail_token: Optional[str] = None
    cloudmail_base_url: str = "https://cloudmail.googleapis.com/v1alpha3"
    cloudmail_timeout: float = 30.0
    cloudmail_project_id: str = "knative-tests"
    cloudmail_region: str = "us-central1"
    cloudmail_address_set_id: str = "monitoring-address-set"
    cloudmail_address_pattern: str = "monitoring-alert"
    cloudmail_sender_id: str = "monitoring-alert-sender"
    cloudmail_receipt_rule_id: str = "monitoring-receipt-drop-rule"

    # Recipient of the setup test message; the message is skipped when unset
    cloudmail_test_recipient: Optional[str] = None

    # -------------------------------------------------------------------------
    # Observability Configuration
    # -------------------------------------------------------------------------
    log_level: str = "INFO"
    log_json: bool = True
    prometheus_gateway_url: Optional[str] = None

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator("github_token")
    @classmethod
    def validate_github_token(cls, v: Optional[str]) -> Optional[str]:
        """Validate that a configured GitHub token is not blank."""
        if v is not None and not v.strip():
            raise ValueError("github_token cannot be empty")
        return v

    @field_validator("github_base_url", "cloudmail_base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Validate that API base URLs are http(s) URLs."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("base URL must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("max_retry_count")
    @classmethod
    def validate_max_retry_count(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_retry_count must be at least 1")
        return v

    @field_validator("per_page")
    @classmethod
    def validate_per_page(cls, v: int) -> int:
        """GitHub caps page size at 100."""
        if not 1 <= v <= 100:
            raise ValueError("per_page must be between 1 and 100")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {v}")
        return level

    @model_validator(mode="after")
    def validate_retry_delays(self) -> "InfrakitSettings":
        if self.retry_base_delay < 0:
            raise ValueError("retry_base_delay cannot be negative")
        if self.retry_max_delay < self.retry_base_delay:
            raise ValueError("retry_max_delay must be >= retry_base_delay")
        return self

    def retry_policy(self) -> RetryPolicy:
        """Build the backoff policy described by these settings."""
        return RetryPolicy(
            base_delay=self.retry_base_delay,
            max_delay=self.retry_max_delay,
        )


def get_settings() -> InfrakitSettings:
    """Create and return an InfrakitSettings instance.

    Raises:
        pydantic.ValidationError: If a field is invalid.
    """
    return InfrakitSettings()

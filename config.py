"""
Runtime configuration for the Infra as Design Slack app.

Read once from the environment at start-up and passed explicitly into the
Flask app and the Slack gateway.
"""

from typing import Mapping, Optional

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings

SLACK_API_URL = "https://slack.com/api"


class ConfigError(Exception):
    """Raised when a required setting is missing or malformed."""


class Config(BaseSettings):
    """Infra as Design configuration settings

    Configured via environment variables (or a .env file). The access token
    and signing secret are required: an unset signing secret must never mean
    "skip verification".
    """

    slack_access_token: str = Field(alias="SLACK_ACCESS_TOKEN")
    slack_signing_secret: str = Field(alias="SLACK_SIGNING_SECRET")

    # Server configuration
    port: int = Field(default=5000, alias="PORT", gt=0, le=65535)
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Slack Web API
    slack_api_url: str = Field(default=SLACK_API_URL, alias="SLACK_API_URL")
    report_channel: str = Field(default="#dj", alias="SLACK_REPORT_CHANNEL", min_length=1)
    request_timeout: float = Field(default=10.0, alias="SLACK_REQUEST_TIMEOUT", gt=0)
    max_retries: int = Field(default=2, alias="SLACK_MAX_RETRIES", ge=0)
    backoff_base: float = Field(default=0.5, alias="SLACK_BACKOFF_BASE", ge=0)
    backoff_max: float = Field(default=8.0, alias="SLACK_BACKOFF_MAX", ge=0)

    model_config = {
        "env_file": ".env",
        "case_sensitive": False,
        "extra": "ignore",
        "populate_by_name": True,
        "frozen": True,
    }

    @field_validator("slack_access_token", "slack_signing_secret")
    @classmethod
    def not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("slack_api_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return (value or SLACK_API_URL).rstrip("/")

    @field_validator("log_level")
    @classmethod
    def upper_log_level(cls, value: str) -> str:
        return (value or "INFO").upper()


def load_config(environ: Optional[Mapping[str, str]] = None) -> Config:
    """
    Build a Config from the process environment, or from `environ` when given.
    Any invalid or missing setting raises ConfigError so start-up fails.
    """
    try:
        if environ is None:
            return Config()
        return Config(**dict(environ))
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e

"""Configuration management for the glbt application."""

from pathlib import Path

from pydantic import AnyHttpUrl, Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_state_file() -> Path:
    return Path.home() / ".config" / "glbt" / "state.json"


class AppSettings(BaseSettings):
    """Application settings loaded from environment variables or a .env file."""

    model_config = SettingsConfigDict(
        env_file=(".env",),
        env_prefix="GLBT_",
        extra="ignore",
    )

    gitlab_url: AnyHttpUrl | None = Field(
        default=None,
        description="GitLab server base URL, without the api/v4 suffix. Overrides stored credentials.",
    )
    gitlab_token: SecretStr = Field(
        default=SecretStr(""),
        description="Personal access token with the api scope.",
    )
    state_file: Path = Field(
        default_factory=_default_state_file,
        description="File holding the credentials saved by `glbt login`.",
    )
    request_timeout: float | None = Field(
        default=None,
        gt=0,
        description="Optional per-request timeout in seconds. Requests never time out when unset.",
    )

    @model_validator(mode="after")
    def _require_url_and_token_together(self) -> "AppSettings":
        has_token = bool(self.gitlab_token.get_secret_value())
        if self.gitlab_url is not None and not has_token:
            msg = "GLBT_GITLAB_TOKEN must be configured together with GLBT_GITLAB_URL"
            raise ValueError(msg)
        if has_token and self.gitlab_url is None:
            msg = "GLBT_GITLAB_URL must be configured together with GLBT_GITLAB_TOKEN"
            raise ValueError(msg)
        return self


def load_settings() -> AppSettings:
    """Load application settings from supported sources."""
    return AppSettings()

"""Configuration settings for changeforge."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from changeforge.errors import ConfigError


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables, `.env`, or overrides."""

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )

    github_token: str | None = Field(default=None, validation_alias="GITHUB_TOKEN")
    github_owner: str | None = Field(default=None, validation_alias="GITHUB_OWNER")
    github_owner_type: str = Field(default="user", validation_alias="GITHUB_OWNER_TYPE")
    github_api_url: str = Field(
        default="https://api.github.com", validation_alias="GITHUB_API_URL"
    )
    github_timeout_seconds: int = Field(default=30, validation_alias="GITHUB_TIMEOUT_SECONDS")
    default_branch: str = Field(default="main", validation_alias="DEFAULT_BRANCH")
    required_status_check: str = Field(default="build", validation_alias="REQUIRED_STATUS_CHECK")
    merge_poll_interval_seconds: float = Field(
        default=5.0, validation_alias="MERGE_POLL_INTERVAL_SECONDS"
    )
    merge_max_attempts: int = Field(default=20, validation_alias="MERGE_MAX_ATTEMPTS")
    merge_poll_backoff: float = Field(default=1.0, validation_alias="MERGE_POLL_BACKOFF")
    merge_max_interval_seconds: float = Field(
        default=30.0, validation_alias="MERGE_MAX_INTERVAL_SECONDS"
    )
    max_batch_tasks: int = Field(default=25, validation_alias="MAX_BATCH_TASKS")
    strict_dependencies: bool = Field(default=False, validation_alias="STRICT_DEPENDENCIES")
    policy_max_tokens: int = Field(default=120_000, validation_alias="POLICY_MAX_TOKENS")
    policy_max_api_calls: int = Field(default=400, validation_alias="POLICY_MAX_API_CALLS")
    policy_max_files: int = Field(default=20, validation_alias="POLICY_MAX_FILES")
    policy_protected_paths: str = Field(
        default=".github/", validation_alias="POLICY_PROTECTED_PATHS"
    )
    host: str = Field(default="0.0.0.0", validation_alias="HOST")
    port: int = Field(default=3000, validation_alias="PORT")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    def require_credentials(self) -> None:
        missing = [
            name
            for name, value in (("GITHUB_TOKEN", self.github_token), ("GITHUB_OWNER", self.github_owner))
            if not value
        ]
        if missing:
            raise ConfigError(f"Missing required environment variables: {', '.join(missing)}")

    @property
    def owner_is_org(self) -> bool:
        return self.github_owner_type.strip().lower() in {"org", "organization"}

    @property
    def protected_paths(self) -> list[str]:
        return [item.strip() for item in self.policy_protected_paths.split(",") if item.strip()]

"""Configuration management for tasksync."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Supabase Configuration (optional - local cache is used when unset)
    supabase_url: str | None = Field(default=None, description="Supabase project URL")
    supabase_anon_key: str | None = Field(default=None, description="Supabase anon (public) API key")
    supabase_service_role_key: str | None = Field(
        default=None, description="Supabase service role key for privileged operations"
    )

    # Local durable cache
    local_cache_path: str = Field(
        default="./data/tasksync_cache.db", description="SQLite file used as the local durable cache"
    )

    # Privileged request handlers (approval email, user deletion)
    functions_base_url: str = Field(
        default="http://localhost:8000", description="Base URL of the server hosting /functions/* handlers"
    )

    # Resend Configuration (approval emails)
    resend_api_key: str | None = Field(default=None, description="Resend API key for approval emails")
    approval_email_from: str = Field(
        default="TaskSync <onboarding@resend.dev>", description="Sender address for approval emails"
    )

    # Pydantic Logfire Configuration (optional)
    logfire_token: str | None = Field(default=None, description="Pydantic Logfire token for observability")
    environment: str = Field(default="development", description="Deployment environment name")

    # Rewards Configuration
    default_monthly_target: int = Field(default=500, description="Monthly points target used on first run")

    # Realtime Sync Configuration
    sync_coalesce_seconds: float = Field(
        default=0.05, description="Window a sync channel waits to coalesce bursts of change events"
    )

    @property
    def has_remote_store(self) -> bool:
        """Whether a remote Supabase backend is configured."""
        return bool(self.supabase_url)

    def require_credential(self, field_name: str, service_name: str) -> str:
        """Validate that a required credential is set, raising a clear error if missing.

        Args:
            field_name: Name of the field to check
            service_name: Human-readable service name for error message

        Returns:
            The credential value

        Raises:
            ValueError: If the credential is None or empty
        """
        value = getattr(self, field_name)
        if not value:
            raise ValueError(
                f"{service_name} credential not configured. "
                f"Set {field_name.upper()} environment variable or add to .env file."
            )
        return value


# Application Constants
class Constants:
    """Application-wide constants."""

    # API Configuration
    API_TIMEOUT_SECONDS: int = 30
    RESEND_API_URL: str = "https://api.resend.com/emails"

    # HTTP Status Codes
    HTTP_OK: int = 200
    HTTP_BAD_REQUEST: int = 400
    HTTP_NOT_FOUND: int = 404
    HTTP_CONFLICT: int = 409
    HTTP_UNPROCESSABLE: int = 422
    HTTP_SERVER_ERROR: int = 500

    # Local durable cache keys
    STORAGE_KEY_TASKS: str = "tasks"
    STORAGE_KEY_REWARD_TIERS: str = "rewardTiers"
    STORAGE_KEY_MONTHLY_TARGET: str = "monthlyTarget"
    STORAGE_KEY_USER_POINTS: str = "userPoints"

    # Realtime channels
    TASKS_CHANNEL: str = "tasks-realtime"
    POINTS_CHANNEL: str = "points-realtime"
    TASKS_TABLE: str = "tasks"
    POINTS_TABLE: str = "user_points"

    # Gamification
    GOAL_MILESTONES_PERCENT: tuple[int, ...] = (50, 80, 100)

    # Scheduler Configuration
    RECURRENCE_BACKFILL_HOUR: int = 0  # midnight
    RECURRENCE_BACKFILL_MINUTE: int = 5

    # Paths
    PROJECT_ROOT: Path = Path(__file__).parent.parent.parent


def get_settings() -> Settings:
    """Get application settings (singleton pattern)."""
    return Settings()


# Global settings instance
settings = get_settings()
constants = Constants()

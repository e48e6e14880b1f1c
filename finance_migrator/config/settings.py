"""
Configuration Management for the Finance Migrator

Environment variables (and an optional .env file) read through
pydantic-settings, one settings class per concern.

DESIGN DECISION: Nothing outside this module reads the environment.
The Supabase credentials are the only required values; everything else
has a working default.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class SupabaseSettings(BaseSettings):
    """Supabase (KV source + relational destination) configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SUPABASE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    url: str = Field(
        ...,
        description="Supabase project URL"
    )
    service_role_key: str = Field(
        ...,
        description="Service role key (bypasses row level security)"
    )
    anon_key: str = Field(
        default="",
        description="Anon key, used to verify caller session tokens"
    )

    # Table names
    kv_table: str = Field(
        default="kv_store_d9780f4d",
        description="Legacy key-value table to migrate from"
    )
    audit_table: str = Field(
        default="migration_audit_log",
        description="Table that receives persisted audit events"
    )
    page_size: int = Field(
        default=1000,
        ge=1,
        le=10000,
        description="Rows fetched per request when reading the KV table"
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Reject values that are clearly not a project URL."""
        if not v.startswith(("https://", "http://")):
            raise ValueError(f"Supabase URL must be an http(s) URL, got: {v}")
        return v.rstrip("/")


class MigrationSettings(BaseSettings):
    """Who may trigger the migration, and what gets audited."""

    model_config = SettingsConfigDict(
        env_prefix="MIGRATION_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    admin_emails: str = Field(
        default="",
        description="Comma-separated emails allowed to trigger the migration"
    )
    admin_user_ids: str = Field(
        default="",
        description="Comma-separated user ids allowed to trigger the migration"
    )
    persist_audit_events: bool = Field(
        default=False,
        description="Also write audit events to the audit table"
    )

    @property
    def admin_emails_list(self) -> list[str]:
        """Admin emails, lower-cased."""
        return [email.lower() for email in _split_csv(self.admin_emails)]

    @property
    def admin_user_ids_list(self) -> list[str]:
        return _split_csv(self.admin_user_ids)

    @property
    def restricts_admins(self) -> bool:
        """True when an allowlist is configured."""
        return bool(self.admin_emails_list or self.admin_user_ids_list)


class AppSettings(BaseSettings):
    """
    HTTP service settings (no prefix).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Deployment environment name, reported by GET /health"
    )
    debug_mode: bool = Field(
        default=False,
        description="FastAPI debug mode (tracebacks in unhandled 500 responses)"
    )
    cors_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated origins allowed to call the API"
    )

    api_host: str = Field(
        default="127.0.0.1",
        description="Interface the HTTP trigger binds to"
    )
    api_port: int = Field(
        default=8000,
        description="Port the HTTP trigger listens on"
    )

    # Storage retries
    retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts for retryable storage reads"
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Get CORS origins as a list."""
        return _split_csv(self.cors_origins)


class Settings(BaseSettings):
    """
    Groups the per-concern settings under one object.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Each group is built on access, so a missing group only fails its users
    # (in-memory components need no Supabase credentials)

    @property
    def supabase(self) -> SupabaseSettings:
        return SupabaseSettings()

    @property
    def migration(self) -> MigrationSettings:
        return MigrationSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Process-wide settings container.

    Call get_settings.cache_clear() after changing the environment.
    """
    return Settings()


def validate_all_settings() -> dict:
    """
    Try to load every settings group.

    Returns {group_name: loaded_ok} plus a "{group}_error" message for each
    group that fails, reported by GET /health.
    """
    results = {}

    settings = get_settings()

    for name in ("supabase", "migration", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results

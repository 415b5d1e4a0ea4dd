"""Settings for neo-roles.

Pydantic settings read from the environment (prefix ``NEO_ROLES_``) or a
``.env`` file. Services embedding neo-roles can subclass RoleSettings to add
their own fields.
"""

import re
from functools import lru_cache
from typing import Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_RETRY_ATTEMPTS,
    DEFAULT_RETRY_BASE_DELAY_SECONDS,
    DEFAULT_RETRY_JITTER_RATIO,
    HEALTH_MAX_AVERAGE_DURATION_SECONDS,
    HEALTH_MAX_FAILURE_RATE,
    HEALTH_MIN_TRANSACTIONS,
    ROLE_ASSIGNMENTS_TABLE,
    ROLE_AUDIT_LOG_TABLE,
    SCOPE_HIERARCHY_TABLE,
)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")


class RoleSettings(BaseSettings):
    """Runtime configuration for the role engine and its asyncpg store."""

    model_config = SettingsConfigDict(
        env_prefix="NEO_ROLES_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database Configuration
    database_url: Optional[SecretStr] = Field(default=None)
    pool_min_size: int = Field(default=2, ge=0)
    pool_max_size: int = Field(default=10, ge=1)
    command_timeout_seconds: float = Field(default=30.0, gt=0)
    batch_size: int = Field(default=DEFAULT_BATCH_SIZE, ge=1)

    # Table names
    assignments_table: str = Field(default=ROLE_ASSIGNMENTS_TABLE)
    audit_log_table: str = Field(default=ROLE_AUDIT_LOG_TABLE)
    scope_hierarchy_table: str = Field(default=SCOPE_HIERARCHY_TABLE)

    # Retry Configuration
    retry_max_attempts: int = Field(default=DEFAULT_RETRY_ATTEMPTS, ge=1)
    retry_base_delay_seconds: float = Field(default=DEFAULT_RETRY_BASE_DELAY_SECONDS, ge=0)
    retry_jitter_ratio: float = Field(default=DEFAULT_RETRY_JITTER_RATIO, ge=0, le=1)

    # Transaction health thresholds
    health_min_transactions: int = Field(default=HEALTH_MIN_TRANSACTIONS, ge=0)
    health_max_failure_rate: float = Field(default=HEALTH_MAX_FAILURE_RATE, ge=0, le=1)
    health_max_average_duration_seconds: float = Field(
        default=HEALTH_MAX_AVERAGE_DURATION_SECONDS, gt=0
    )

    @field_validator("assignments_table", "audit_log_table", "scope_hierarchy_table")
    @classmethod
    def _validate_table_name(cls, value: str) -> str:
        """Table names are interpolated into SQL, so only plain identifiers are allowed."""
        if not _IDENTIFIER.match(value):
            raise ValueError(f"Invalid table name: {value}")
        return value

    @property
    def dsn(self) -> Optional[str]:
        """Plain database DSN, if configured."""
        return self.database_url.get_secret_value() if self.database_url else None


@lru_cache()
def get_settings() -> RoleSettings:
    """Get cached settings instance."""
    return RoleSettings()

"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from enum import Enum, IntEnum
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="resolvehub-engine", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/resolvehub",
        description="PostgreSQL connection URL (async)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== Engine Configuration ==========
    engine_config_path: Path = Field(
        default=Path("engine_config.yaml"),
        description="Path to routing/SLA/escalation/scoring YAML file"
    )
    sweep_interval_seconds: int = Field(
        default=600,
        description="Seconds between SLA sweeps (0 disables the scheduler)",
        ge=0
    )
    global_city: str = Field(
        default="Global",
        description="City value identifying the top escalation authority"
    )

    # ========== Notifications ==========
    notification_webhook_url: Optional[str] = Field(
        default=None,
        description="Webhook URL receiving assignment/escalation events"
    )
    notification_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for notification webhook calls",
        ge=0.1,
        le=30
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:5173", "http://localhost:3000"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class Department(str, Enum):
    """Municipal departments a complaint can be routed to."""
    STRUCTURAL = "Structural"
    PLUMBING = "Plumbing"
    SANITATION = "Sanitation"
    ELECTRICAL = "Electrical"
    UNASSIGNED = "Unassigned"


class ComplaintStatus(str, Enum):
    """Complaint lifecycle statuses, in forward order."""
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"


class Role(str, Enum):
    """User roles supplied by the identity provider."""
    CITIZEN = "citizen"
    STAFF = "staff"
    ADMIN = "admin"


class EscalationLevel(IntEnum):
    """Escalation severity tiers."""
    NORMAL = 0
    WARNING = 1
    CRITICAL = 2
    FINAL = 3


class NotificationEvent(str):
    """Event types sent to the notification dispatcher."""
    ASSIGNED = "complaint.assigned"
    ESCALATED = "complaint.escalated"
    STATUS_CHANGED = "complaint.status_changed"
    LOW_FEEDBACK = "complaint.low_feedback"


# ========== Lists for validation ==========

ROUTABLE_DEPARTMENTS = [
    Department.STRUCTURAL, Department.PLUMBING,
    Department.SANITATION, Department.ELECTRICAL
]
ACTIVE_STATUSES = [ComplaintStatus.OPEN, ComplaintStatus.IN_PROGRESS]
TERMINAL_STATUSES = [ComplaintStatus.RESOLVED, ComplaintStatus.CLOSED]
STATUS_ORDER = [
    ComplaintStatus.OPEN, ComplaintStatus.IN_PROGRESS,
    ComplaintStatus.RESOLVED, ComplaintStatus.CLOSED
]

# Citizen feedback ratings; anything at or below LOW_FEEDBACK_RATING alerts
# the final escalation authority
MIN_FEEDBACK_RATING = 1
MAX_FEEDBACK_RATING = 5
LOW_FEEDBACK_RATING = 2

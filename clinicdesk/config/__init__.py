"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from functools import lru_cache
from pathlib import Path


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="clinicdesk", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="sqlite+aiosqlite:///./clinicdesk.db",
        description="Async SQLAlchemy connection URL, e.g. postgresql+asyncpg://host/clinicdesk"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== SLA Configuration ==========
    sla_config_path: Path = Field(
        default=Path("sla_config.yaml"),
        description="Path to the calendar / SLA policy YAML file"
    )
    sla_config_watch: bool = Field(
        default=True,
        description="Reload the SLA configuration when the file changes"
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

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"log_level must be one of {allowed}")
        return v.upper()


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class Priority(str):
    """Ticket priority levels."""
    URGENT = "URGENT"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class TicketStatus(str):
    """Ticket lifecycle statuses."""
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    WAITING = "WAITING"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"


class ResolutionCode(str):
    """Outcome classification recorded on a ticket."""
    RESOLVED_NO_PART_REPLACEMENT = "RESOLVED_NO_PART_REPLACEMENT"
    RESOLVED_WITH_PART_REPLACEMENT = "RESOLVED_WITH_PART_REPLACEMENT"
    AWAITING_PART_NO_STOCK = "AWAITING_PART_NO_STOCK"
    CONDEMNED_NO_REPAIR = "CONDEMNED_NO_REPAIR"


class ActorRole(str):
    """Roles known to the service desk."""
    ADMIN = "ADMIN"
    TECH = "TECH"
    COORDINATOR = "COORDINATOR"
    REQUESTER = "REQUESTER"


class AuditAction(str):
    """Actions handed to the audit sink."""
    TICKET_CREATE = "TICKET_CREATE"
    PRIORITY_CHANGE = "PRIORITY_CHANGE"
    SLA_PAUSE = "SLA_PAUSE"
    SLA_RESUME = "SLA_RESUME"
    SLA_RESOLUTION_DONE = "SLA_RESOLUTION_DONE"
    SLA_FIRST_RESPONSE = "SLA_FIRST_RESPONSE"
    STATUS_CHANGE = "STATUS_CHANGE"
    MESSAGE_CREATE = "MESSAGE_CREATE"


class MessageVisibility(str):
    """Who can read a ticket message."""
    PUBLIC = "PUBLIC"
    INTERNAL = "INTERNAL"


class SLAState(str):
    """SLA status states."""
    ON_TRACK = "on_track"
    AT_RISK = "at_risk"
    BREACHED = "breached"
    MET = "met"


# ========== Lists for validation ==========

VALID_PRIORITIES = [
    Priority.URGENT, Priority.HIGH,
    Priority.MEDIUM, Priority.LOW
]
VALID_STATUSES = [
    TicketStatus.OPEN, TicketStatus.IN_PROGRESS, TicketStatus.WAITING,
    TicketStatus.RESOLVED, TicketStatus.CLOSED
]
VALID_RESOLUTION_CODES = [
    ResolutionCode.RESOLVED_NO_PART_REPLACEMENT,
    ResolutionCode.RESOLVED_WITH_PART_REPLACEMENT,
    ResolutionCode.AWAITING_PART_NO_STOCK,
    ResolutionCode.CONDEMNED_NO_REPAIR,
]
VALID_ROLES = [
    ActorRole.ADMIN, ActorRole.TECH,
    ActorRole.COORDINATOR, ActorRole.REQUESTER
]

# Statuses that close the resolution clock
RESOLVING_STATUSES = frozenset({TicketStatus.RESOLVED, TicketStatus.CLOSED})

# Statuses that stop the resolution clock while held
PAUSE_STATUSES = frozenset({TicketStatus.WAITING})

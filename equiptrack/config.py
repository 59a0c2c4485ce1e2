"""Application configuration loaded from environment variables (EQUIPTRACK_*) and .env."""

from __future__ import annotations

from functools import lru_cache
from typing import Dict, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import Priority

# Hours from ticket creation, per priority
DEFAULT_SLA_RESPONSE_HOURS = {
    Priority.CRITICAL: 1,
    Priority.HIGH: 2,
    Priority.MEDIUM: 4,
    Priority.LOW: 8,
}
DEFAULT_SLA_RESOLUTION_HOURS = {
    Priority.CRITICAL: 4,
    Priority.HIGH: 8,
    Priority.MEDIUM: 24,
    Priority.LOW: 48,
}


class Settings(BaseSettings):
    app_name: str = "equiptrack"
    log_level: str = "INFO"

    # Bound on organization graph reads inside a ticket mutation
    graph_timeout_seconds: float = Field(default=2.0, gt=0)
    # Bound on each notifier delivery
    notifier_timeout_seconds: float = Field(default=5.0, gt=0)

    ticket_number_prefix: str = "TKT"

    # Reject assignments of engineers outside the resolver's pool for the tier
    enforce_tier_eligibility: bool = True

    auto_assign_policy: Literal["first_eligible", "least_loaded"] = "first_eligible"

    # JSON objects in env, e.g. EQUIPTRACK_SLA_RESPONSE_HOURS='{"critical": 0.5}'
    sla_response_hours: Dict[Priority, float] = Field(
        default_factory=lambda: dict(DEFAULT_SLA_RESPONSE_HOURS)
    )
    sla_resolution_hours: Dict[Priority, float] = Field(
        default_factory=lambda: dict(DEFAULT_SLA_RESOLUTION_HOURS)
    )

    model_config = SettingsConfigDict(
        env_prefix="EQUIPTRACK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("sla_response_hours", "sla_resolution_hours")
    @classmethod
    def fill_missing_priorities(cls, value, info):
        defaults = (
            DEFAULT_SLA_RESPONSE_HOURS
            if info.field_name == "sla_response_hours"
            else DEFAULT_SLA_RESOLUTION_HOURS
        )
        for priority, hours in value.items():
            if hours <= 0:
                raise ValueError(f"SLA hours for {priority.value} must be positive")
        return {**defaults, **value}


@lru_cache
def get_settings() -> Settings:
    return Settings()

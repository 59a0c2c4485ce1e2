"""Shared model helpers."""

from datetime import datetime, timezone
from uuid import UUID


# Actor recorded for changes made by automation (auto-assign policy, system jobs)
SYSTEM_ACTOR_ID = UUID(int=0)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)

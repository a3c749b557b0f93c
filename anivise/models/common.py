"""Shared types, enums, and base models used across the orchestration core."""

from collections.abc import Callable
from datetime import datetime, timezone
from uuid import UUID

from pydantic import BaseModel
from uuid_extensions import uuid7

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Return the current UTC timestamp (timezone-aware)."""
    return datetime.now(tz=timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive timestamps read back from SQLite."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def new_uuid7() -> UUID:
    """Generate a new time-sortable UUID v7."""
    return uuid7()


# --- Base model ---


class AniviseBase(BaseModel):
    """Base model with common configuration for all Pydantic models."""

    model_config = {
        "populate_by_name": True,
        "ser_json_timedelta": "iso8601",
        "protected_namespaces": (),
    }

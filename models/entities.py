"""Pydantic models for the persisted topology and telemetry entities."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Optional

from pydantic import BaseModel, Field, field_validator


def as_utc(value: datetime) -> datetime:
    """Normalize a timestamp to UTC, treating naive values as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class BorderRouter(BaseModel):
    """Top-level topology node that sensors attach to."""

    ip: str = Field(..., min_length=1)
    name: Optional[str] = None


class Sensor(BaseModel):
    """A sensor attached to a single border router."""

    ip: Optional[str] = None
    name: Optional[str] = None
    border_router_ip: Optional[str] = None


class Reading(BaseModel):
    """A timestamped telemetry record produced by one sensor."""

    sensor_ip: str = Field(..., min_length=1)
    timestamp: datetime
    values: Dict[str, float] = Field(default_factory=dict)

    @field_validator("timestamp")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        return as_utc(value)

"""Exception hierarchy for the aggregation service."""

from __future__ import annotations

from typing import Optional


class TelemetryAggregatorError(Exception):
    """Base exception for all service errors."""


class InvalidDataTypesError(TelemetryAggregatorError, ValueError):
    """A data type list was empty or contained a malformed field name."""

    def __init__(self, message: str, *, token: Optional[str] = None) -> None:
        self.token = token
        super().__init__(message)


class SchemaPersistenceError(TelemetryAggregatorError, RuntimeError):
    """Persisting a new data type list or clearing stale readings failed."""

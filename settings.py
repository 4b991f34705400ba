from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Tuple


_TOPOLOGY_PATH_ENV = "TOPOLOGY_PERSISTENCE_PATH"
_TELEMETRY_PATH_ENV = "TELEMETRY_PERSISTENCE_PATH"
_PROPERTY_ROOT_ENV = "PROPERTY_STORE_ROOT"
_DEFAULT_DATA_TYPES_ENV = "DEFAULT_DATA_TYPES"
_LOG_LEVEL_ENV = "LOG_LEVEL"


@dataclass(frozen=True)
class Settings:
    topology_persistence_path: Optional[str]
    telemetry_persistence_path: Optional[str]
    property_store_root: Optional[str]
    default_data_types: Tuple[str, ...]
    log_level: str


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_data_types(default: Tuple[str, ...]) -> Tuple[str, ...]:
    value = os.getenv(_DEFAULT_DATA_TYPES_ENV)
    if value is None:
        return default
    tokens = [token.strip() for token in value.split(",")]
    return tuple(token for token in tokens if token)


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        topology_persistence_path=_read_optional_env(
            _TOPOLOGY_PATH_ENV, "./tmp/topology.json"
        ),
        telemetry_persistence_path=_read_optional_env(
            _TELEMETRY_PATH_ENV, "./tmp/telemetry.json"
        ),
        property_store_root=_read_optional_env(_PROPERTY_ROOT_ENV, "./tmp/properties"),
        default_data_types=_read_data_types(()),
        log_level=_read_log_level("INFO"),
    )

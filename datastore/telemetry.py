from __future__ import annotations
import json
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Optional

from models.entities import Reading, as_utc
from settings import get_settings


class TelemetryStore:
    """Sensor readings keyed by sensor ip and timestamp, in arrival order."""

    def __init__(self, persistence_path: Optional[Path] = None) -> None:
        self._readings: Dict[str, List[Reading]] = {}
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def add_reading(self, reading: Reading) -> None:
        """Store a reading, replacing one with the same sensor and timestamp in place."""

        stored = reading.model_copy(deep=True)
        with self._lock:
            series = self._readings.setdefault(stored.sensor_ip, [])
            for index, existing in enumerate(series):
                if existing.timestamp == stored.timestamp:
                    series[index] = stored
                    break
            else:
                series.append(stored)
            self._write(self._payload())

    def list_readings(self, sensor_ip: str) -> List[Reading]:
        with self._lock:
            return [item.model_copy(deep=True) for item in self._readings.get(sensor_ip, [])]

    def list_readings_since(self, sensor_ip: str, timestamp: datetime) -> List[Reading]:
        """Return readings taken at or after ``timestamp``."""

        bound = as_utc(timestamp)
        with self._lock:
            return [
                item.model_copy(deep=True)
                for item in self._readings.get(sensor_ip, [])
                if item.timestamp >= bound
            ]

    def count(self) -> int:
        with self._lock:
            return sum(len(series) for series in self._readings.values())

    def clear_all(self) -> int:
        with self._lock:
            deleted = sum(len(series) for series in self._readings.values())
            self._write({})
            self._readings.clear()
            return deleted

    def _payload(self) -> Dict[str, Any]:
        return {
            sensor_ip: [item.model_dump(mode="json") for item in series]
            for sensor_ip, series in self._readings.items()
        }

    def _write(self, payload: Dict[str, Any]) -> None:
        if not self.persistence_path:
            return
        self.persistence_path.write_text(json.dumps(payload, indent=2, sort_keys=True))

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            data = {}

        for sensor_ip, series in data.items():
            self._readings[sensor_ip] = [Reading.model_validate(item) for item in series]


@lru_cache
def build_default_telemetry_store(path: Optional[str] = None) -> TelemetryStore:
    settings = get_settings()
    store_path = settings.telemetry_persistence_path if path is None else path
    return TelemetryStore(persistence_path=Path(store_path) if store_path else None)

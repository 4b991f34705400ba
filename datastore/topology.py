from __future__ import annotations
import json
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Dict, List, Optional

from models.entities import BorderRouter, Sensor
from settings import get_settings


class TopologyStore:
    """Border routers and their sensors, keyed by ip.

    Every call is atomic on its own; nothing spans multiple calls.
    """

    def __init__(self, persistence_path: Optional[Path] = None) -> None:
        self._border_routers: Dict[str, BorderRouter] = {}
        self._sensors: List[Sensor] = []
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def put_border_router(self, border_router: BorderRouter) -> None:
        with self._lock:
            self._border_routers[border_router.ip] = border_router.model_copy(deep=True)
            self._persist()

    def put_sensor(self, sensor: Sensor) -> None:
        stored = sensor.model_copy(deep=True)
        with self._lock:
            index = self._sensor_index(sensor.ip)
            if index is None:
                self._sensors.append(stored)
            else:
                self._sensors[index] = stored
            self._persist()

    def get_border_router(self, ip: str) -> Optional[BorderRouter]:
        with self._lock:
            item = self._border_routers.get(ip)
            if item is None:
                return None
            return item.model_copy(deep=True)

    def list_border_routers(self) -> List[BorderRouter]:
        with self._lock:
            return [item.model_copy(deep=True) for item in self._border_routers.values()]

    def count_border_routers(self) -> int:
        with self._lock:
            return len(self._border_routers)

    def get_sensor(self, ip: str) -> Optional[Sensor]:
        with self._lock:
            index = self._sensor_index(ip)
            if index is None:
                return None
            return self._sensors[index].model_copy(deep=True)

    def list_sensors(self, border_router_ip: str) -> List[Sensor]:
        """Return the sensors whose parent is ``border_router_ip``."""

        with self._lock:
            return [
                sensor.model_copy(deep=True)
                for sensor in self._sensors
                if sensor.border_router_ip == border_router_ip
            ]

    def list_all_sensors(self) -> List[Sensor]:
        with self._lock:
            return [sensor.model_copy(deep=True) for sensor in self._sensors]

    def rename_sensor(self, ip: str, name: str) -> bool:
        with self._lock:
            index = self._sensor_index(ip)
            if index is None:
                return False
            self._sensors[index] = self._sensors[index].model_copy(update={"name": name})
            self._persist()
            return True

    def clear_border_routers(self) -> int:
        """Drop every border router along with the sensors attached to them."""

        with self._lock:
            removed = len(self._border_routers)
            self._border_routers.clear()
            self._sensors.clear()
            self._persist()
            return removed

    def _sensor_index(self, ip: Optional[str]) -> Optional[int]:
        if ip is None:
            return None
        for index, sensor in enumerate(self._sensors):
            if sensor.ip == ip:
                return index
        return None

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = {
            "border_routers": [
                item.model_dump(mode="json") for item in self._border_routers.values()
            ],
            "sensors": [sensor.model_dump(mode="json") for sensor in self._sensors],
        }
        self.persistence_path.write_text(json.dumps(payload, indent=2, sort_keys=True))

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            data = {}

        for payload in data.get("border_routers", []):
            border_router = BorderRouter.model_validate(payload)
            self._border_routers[border_router.ip] = border_router
        for payload in data.get("sensors", []):
            self._sensors.append(Sensor.model_validate(payload))


@lru_cache
def build_default_topology_store(path: Optional[str] = None) -> TopologyStore:
    settings = get_settings()
    store_path = settings.topology_persistence_path if path is None else path
    return TopologyStore(persistence_path=Path(store_path) if store_path else None)

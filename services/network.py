"""Service layer wiring the stores, the schema registry and the aggregation engine."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import List, Optional, Tuple

from datastore.telemetry import TelemetryStore, build_default_telemetry_store
from datastore.topology import TopologyStore, build_default_topology_store
from models.entities import BorderRouter
from services.aggregator import AggregationEngine
from services.schema_registry import SchemaRegistry
from settings import get_settings
from storage.properties import build_default_property_store

logger = logging.getLogger(__name__)


class NetworkService:
    """Entry point for callers; views and data type changes go through
    ``engine`` and ``registry``, the plain lookups live here."""

    def __init__(
        self,
        topology: TopologyStore,
        telemetry: TelemetryStore,
        registry: SchemaRegistry,
        engine: Optional[AggregationEngine] = None,
    ) -> None:
        self.topology = topology
        self.telemetry = telemetry
        self.registry = registry
        self.engine = engine or AggregationEngine(topology, telemetry, registry)

    def count_border_routers(self) -> int:
        return self.topology.count_border_routers()

    def rename_sensor(self, sensor_ip: str, name: str) -> bool:
        """Rename a sensor; ``False`` when the ip is unknown."""
        renamed = self.topology.rename_sensor(sensor_ip, name)
        if not renamed:
            logger.warning("Cannot rename unknown sensor", extra={"sensor_ip": sensor_ip})
        return renamed

    def list_border_router_summaries(self) -> List[Tuple[str, Optional[str]]]:
        summaries = [(item.ip, item.name) for item in self.topology.list_border_routers()]
        logger.debug(
            "Listed border routers", extra={"border_router_count": len(summaries)}
        )
        return summaries

    def list_sensor_ips(self) -> List[str]:
        return [
            sensor.ip for sensor in self.topology.list_all_sensors() if sensor.ip is not None
        ]

    def list_sensor_ips_for_border_router(self, border_router_ip: str) -> List[str]:
        """Sensor ips under a border router; empty when it has none or is unknown."""
        return [
            sensor.ip
            for sensor in self.topology.list_sensors(border_router_ip)
            if sensor.ip is not None
        ]

    def get_border_router(self, border_router_ip: str) -> Optional[BorderRouter]:
        logger.debug(
            "Looking up border router", extra={"border_router_ip": border_router_ip}
        )
        return self.topology.get_border_router(border_router_ip)

    def clear_topology(self) -> int:
        """Remove all border routers and sensors. Readings are left in place."""
        removed = self.topology.clear_border_routers()
        logger.info("Topology cleared", extra={"border_router_count": removed})
        return removed

    def clear_readings(self) -> int:
        deleted = self.telemetry.clear_all()
        logger.info("Readings cleared", extra={"deleted_count": deleted})
        return deleted


@lru_cache
def build_default_service() -> NetworkService:
    """Factory that wires the service with the configured stores.

    Logging is not set up here; the embedding process calls
    ``logging_config.configure_logging()`` once at startup before using the
    service.
    """
    settings = get_settings()
    topology = build_default_topology_store()
    telemetry = build_default_telemetry_store()
    registry = SchemaRegistry.from_store(
        build_default_property_store(),
        telemetry,
        default=settings.default_data_types,
    )
    return NetworkService(topology=topology, telemetry=telemetry, registry=registry)

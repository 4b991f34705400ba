"""Hierarchical read views over the topology and telemetry stores."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from datastore.telemetry import TelemetryStore
from datastore.topology import TopologyStore
from models.views import BorderRouterView, NetworkView, SensorView
from services.schema_registry import SchemaRegistry

logger = logging.getLogger(__name__)


class AggregationEngine:
    """Builds network, border router and sensor views on demand.

    A view that would come out empty is returned as ``None``, the same as for
    an unknown ip. Each level queries the stores on its own, so a view
    assembled while the topology changes may not match any single instant.
    """

    def __init__(
        self,
        topology: TopologyStore,
        telemetry: TelemetryStore,
        registry: SchemaRegistry,
    ) -> None:
        self.topology = topology
        self.telemetry = telemetry
        self.registry = registry

    def fetch_sensor_view(
        self, sensor_ip: str, since: Optional[datetime] = None
    ) -> Optional[SensorView]:
        """Readings for one sensor, optionally only those at or after ``since``."""
        sensor = self.topology.get_sensor(sensor_ip)
        if sensor is None:
            logger.error("Unknown sensor", extra={"sensor_ip": sensor_ip})
            return None

        if since is None:
            readings = self.telemetry.list_readings(sensor_ip)
        else:
            readings = self.telemetry.list_readings_since(sensor_ip, since)

        if not readings:
            logger.debug(
                "No readings for sensor", extra={"sensor_ip": sensor_ip, "since": since}
            )
            return None

        view = SensorView(sensor=sensor, readings=readings)
        logger.debug(
            "Sensor view built",
            extra={
                "sensor_ip": sensor_ip,
                "since": since,
                "reading_count": view.reading_count,
            },
        )
        return view

    def fetch_border_router_view(
        self, border_router_ip: str, since: Optional[datetime] = None
    ) -> Optional[BorderRouterView]:
        border_router = self.topology.get_border_router(border_router_ip)
        if border_router is None:
            logger.error(
                "Unknown border router", extra={"border_router_ip": border_router_ip}
            )
            return None

        sensors = self.topology.list_sensors(border_router_ip)
        if not sensors:
            logger.debug(
                "No sensors attached to border router",
                extra={"border_router_ip": border_router_ip},
            )
            return None

        reading_count = 0
        views: List[SensorView] = []
        for sensor in sensors:
            if sensor.ip is None:
                continue
            view = self.fetch_sensor_view(sensor.ip, since)
            if view is not None:
                reading_count += view.reading_count
                views.append(view)

        if not views:
            logger.debug(
                "No readings for border router",
                extra={"border_router_ip": border_router_ip, "since": since},
            )
            return None

        logger.debug(
            "Border router view built",
            extra={
                "border_router_ip": border_router_ip,
                "since": since,
                "sensor_count": len(views),
                "reading_count": reading_count,
            },
        )
        return BorderRouterView(border_router=border_router, sensors=views)

    def fetch_network_view(self, since: Optional[datetime] = None) -> Optional[NetworkView]:
        """Every border router that has readings, with the total reading count."""
        views: List[BorderRouterView] = []
        for border_router in self.topology.list_border_routers():
            view = self.fetch_border_router_view(border_router.ip, since)
            if view is not None:
                views.append(view)

        if not views:
            logger.debug("No readings in network", extra={"since": since})
            return None

        total = sum(view.reading_count for view in views)
        logger.debug(
            "Network view built",
            extra={
                "since": since,
                "border_router_count": len(views),
                "reading_count": total,
            },
        )
        return NetworkView(border_routers=views, total_reading_count=total)

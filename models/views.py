"""Query-scoped aggregates assembled on read."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from models.entities import BorderRouter, Reading, Sensor


@dataclass(slots=True)
class SensorView:
    """A sensor together with the readings that matched a query."""

    sensor: Sensor
    readings: List[Reading] = field(default_factory=list)

    @property
    def reading_count(self) -> int:
        return len(self.readings)


@dataclass(slots=True)
class BorderRouterView:
    """A border router and the sensors under it that produced a view."""

    border_router: BorderRouter
    sensors: List[SensorView] = field(default_factory=list)

    @property
    def reading_count(self) -> int:
        return sum(view.reading_count for view in self.sensors)


@dataclass(slots=True)
class NetworkView:
    border_routers: List[BorderRouterView] = field(default_factory=list)
    total_reading_count: int = 0

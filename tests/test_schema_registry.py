from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone

import pytest

from datastore.telemetry import TelemetryStore
from models.entities import Reading
from services.errors import InvalidDataTypesError, SchemaPersistenceError
from services.schema_registry import (
    DATA_TYPES_PROPERTY_KEY,
    SchemaRegistry,
    canonicalize,
    parse_field_names,
    serialize_field_names,
)
from storage.properties import PropertyStore


class CountingTelemetryStore(TelemetryStore):
    def __init__(self) -> None:
        super().__init__()
        self.clear_calls = 0

    def clear_all(self) -> int:
        self.clear_calls += 1
        return super().clear_all()


def _reading(sensor_ip: str = "fd00::1", minute: int = 0) -> Reading:
    return Reading(
        sensor_ip=sensor_ip,
        timestamp=datetime(2024, 1, 1, 0, minute, tzinfo=timezone.utc),
        values={"a": 1.0},
    )


@pytest.fixture()
def telemetry() -> CountingTelemetryStore:
    return CountingTelemetryStore()


@pytest.fixture()
def properties() -> PropertyStore:
    return PropertyStore()


@pytest.fixture()
def registry(properties: PropertyStore, telemetry: CountingTelemetryStore) -> SchemaRegistry:
    return SchemaRegistry(properties, telemetry)


def test_reconfigure_sorts_and_deduplicates(registry: SchemaRegistry, properties: PropertyStore) -> None:
    result = registry.reconfigure(["b", "a", "a", "B"])

    assert result == ["B", "a", "b"]
    assert registry.data_types == ["B", "a", "b"]
    assert properties.get(DATA_TYPES_PROPERTY_KEY) == "B,a,b"


def test_field_names_are_case_sensitive(registry: SchemaRegistry) -> None:
    assert registry.reconfigure(["temp", "Temp"]) == ["Temp", "temp"]


def test_reconfigure_is_idempotent_for_set_equal_input(
    registry: SchemaRegistry, telemetry: CountingTelemetryStore
) -> None:
    first = registry.reconfigure(["humidity", "temperature"])
    telemetry.add_reading(_reading())

    second = registry.reconfigure(["temperature", "humidity", "humidity"])

    assert first == second == ["humidity", "temperature"]
    assert telemetry.clear_calls == 1
    assert telemetry.count() == 1


@pytest.mark.parametrize("candidates", [None, []])
def test_reconfigure_rejects_empty_input(
    registry: SchemaRegistry, telemetry: CountingTelemetryStore, candidates
) -> None:
    with pytest.raises(InvalidDataTypesError):
        registry.reconfigure(candidates)

    assert registry.data_types == []
    assert telemetry.clear_calls == 0


@pytest.mark.parametrize("token", ["bad-token", "", "temp erature", "tempé", "a\n"])
def test_reconfigure_rejects_malformed_token_without_side_effects(
    registry: SchemaRegistry,
    properties: PropertyStore,
    telemetry: CountingTelemetryStore,
    token: str,
) -> None:
    registry.reconfigure(["a"])
    telemetry.add_reading(_reading())

    with pytest.raises(InvalidDataTypesError) as excinfo:
        registry.reconfigure(["ok", token])

    assert excinfo.value.token == token
    assert registry.data_types == ["a"]
    assert properties.get(DATA_TYPES_PROPERTY_KEY) == "a"
    assert telemetry.clear_calls == 1
    assert telemetry.count() == 1


def test_reconfigure_reports_first_malformed_token(registry: SchemaRegistry) -> None:
    with pytest.raises(InvalidDataTypesError) as excinfo:
        registry.reconfigure(["ok", "bad-one", "bad-two"])

    assert excinfo.value.token == "bad-one"
    assert isinstance(excinfo.value, ValueError)


def test_changed_data_types_clear_existing_readings(
    registry: SchemaRegistry, telemetry: CountingTelemetryStore
) -> None:
    registry.reconfigure(["a"])
    telemetry.add_reading(_reading("fd00::1", 0))
    telemetry.add_reading(_reading("fd00::2", 1))

    result = registry.reconfigure(["a", "b"])

    assert result == ["a", "b"]
    assert telemetry.count() == 0
    assert telemetry.list_readings("fd00::1") == []


def test_returned_list_is_a_copy(registry: SchemaRegistry) -> None:
    result = registry.reconfigure(["a", "b"])
    result.append("c")

    assert registry.data_types == ["a", "b"]


def test_from_store_loads_persisted_data_types(telemetry: CountingTelemetryStore, tmp_path) -> None:
    root = tmp_path / "properties"
    SchemaRegistry(PropertyStore(root_path=root), telemetry).reconfigure(["z", "y"])

    reloaded = SchemaRegistry.from_store(PropertyStore(root_path=root), telemetry, default=["x"])

    assert reloaded.data_types == ["y", "z"]


def test_from_store_uses_default_when_nothing_persisted(
    properties: PropertyStore, telemetry: CountingTelemetryStore
) -> None:
    registry = SchemaRegistry.from_store(properties, telemetry, default=["temp", "hum"])

    assert registry.data_types == ["hum", "temp"]


def test_from_store_ignores_malformed_persisted_value(
    properties: PropertyStore, telemetry: CountingTelemetryStore, caplog
) -> None:
    properties.set(DATA_TYPES_PROPERTY_KEY, "ok,not valid")

    with caplog.at_level(logging.WARNING, logger="services.schema_registry"):
        registry = SchemaRegistry.from_store(properties, telemetry, default=["temp"])

    assert registry.data_types == ["temp"]
    assert any(getattr(record, "token", None) == "not valid" for record in caplog.records)


def test_property_write_failure_leaves_state_untouched(telemetry: CountingTelemetryStore) -> None:
    class BrokenPropertyStore(PropertyStore):
        def set(self, key: str, value: str) -> None:
            raise OSError("disk full")

    registry = SchemaRegistry(BrokenPropertyStore(), telemetry, initial=["a"])
    telemetry.add_reading(_reading())

    with pytest.raises(SchemaPersistenceError) as excinfo:
        registry.reconfigure(["b"])

    assert isinstance(excinfo.value.__cause__, OSError)
    assert registry.data_types == ["a"]
    assert telemetry.clear_calls == 0
    assert telemetry.count() == 1


def test_clear_failure_restores_previous_property(properties: PropertyStore) -> None:
    class FlakyTelemetryStore(TelemetryStore):
        fail = False

        def clear_all(self) -> int:
            if self.fail:
                raise OSError("telemetry unavailable")
            return super().clear_all()

    telemetry = FlakyTelemetryStore()
    registry = SchemaRegistry(properties, telemetry)
    registry.reconfigure(["a"])
    telemetry.fail = True

    with pytest.raises(SchemaPersistenceError):
        registry.reconfigure(["a", "b"])

    assert registry.data_types == ["a"]
    assert properties.get(DATA_TYPES_PROPERTY_KEY) == "a"


def test_reconfigure_calls_do_not_overlap(properties: PropertyStore) -> None:
    active = 0
    max_active = 0
    guard = threading.Lock()

    class SlowTelemetryStore(TelemetryStore):
        def clear_all(self) -> int:
            nonlocal active, max_active
            with guard:
                active += 1
                max_active = max(max_active, active)
            time.sleep(0.01)
            with guard:
                active -= 1
            return super().clear_all()

    registry = SchemaRegistry(properties, SlowTelemetryStore())
    candidates = [["a"], ["b"], ["a", "b"], ["c"]] * 3
    threads = [
        threading.Thread(target=registry.reconfigure, args=(names,)) for names in candidates
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5)

    assert max_active == 1
    assert properties.get(DATA_TYPES_PROPERTY_KEY) == serialize_field_names(registry.data_types)


def test_rejected_input_is_logged_with_token(registry: SchemaRegistry, caplog) -> None:
    with caplog.at_level(logging.ERROR, logger="services.schema_registry"):
        with pytest.raises(InvalidDataTypesError):
            registry.reconfigure(["bad_token"])

    assert any(getattr(record, "token", None) == "bad_token" for record in caplog.records)


def test_serialization_helpers() -> None:
    assert canonicalize(["b", "a", "a", "B"]) == ["B", "a", "b"]
    assert serialize_field_names(["B", "a", "b"]) == "B,a,b"
    assert serialize_field_names(["only"]) == "only"
    assert parse_field_names("B,a,b") == ["B", "a", "b"]
    assert parse_field_names(" a ,,b,") == ["a", "b"]


def test_initial_data_types_are_validated(properties: PropertyStore, telemetry: CountingTelemetryStore) -> None:
    with pytest.raises(InvalidDataTypesError) as excinfo:
        SchemaRegistry(properties, telemetry, initial=["x y", "x y"])

    assert excinfo.value.token == "x y"


def test_from_store_ignores_malformed_default(
    properties: PropertyStore, telemetry: CountingTelemetryStore, caplog
) -> None:
    with caplog.at_level(logging.WARNING, logger="services.schema_registry"):
        registry = SchemaRegistry.from_store(properties, telemetry, default=["bad-token", "ok"])

    assert registry.data_types == []
    assert all(name.isalnum() for name in registry.data_types)
    assert any(getattr(record, "token", None) == "bad-token" for record in caplog.records)


def test_from_store_falls_back_to_default_after_malformed_persisted_value(
    properties: PropertyStore, telemetry: CountingTelemetryStore
) -> None:
    properties.set(DATA_TYPES_PROPERTY_KEY, "bad-token")

    registry = SchemaRegistry.from_store(properties, telemetry, default=["ok"])

    assert registry.data_types == ["ok"]


def test_reconfigure_rejects_bare_string(
    registry: SchemaRegistry, properties: PropertyStore, telemetry: CountingTelemetryStore
) -> None:
    registry.reconfigure(["temp"])
    telemetry.add_reading(_reading())

    with pytest.raises(InvalidDataTypesError):
        registry.reconfigure("temp")  # type: ignore[arg-type]

    assert registry.data_types == ["temp"]
    assert properties.get(DATA_TYPES_PROPERTY_KEY) == "temp"
    assert telemetry.clear_calls == 1
    assert telemetry.count() == 1


def test_unexpected_clear_error_restores_previous_property(properties: PropertyStore) -> None:
    class ExplodingTelemetryStore(TelemetryStore):
        fail = False

        def clear_all(self) -> int:
            if self.fail:
                raise RuntimeError("unexpected")
            return super().clear_all()

    telemetry = ExplodingTelemetryStore()
    registry = SchemaRegistry(properties, telemetry)
    registry.reconfigure(["a"])
    telemetry.fail = True

    with pytest.raises(RuntimeError, match="unexpected") as excinfo:
        registry.reconfigure(["b"])

    assert not isinstance(excinfo.value, SchemaPersistenceError)
    assert registry.data_types == ["a"]
    assert properties.get(DATA_TYPES_PROPERTY_KEY) == "a"

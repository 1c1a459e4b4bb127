"""Unit tests for the device registry and its YAML loader."""

from __future__ import annotations

from pathlib import Path

import pytest

from teletask.protocol.types import Function, State
from teletask.registry import (
    ComponentNotFoundError,
    Device,
    DeviceRegistry,
    RegistryLoadError,
    load_registry,
    load_registry_config,
    parse_registry,
)
from tests.helpers.expectations import expect_exception

pytestmark = pytest.mark.unit

REGISTRY_YAML = """\
central_unit:
  host: 192.168.1.10
  port: 55957
  central_unit_type: micros
components:
  relay:
    - number: 1
      description: Kitchen
    - {number: 2, description: Hall}
  motor:
    - number: 4
"""


class TestDeviceRegistry:
    """Lookup and cached state."""

    def test_resolve_known_device(self, registry: DeviceRegistry) -> None:
        device = registry.resolve(Function.RELAY, 1)
        assert device.description == "Kitchen"
        assert device.state is None

    def test_resolve_unknown_device(self, registry: DeviceRegistry) -> None:
        error = expect_exception(registry.resolve, ComponentNotFoundError, Function.RELAY, 99)
        assert error.function is Function.RELAY
        assert error.number == 99
        assert registry.find(Function.RELAY, 99) is None

    def test_same_number_different_function(self, registry: DeviceRegistry) -> None:
        assert registry.resolve(Function.RELAY, 2) is not registry.resolve(Function.MOTOR, 2)

    def test_duplicate_is_ignored(self, registry: DeviceRegistry) -> None:
        original = registry.resolve(Function.RELAY, 1)
        kept = registry.add(Device(Function.RELAY, 1, "Duplicate"))
        assert kept is original
        assert len(registry) == 5

    def test_update_state_reports_change(self, registry: DeviceRegistry) -> None:
        device = registry.resolve(Function.RELAY, 3)
        assert registry.update_state(device, State.ON) is True
        assert registry.update_state(device, State.ON) is False
        assert registry.get_state(device) is State.ON

    def test_all_devices_sorted_and_filtered(self, registry: DeviceRegistry) -> None:
        relays = registry.all_devices(Function.RELAY)
        assert [d.number for d in relays] == [1, 2, 3]
        assert len(registry.all_devices()) == 5

    def test_functions_in_enum_order(self, registry: DeviceRegistry) -> None:
        assert registry.functions() == [Function.RELAY, Function.DIMMER, Function.MOTOR]

    def test_contains_by_key(self, registry: DeviceRegistry) -> None:
        assert (Function.DIMMER, 5) in registry
        assert (Function.DIMMER, 6) not in registry

    def test_device_str(self) -> None:
        assert str(Device(Function.RELAY, 1, "Kitchen", State.ON)) == "relay:1 (Kitchen)=on"


class TestRegistryFile:
    """YAML registry loading."""

    def test_load_registry_file(self, tmp_path: Path) -> None:
        path = tmp_path / "registry.yaml"
        _ = path.write_text(REGISTRY_YAML)

        config = load_registry_config(path)
        registry = config.build_registry()

        assert config.central_unit is not None
        assert config.central_unit.host == "192.168.1.10"
        assert config.central_unit.central_unit_type == "MICROS"
        assert len(registry) == 3
        assert registry.resolve(Function.RELAY, 2).description == "Hall"
        assert registry.resolve(Function.MOTOR, 4).description == ""

    def test_load_registry_shortcut(self, tmp_path: Path) -> None:
        path = tmp_path / "registry.yaml"
        _ = path.write_text(REGISTRY_YAML)

        assert len(load_registry(path)) == 3

    def test_empty_file_is_empty_registry(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yaml"
        _ = path.write_text("")

        config = load_registry_config(path)

        assert config.central_unit is None
        assert len(config.build_registry()) == 0

    def test_missing_file(self, tmp_path: Path) -> None:
        _ = expect_exception(load_registry_config, RegistryLoadError, tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.yaml"
        _ = path.write_text("components: [relay: {")

        _ = expect_exception(load_registry_config, RegistryLoadError, path)

    def test_top_level_must_be_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "list.yaml"
        _ = path.write_text("- relay\n- motor\n")

        error = expect_exception(load_registry_config, RegistryLoadError, path)
        assert "mapping" in str(error)

    def test_unknown_function_rejected(self) -> None:
        _ = expect_exception(parse_registry, RegistryLoadError, {"components": {"heater": [{"number": 1}]}})

    def test_output_number_out_of_range(self) -> None:
        _ = expect_exception(parse_registry, RegistryLoadError, {"components": {"relay": [{"number": 70000}]}})

    def test_unknown_central_unit_type(self) -> None:
        _ = expect_exception(parse_registry, RegistryLoadError, {"central_unit": {"central_unit_type": "picos"}})

"""Device registry: known components and their cached last-known state.

Devices are created once when the registry is loaded and never removed
during a session. Cached state is written only by the event dispatcher and
by direct GET responses, and read by the client facade. A registry-wide lock
keeps reads consistent with writes, including from threads outside the
event loop.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated

import yaml
from pydantic import BaseModel, Field, ValidationError

from teletask.config import ClientConfig
from teletask.protocol.exceptions import TeletaskError
from teletask.protocol.types import Function, LogicalState

logger = logging.getLogger(__name__)


class ComponentNotFoundError(TeletaskError):
    """No device is registered for (function, number).

    Attributes:
        function: Device category
        number: Output number

    """

    def __init__(self, function: Function, number: int) -> None:
        self.function: Function = function
        self.number: int = number
        super().__init__(f"Component not found in registry: {function}:{number}")


class RegistryLoadError(TeletaskError):
    """The registry file is missing, unreadable, or does not validate."""


@dataclass(eq=False)
class Device:
    """A component on the central unit, identified by (function, number).

    Attributes:
        function: Device category
        number: Output number
        description: Human-readable name
        state: Last observed state (None until first EVENT or GET)

    """

    function: Function
    number: int
    description: str = ""
    state: LogicalState | None = None

    @property
    def key(self) -> tuple[Function, int]:
        return (self.function, self.number)

    def __str__(self) -> str:
        label = f" ({self.description})" if self.description else ""
        return f"{self.function}:{self.number}{label}={self.state}"


class DeviceRegistry:
    """In-memory registry of devices keyed by (function, number)."""

    def __init__(self, devices: Iterable[Device] = ()) -> None:
        self._devices: dict[tuple[Function, int], Device] = {}
        self._lock = threading.Lock()
        for device in devices:
            self.add(device)

    def add(self, device: Device) -> Device:
        with self._lock:
            existing = self._devices.get(device.key)
            if existing is not None:
                logger.warning("Duplicate component %s:%d ignored", device.function, device.number)
                return existing
            self._devices[device.key] = device
            return device

    def resolve(self, function: Function, number: int) -> Device:
        """Return the registered device or raise ComponentNotFoundError."""
        device = self.find(function, number)
        if device is None:
            raise ComponentNotFoundError(function, number)
        return device

    def find(self, function: Function, number: int) -> Device | None:
        with self._lock:
            return self._devices.get((function, number))

    def all_devices(self, function: Function | None = None) -> list[Device]:
        """Every device, or every device of one function, ordered by number."""
        with self._lock:
            devices = [d for d in self._devices.values() if function is None or d.function is function]
        return sorted(devices, key=lambda d: (d.function.value, d.number))

    def functions(self) -> list[Function]:
        """Functions with at least one registered device, in enum order."""
        with self._lock:
            present = {function for function, _ in self._devices}
        return [function for function in Function if function in present]

    def get_state(self, device: Device) -> LogicalState | None:
        with self._lock:
            return device.state

    def update_state(self, device: Device, state: LogicalState) -> bool:
        """Record an observed state.

        Returns:
            True if the cached state changed
        """
        with self._lock:
            changed = device.state != state
            device.state = state
        if changed:
            logger.debug(
                "State of %s:%d -> %s",
                device.function,
                device.number,
                state,
                extra={"function": str(device.function), "number": device.number, "state": str(state)},
            )
        return changed

    def __len__(self) -> int:
        with self._lock:
            return len(self._devices)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._devices


# Registry file models


class ComponentConfig(BaseModel):
    """One component entry of the registry file."""

    number: Annotated[int, Field(ge=0, le=65535)]
    description: str = ""


class RegistryConfig(BaseModel):
    """Registry file layout.

    Example::

        central_unit:
          host: 192.168.1.10
          central_unit_type: MICROS_PLUS
        components:
          relay:
            - number: 1
              description: Kitchen
          dimmer:
            - {number: 3, description: Living room}
    """

    central_unit: ClientConfig | None = None
    components: dict[Function, list[ComponentConfig]] = Field(default_factory=dict)

    def build_registry(self) -> DeviceRegistry:
        return DeviceRegistry(
            Device(function=function, number=entry.number, description=entry.description)
            for function, entries in self.components.items()
            for entry in entries
        )


def parse_registry(data: Mapping[str, object] | None) -> RegistryConfig:
    """Validate already-loaded registry data.

    Raises:
        RegistryLoadError: If the data does not match the registry layout
    """
    try:
        return RegistryConfig.model_validate(data or {})
    except ValidationError as e:
        logger.exception("Invalid registry configuration")
        raise RegistryLoadError(str(e)) from e


def load_registry_config(path: str | Path) -> RegistryConfig:
    """Read and validate a YAML registry file.

    Raises:
        RegistryLoadError: If the file cannot be read, parsed, or validated
    """
    registry_file = Path(path)
    logger.debug("Parsing registry file: %s", registry_file)
    try:
        with registry_file.open() as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.exception("Failed to parse registry file: %s", registry_file)
        raise RegistryLoadError(f"{registry_file}: {e}") from e

    if data is not None and not isinstance(data, Mapping):
        msg = f"{registry_file}: top level must be a mapping"
        raise RegistryLoadError(msg)

    config = parse_registry(data)
    logger.info(
        "Parsed registry: %d component(s)",
        sum(len(entries) for entries in config.components.values()),
        extra={"file": str(registry_file)},
    )
    return config


def load_registry(path: str | Path) -> DeviceRegistry:
    """Load a DeviceRegistry from a YAML file."""
    return load_registry_config(path).build_registry()

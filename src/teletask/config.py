"""Client configuration model."""

from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator

from teletask import const
from teletask.protocol.profiles import ProtocolProfile, get_profile
from teletask.protocol.types import Function
from teletask.transport.timeouts import TimeoutConfig

PositiveSeconds = Annotated[float, Field(gt=0)]


class ClientConfig(BaseModel):
    """Connection settings, read once at client construction."""

    model_config = ConfigDict(frozen=True)

    host: str = "localhost"
    port: Annotated[int, Field(ge=1, le=65535)] = const.DEFAULT_PORT
    central_unit_type: str = "MICROS_PLUS"
    central_unit_number: Annotated[int, Field(ge=0, le=255)] = 1

    connect_timeout: PositiveSeconds = 5.0
    request_timeout: PositiveSeconds = 5.0
    poll_interval: PositiveSeconds = 0.01
    event_interval: PositiveSeconds = 0.02
    confirmation_timeout: PositiveSeconds = 5.0
    confirmation_interval: PositiveSeconds = 0.01
    # Overrides the profile's keep-alive period when set
    keep_alive_interval: PositiveSeconds | None = None

    refresh_on_connect: bool = True
    monitored_functions: tuple[Function, ...] = tuple(Function(name) for name in const.DEFAULT_MONITORED_FUNCTIONS)
    test_mode: bool = False
    # Prometheus exporter port; None leaves the exporter off
    metrics_port: Annotated[int, Field(ge=1, le=65535)] | None = None

    @field_validator("central_unit_type")
    @classmethod
    def _known_central_unit(cls, value: str) -> str:
        return get_profile(value).name

    @property
    def profile(self) -> ProtocolProfile:
        return get_profile(self.central_unit_type)

    @property
    def endpoint(self) -> str:
        return f"{self.host}:{self.port}"

    def timeouts(self) -> TimeoutConfig:
        return TimeoutConfig(
            request_timeout=self.request_timeout,
            poll_interval=self.poll_interval,
            confirmation_timeout=self.confirmation_timeout,
            confirmation_interval=self.confirmation_interval,
        )

    @classmethod
    def from_env(cls, **overrides: object) -> ClientConfig:
        """Build a config from TELETASK_* environment variables."""
        values: dict[str, object] = {
            "host": const.TELETASK_HOST,
            "port": const.TELETASK_PORT,
            "central_unit_type": const.TELETASK_CENTRAL_UNIT_TYPE,
            "central_unit_number": const.TELETASK_CENTRAL_UNIT_NUMBER,
            "refresh_on_connect": const.TELETASK_REFRESH_ON_CONNECT,
            "test_mode": const.TELETASK_TEST_MODE,
            "metrics_port": const.TELETASK_METRICS_PORT if const.TELETASK_ENABLE_METRICS else None,
        }
        values.update(overrides)
        return cls.model_validate(values)

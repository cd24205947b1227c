"""Core data models used across the connection manager, queue, facade and CLI."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from bledomctl.core.protocol import SERVICE_UUID, WRITE_CHAR_UUID


class ConnectionState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    CONNECTING = "connecting"
    READY = "ready"
    DISCONNECTED = "disconnected"


@dataclass(frozen=True)
class Peripheral:
    """A device seen by the radio; ``handle`` is the transport's own object."""

    address: str
    name: str | None = None
    handle: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class WriteChannel:
    address: str
    char_uuid: str
    handle: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class TransportSettings:
    service_uuid: str = SERVICE_UUID
    write_char_uuid: str = WRITE_CHAR_UUID
    write_with_response: bool = True
    connect_timeout_s: float = 10.0


@dataclass(frozen=True)
class QueueSettings:
    ready_timeout_s: float = 10.0
    poll_interval_s: float = 0.2


@dataclass(frozen=True)
class DeviceConfig:
    uuid: str | None = None
    name: str | None = None
    transport: TransportSettings = TransportSettings()
    queue: QueueSettings = QueueSettings()


@dataclass(frozen=True)
class DeviceState:
    power: bool = False
    brightness: int = 100
    hue: float = 0.0
    saturation: float = 0.0
    lightness: float = 0.5

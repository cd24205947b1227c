"""Stable public API for building tooling on top of bledomctl.

This module is the supported integration surface for third-party callers such
as home-automation bridges. Avoid importing from private/internal modules
unless intentionally depending on non-stable internals.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

from bledomctl.core.color import hsl_to_rgb
from bledomctl.core.config import LoadedConfig, load_config
from bledomctl.core.device import LedStripDevice
from bledomctl.core.errors import (
    BledomctlError,
    ColourRangeError,
    ConfigLoadError,
    ConfigValidationError,
    MissingDeviceIdentityError,
    ReadinessTimeoutError,
    ScanError,
    TransportConnectError,
    TransportError,
    TransportWriteError,
)
from bledomctl.core.model import (
    ConnectionState,
    DeviceConfig,
    DeviceState,
    Peripheral,
    QueueSettings,
    TransportSettings,
)
from bledomctl.core.protocol import encode_brightness, encode_power, encode_rgb
from bledomctl.transports.base import Radio
from bledomctl.transports.ble_gatt import BleakRadio

__all__ = [
    "BledomctlError",
    "ColourRangeError",
    "ConfigLoadError",
    "ConfigValidationError",
    "MissingDeviceIdentityError",
    "ReadinessTimeoutError",
    "ScanError",
    "TransportConnectError",
    "TransportError",
    "TransportWriteError",
    "ConnectionState",
    "DeviceConfig",
    "DeviceState",
    "LoadedConfig",
    "Peripheral",
    "QueueSettings",
    "TransportSettings",
    "BleakRadio",
    "LedStripDevice",
    "LightAccessory",
    "encode_brightness",
    "encode_power",
    "encode_rgb",
    "hsl_to_rgb",
    "load_config",
]

LOGGER = logging.getLogger(__name__)


class LightAccessory:
    """Host-facing light with on/off, brightness, hue and saturation properties.

    Getters return the last confirmed value. Setters schedule the command on the
    running loop and return the task immediately, so the host is never blocked
    on radio delivery. Without a configured device identity every property call
    raises :class:`MissingDeviceIdentityError`.
    """

    def __init__(self, config: DeviceConfig, *, radio: Radio | None = None) -> None:
        self.config = config
        self.device: LedStripDevice | None = None
        if not config.uuid:
            LOGGER.warning("Missing device UUID in config.")
            return
        self.device = LedStripDevice(
            radio or BleakRadio(connect_timeout_s=config.transport.connect_timeout_s),
            config,
        )
        LOGGER.info("Device UUID: %s", config.uuid)

    def _require_device(self) -> LedStripDevice:
        if self.device is None:
            raise MissingDeviceIdentityError("Missing device UUID in config.")
        return self.device

    def get_power(self) -> bool:
        return self._require_device().power

    def get_brightness(self) -> int:
        return self._require_device().brightness

    def get_hue(self) -> float:
        return self._require_device().hue

    def get_saturation(self) -> float:
        return self._require_device().saturation

    def set_power(self, on: bool) -> asyncio.Task[None]:
        device = self._require_device()
        LOGGER.info("Host set power %s", on)
        return _schedule(device.set_power(on))

    def set_brightness(self, brightness: int) -> asyncio.Task[None]:
        device = self._require_device()
        LOGGER.info("Host set brightness %s", brightness)
        return _schedule(device.set_brightness(brightness))

    def set_hue(self, hue: float) -> asyncio.Task[None]:
        device = self._require_device()
        LOGGER.info("Host set hue %s", hue)
        return _schedule(device.set_hue(hue))

    def set_saturation(self, saturation: float) -> asyncio.Task[None]:
        device = self._require_device()
        LOGGER.info("Host set saturation %s", saturation)
        return _schedule(device.set_saturation(saturation))


def _schedule(coro: Coroutine[Any, Any, None]) -> asyncio.Task[None]:
    task = asyncio.get_running_loop().create_task(coro)
    task.add_done_callback(_log_task_failure)
    return task


def _log_task_failure(task: asyncio.Task[None]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        LOGGER.debug("Host command did not complete: %s", exc)

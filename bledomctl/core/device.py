"""Device facade used by the CLI, the accessory API and future frontends."""

from __future__ import annotations

import dataclasses
import logging
from typing import Any

from bledomctl.core.color import hsl_to_rgb
from bledomctl.core.command_queue import CommandQueue
from bledomctl.core.connection import ConnectionManager
from bledomctl.core.errors import ColourRangeError, MissingDeviceIdentityError
from bledomctl.core.model import ConnectionState, DeviceConfig, DeviceState
from bledomctl.core.protocol import encode_brightness, encode_power, encode_rgb
from bledomctl.transports.base import Radio

LOGGER = logging.getLogger(__name__)


def check_hue(hue: float) -> None:
    if not 0 <= hue < 360:
        raise ColourRangeError(f"Hue must be within 0..360 degrees, got {hue:g}")


def check_saturation(saturation: float) -> None:
    if not 0 <= saturation <= 100:
        raise ColourRangeError(f"Saturation must be within 0..100, got {saturation:g}")


class LedStripDevice:
    """Cached state plus queued setters for one LED strip.

    Getters only reflect confirmed state: a property changes once the frame
    carrying it has been written, never when the setter is called.
    """

    def __init__(self, radio: Radio, config: DeviceConfig) -> None:
        if not config.uuid:
            raise MissingDeviceIdentityError("Missing device UUID in config.")
        self.config = config
        self.uuid = config.uuid
        self.connection = ConnectionManager(radio, config.uuid, transport=config.transport)
        self.queue = CommandQueue(self.connection, settings=config.queue)
        self._state = DeviceState()
        # Most recently requested colour, used to compose the next RGB frame.
        self._target_hue = self._state.hue
        self._target_saturation = self._state.saturation
        radio.attach(self.connection)

    @property
    def state(self) -> DeviceState:
        return self._state

    @property
    def power(self) -> bool:
        return self._state.power

    @property
    def brightness(self) -> int:
        return self._state.brightness

    @property
    def hue(self) -> float:
        return self._state.hue

    @property
    def saturation(self) -> float:
        return self._state.saturation

    @property
    def connected(self) -> bool:
        return self.connection.connected

    @property
    def connection_state(self) -> ConnectionState:
        return self.connection.state

    async def set_power(self, on: bool) -> None:
        await self.queue.enqueue("Power", encode_power(on), lambda: self._confirm(power=on))

    async def set_brightness(self, level: int) -> None:
        if level < 0 or level > 100:
            LOGGER.debug("Ignoring out-of-range brightness %s", level)
            return
        await self.queue.enqueue(
            "Brightness",
            encode_brightness(level),
            lambda: self._confirm(brightness=level),
        )

    async def set_hue(self, hue: float) -> None:
        check_hue(hue)
        self._target_hue = hue
        await self._set_colour(hue, self._target_saturation)

    async def set_saturation(self, saturation: float) -> None:
        check_saturation(saturation)
        self._target_saturation = saturation
        await self._set_colour(self._target_hue, saturation)

    async def set_rgb(self, r: int, g: int, b: int) -> None:
        await self.queue.enqueue("Colour", encode_rgb(r, g, b))

    async def _set_colour(self, hue: float, saturation: float) -> None:
        r, g, b = hsl_to_rgb(hue / 360, saturation / 100, self._state.lightness)
        await self.queue.enqueue(
            "Colour",
            encode_rgb(r, g, b),
            lambda: self._confirm(hue=hue, saturation=saturation),
        )

    async def wait_idle(self) -> None:
        await self.queue.join()

    async def close(self) -> None:
        await self.queue.close()
        await self.connection.close()

    def _confirm(self, **changes: Any) -> None:
        self._state = dataclasses.replace(self._state, **changes)

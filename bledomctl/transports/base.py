"""Transport interfaces."""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

from bledomctl.core.model import Peripheral, WriteChannel


class RadioListener(Protocol):
    def on_adapter_powered_on(self) -> None: ...

    def on_adapter_powered_off(self) -> None: ...

    def on_peripheral_discovered(self, peripheral: Peripheral) -> None: ...


class Radio(Protocol):
    def attach(self, listener: RadioListener) -> None:
        """Route adapter and discovery events to ``listener``."""

    async def start_scan(self) -> None: ...

    async def stop_scan(self) -> None: ...

    def is_connected(self, peripheral: Peripheral) -> bool: ...

    async def connect(self, peripheral: Peripheral) -> None: ...

    async def discover_characteristic(
        self,
        peripheral: Peripheral,
        service_uuid: str,
        char_uuid: str,
    ) -> WriteChannel:
        """Resolve the writable characteristic of an already connected peripheral."""

    async def write(self, channel: WriteChannel, payload: bytes, *, with_response: bool = True) -> None: ...

    async def disconnect(self, peripheral: Peripheral) -> None: ...

    def register_disconnect_observer(self, address: str, callback: Callable[[str], None]) -> None:
        """Call ``callback(address)`` once when the link to ``address`` drops."""

    def unregister_disconnect_observer(self, address: str) -> None: ...

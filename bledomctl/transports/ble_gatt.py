"""BLE GATT radio implementation on top of bleak."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from bleak import BleakClient, BleakScanner
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData
from bleak.exc import BleakError
from bleak.uuids import normalize_uuid_str

from bledomctl.core.errors import (
    ScanError,
    TransportConnectError,
    TransportError,
    TransportWriteError,
)
from bledomctl.core.model import Peripheral, WriteChannel
from bledomctl.transports.base import RadioListener

LOGGER = logging.getLogger(__name__)


class BleakRadio:
    """Scanner plus one ``BleakClient`` per connected address.

    bleak has no portable adapter power event, so whoever owns the radio calls
    :meth:`power_on` at start-up and :meth:`power_off` at shutdown.
    """

    def __init__(self, *, connect_timeout_s: float = 10.0) -> None:
        self.connect_timeout_s = connect_timeout_s
        self._listener: RadioListener | None = None
        self._scanner: BleakScanner | None = None
        self._scan_lock = asyncio.Lock()
        self._clients: dict[str, BleakClient] = {}
        self._disconnect_observers: dict[str, Callable[[str], None]] = {}

    def attach(self, listener: RadioListener) -> None:
        self._listener = listener

    async def power_on(self) -> None:
        if self._listener is not None:
            self._listener.on_adapter_powered_on()

    async def power_off(self) -> None:
        if self._listener is not None:
            self._listener.on_adapter_powered_off()
        await self.stop_scan()
        for address in list(self._clients):
            client = self._clients.pop(address)
            try:
                await client.disconnect()
            except BleakError as exc:
                LOGGER.debug("Disconnect of %s failed: %s", address, exc)

    async def start_scan(self) -> None:
        async with self._scan_lock:
            if self._scanner is not None:
                return
            scanner = BleakScanner(detection_callback=self._on_detection)
            try:
                await scanner.start()
            except (BleakError, OSError) as exc:
                raise ScanError(f"Could not start BLE scan: {exc}") from exc
            self._scanner = scanner

    async def stop_scan(self) -> None:
        async with self._scan_lock:
            scanner, self._scanner = self._scanner, None
            if scanner is None:
                return
            try:
                await scanner.stop()
            except (BleakError, OSError) as exc:
                raise ScanError(f"Could not stop BLE scan: {exc}") from exc

    def is_connected(self, peripheral: Peripheral) -> bool:
        client = self._clients.get(peripheral.address)
        return client is not None and client.is_connected

    async def connect(self, peripheral: Peripheral) -> None:
        target = peripheral.handle if peripheral.handle is not None else peripheral.address
        client = BleakClient(
            target,
            disconnected_callback=self._on_client_disconnected,
            timeout=self.connect_timeout_s,
        )
        try:
            await client.connect()
        except (BleakError, asyncio.TimeoutError, OSError) as exc:
            raise TransportConnectError(f"BLE connect failed for {peripheral.address}: {exc}") from exc
        if not client.is_connected:
            raise TransportConnectError(f"BLE connect failed for {peripheral.address}")
        self._clients[peripheral.address] = client

    async def discover_characteristic(
        self,
        peripheral: Peripheral,
        service_uuid: str,
        char_uuid: str,
    ) -> WriteChannel:
        client = self._clients.get(peripheral.address)
        if client is None or not client.is_connected:
            raise TransportConnectError(f"{peripheral.address} is not connected")

        service = client.services.get_service(normalize_uuid_str(service_uuid))
        if service is None:
            raise TransportConnectError(f"Service {service_uuid} not found on {peripheral.address}")
        characteristic = service.get_characteristic(normalize_uuid_str(char_uuid))
        if characteristic is None:
            raise TransportConnectError(
                f"Characteristic {char_uuid} not found in service {service_uuid} on {peripheral.address}"
            )
        return WriteChannel(address=peripheral.address, char_uuid=characteristic.uuid, handle=characteristic)

    async def write(self, channel: WriteChannel, payload: bytes, *, with_response: bool = True) -> None:
        client = self._clients.get(channel.address)
        if client is None or not client.is_connected:
            raise TransportWriteError(f"{channel.address} is not connected")
        try:
            await client.write_gatt_char(channel.handle, payload, response=with_response)
        except (BleakError, asyncio.TimeoutError, OSError) as exc:
            raise TransportWriteError(f"BLE GATT write failed: {exc}") from exc

    async def disconnect(self, peripheral: Peripheral) -> None:
        client = self._clients.pop(peripheral.address, None)
        if client is None:
            return
        try:
            await client.disconnect()
        except BleakError as exc:
            raise TransportError(f"BLE disconnect failed for {peripheral.address}: {exc}") from exc

    def register_disconnect_observer(self, address: str, callback: Callable[[str], None]) -> None:
        self._disconnect_observers[address.upper()] = callback

    def unregister_disconnect_observer(self, address: str) -> None:
        self._disconnect_observers.pop(address.upper(), None)

    def _on_detection(self, device: BLEDevice, advertisement: AdvertisementData) -> None:
        if self._listener is None:
            return
        peripheral = Peripheral(
            address=device.address,
            name=device.name or advertisement.local_name,
            handle=device,
        )
        self._listener.on_peripheral_discovered(peripheral)

    def _on_client_disconnected(self, client: BleakClient) -> None:
        address = client.address
        if self._clients.get(address) is client:
            del self._clients[address]
        callback = self._disconnect_observers.pop(address.upper(), None)
        if callback is not None:
            callback(address)


async def scan_for_devices(duration_s: float = 5.0) -> list[Peripheral]:
    """Run a one-off scan and return every advertising device seen."""
    try:
        found = await BleakScanner.discover(timeout=duration_s, return_adv=True)
    except (BleakError, OSError) as exc:
        raise ScanError(f"BLE scan failed: {exc}") from exc

    peripherals = [
        Peripheral(address=device.address, name=device.name or adv.local_name, handle=device)
        for device, adv in found.values()
    ]
    return sorted(peripherals, key=lambda p: p.address)

"""Connection lifecycle for a single LED strip peripheral.

The manager reacts to radio events (adapter power, discovery, peer disconnect)
and exposes :meth:`ConnectionManager.ensure_connected` and
:meth:`ConnectionManager.wait_for_ready` to the command queue. All handlers run
on one asyncio event loop, which is what keeps the plain attributes below
consistent without locks.

State machine::

    IDLE --adapter on--> SCANNING --discover--> CONNECTING --ok--> READY
    CONNECTING --failure--> SCANNING
    READY --peer disconnect--> SCANNING
    any --adapter off--> IDLE
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

from bledomctl.core.errors import (
    ReadinessTimeoutError,
    ScanError,
    TransportConnectError,
    TransportError,
    TransportWriteError,
)
from bledomctl.core.model import ConnectionState, Peripheral, TransportSettings, WriteChannel
from bledomctl.transports.base import Radio

LOGGER = logging.getLogger(__name__)


def same_device(address: str, device_id: str) -> bool:
    return address.strip().lower() == device_id.strip().lower()


class ConnectionManager:
    def __init__(
        self,
        radio: Radio,
        device_id: str,
        *,
        transport: TransportSettings | None = None,
    ) -> None:
        self.device_id = device_id
        self.radio_ready = False
        self.scanning = False
        self._radio = radio
        self._settings = transport or TransportSettings()
        self._peripheral: Peripheral | None = None
        self._write_channel: WriteChannel | None = None
        self._connect_attempt: asyncio.Task[None] | None = None
        self._stop_scan_task: asyncio.Task[None] | None = None
        self._background: set[asyncio.Task[Any]] = set()

    @property
    def peripheral(self) -> Peripheral | None:
        return self._peripheral

    @property
    def write_channel(self) -> WriteChannel | None:
        return self._write_channel

    @property
    def connected(self) -> bool:
        return self._write_channel is not None and self._peripheral is not None

    @property
    def connecting(self) -> bool:
        return self._connect_attempt is not None

    @property
    def state(self) -> ConnectionState:
        if self.connected:
            return ConnectionState.READY
        if self._connect_attempt is not None:
            return ConnectionState.CONNECTING
        if not self.radio_ready:
            return ConnectionState.IDLE
        if self.scanning:
            return ConnectionState.SCANNING
        return ConnectionState.DISCONNECTED

    # Radio events

    def on_adapter_powered_on(self) -> None:
        LOGGER.debug("Adapter powered on")
        self.radio_ready = True
        self.start_scanning()

    def on_adapter_powered_off(self) -> None:
        LOGGER.debug("Adapter powered off")
        self.radio_ready = False
        self.stop_scanning()
        peripheral = self._peripheral
        if peripheral is not None:
            self._radio.unregister_disconnect_observer(peripheral.address)
            self._spawn(self._force_disconnect(peripheral))
        self._peripheral = None
        self._write_channel = None

    def on_peripheral_discovered(self, peripheral: Peripheral) -> None:
        if not same_device(peripheral.address, self.device_id):
            return
        if self.connected or self._connect_attempt is not None:
            LOGGER.debug("Ignoring repeated advertisement from %s", peripheral.address)
            return

        LOGGER.info("Discovered target device: %s", peripheral.address)
        self._peripheral = peripheral
        self.stop_scanning()
        self._radio.register_disconnect_observer(peripheral.address, self._on_peer_disconnected)
        self._spawn(self._connect_after_discovery(peripheral, self.ensure_connected()))

    def _on_peer_disconnected(self, address: str) -> None:
        if not same_device(address, self.device_id):
            return
        LOGGER.info("Device %s disconnected", address)
        self._write_channel = None
        self._peripheral = None
        self.start_scanning()

    # Scanning

    def start_scanning(self) -> None:
        if self.scanning or not self.radio_ready:
            return
        self.scanning = True
        LOGGER.debug("Starting scan for %s", self.device_id)
        self._spawn(self._start_scan())

    def stop_scanning(self) -> None:
        if not self.scanning:
            return
        self.scanning = False
        LOGGER.debug("Stopping scan")
        self._stop_scan_task = self._spawn(self._stop_scan())

    async def _start_scan(self) -> None:
        try:
            await self._radio.start_scan()
        except ScanError as exc:
            self.scanning = False
            LOGGER.warning("Scan start error: %s", exc)

    async def _stop_scan(self) -> None:
        try:
            await self._radio.stop_scan()
        except ScanError as exc:
            LOGGER.debug("Scan stop error: %s", exc)

    # Connecting

    def ensure_connected(self) -> asyncio.Future[None]:
        """Return a future for the single in-flight connection attempt.

        Resolves immediately when already connected. Concurrent callers share
        one attempt and observe the same outcome; cancelling a caller's future
        does not cancel the shared attempt.
        """
        loop = asyncio.get_running_loop()
        if self.connected:
            done: asyncio.Future[None] = loop.create_future()
            done.set_result(None)
            return done

        if self._connect_attempt is None:
            peripheral = self._peripheral
            if peripheral is None:
                failed: asyncio.Future[None] = loop.create_future()
                failed.set_exception(
                    TransportConnectError(f"Device {self.device_id} has not been discovered")
                )
                return failed
            self._connect_attempt = loop.create_task(self._connect(peripheral))

        return asyncio.shield(self._connect_attempt)

    async def _connect(self, peripheral: Peripheral) -> None:
        try:
            stop_scan, self._stop_scan_task = self._stop_scan_task, None
            if stop_scan is not None and not stop_scan.done():
                await stop_scan

            if not self._radio.is_connected(peripheral):
                LOGGER.info("Connecting to %s...", peripheral.address)
                await self._radio.connect(peripheral)
                LOGGER.info("Connected")

            channel = await self._radio.discover_characteristic(
                peripheral,
                self._settings.service_uuid,
                self._settings.write_char_uuid,
            )
            if self._peripheral is not peripheral:
                raise TransportConnectError(f"Lost {peripheral.address} while connecting")
        except TransportConnectError as exc:
            self._write_channel = None
            LOGGER.warning("Connection error: %s", exc)
            raise
        except Exception as exc:
            self._write_channel = None
            LOGGER.warning("Connection error: %s", exc)
            raise TransportConnectError(f"Connect to {peripheral.address} failed: {exc}") from exc
        finally:
            self._connect_attempt = None

        self._write_channel = channel

    async def _connect_after_discovery(self, peripheral: Peripheral, attempt: asyncio.Future[None]) -> None:
        try:
            await attempt
        except TransportConnectError as exc:
            LOGGER.warning("Connect failed after discovery: %s", exc)
            if self._peripheral is peripheral:
                self._radio.unregister_disconnect_observer(peripheral.address)
                self._peripheral = None
            self.start_scanning()

    async def _force_disconnect(self, peripheral: Peripheral) -> None:
        try:
            await self._radio.disconnect(peripheral)
        except TransportError as exc:
            LOGGER.debug("Disconnect of %s failed: %s", peripheral.address, exc)

    # Used by the command queue

    async def wait_for_ready(self, timeout_s: float = 10.0, poll_interval_s: float = 0.2) -> None:
        """Poll until connected, driving discovery and connection meanwhile.

        Connect failures during the wait are not surfaced; only running out of
        ``timeout_s`` is, as :class:`ReadinessTimeoutError`.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_s
        while not self.connected:
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise ReadinessTimeoutError(
                    f"Timed out waiting for device {self.device_id} after {timeout_s:.1f}s"
                )

            self.start_scanning()
            if self._peripheral is not None or self._connect_attempt is not None:
                try:
                    await asyncio.wait_for(self.ensure_connected(), timeout=remaining)
                except (TransportConnectError, asyncio.TimeoutError) as exc:
                    LOGGER.debug("Still waiting for %s: %s", self.device_id, exc)
                else:
                    continue

            await asyncio.sleep(poll_interval_s)

    async def write(self, payload: bytes) -> None:
        channel = self._write_channel
        if channel is None:
            raise TransportWriteError("Missing write characteristic")
        try:
            await self._radio.write(
                channel,
                payload,
                with_response=self._settings.write_with_response,
            )
        except TransportWriteError:
            raise
        except Exception as exc:
            raise TransportWriteError(f"Write to {channel.address} failed: {exc}") from exc

    def reset_after_failure(self) -> None:
        self._write_channel = None
        self.start_scanning()

    async def close(self) -> None:
        """Abort any connection attempt and let pending scan/disconnect calls finish."""
        if self._connect_attempt is not None:
            self._connect_attempt.cancel()
        await asyncio.gather(*self._background, return_exceptions=True)

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task[None]:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

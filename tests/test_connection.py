from __future__ import annotations

import asyncio

import pytest
from fakes import ADDRESS, FakeRadio

from bledomctl.core.connection import ConnectionManager
from bledomctl.core.errors import ReadinessTimeoutError, ScanError, TransportConnectError
from bledomctl.core.model import ConnectionState


def _manager(radio: FakeRadio) -> ConnectionManager:
    manager = ConnectionManager(radio, ADDRESS)
    radio.attach(manager)
    return manager


async def _settle() -> None:
    await asyncio.sleep(0.01)


def test_adapter_power_on_starts_scanning_once() -> None:
    async def scenario() -> None:
        radio = FakeRadio()
        manager = _manager(radio)
        assert manager.state is ConnectionState.IDLE

        manager.on_adapter_powered_on()
        manager.on_adapter_powered_on()
        await _settle()

        assert radio.count("start_scan") == 1
        assert manager.state is ConnectionState.SCANNING

    asyncio.run(scenario())


def test_scan_start_failure_clears_scanning_flag() -> None:
    async def scenario() -> None:
        radio = FakeRadio()
        radio.scan_error = ScanError("adapter busy")
        manager = _manager(radio)

        manager.on_adapter_powered_on()
        await _settle()

        assert manager.scanning is False
        assert manager.state is ConnectionState.DISCONNECTED

    asyncio.run(scenario())


def test_other_devices_are_ignored() -> None:
    async def scenario() -> None:
        radio = FakeRadio()
        manager = _manager(radio)
        manager.on_adapter_powered_on()
        await _settle()

        radio.advertise("11:22:33:44:55:66")
        await _settle()

        assert manager.peripheral is None
        assert radio.count("connect") == 0
        assert manager.scanning is True

    asyncio.run(scenario())


def test_discovery_stops_scan_then_connects() -> None:
    async def scenario() -> None:
        radio = FakeRadio()
        manager = _manager(radio)
        manager.on_adapter_powered_on()
        await _settle()

        radio.advertise(ADDRESS.lower())
        await _settle()

        assert manager.connected is True
        assert manager.state is ConnectionState.READY
        assert manager.write_channel is not None
        assert manager.write_channel.char_uuid == "fff3"
        assert radio.calls.index("stop_scan") < radio.calls.index("connect")
        assert ADDRESS.lower() in radio.observers

    asyncio.run(scenario())


def test_repeated_advertisements_do_not_reconnect() -> None:
    async def scenario() -> None:
        radio = FakeRadio()
        radio.connect_delay = 0.02
        manager = _manager(radio)
        manager.on_adapter_powered_on()
        await _settle()

        radio.advertise()
        radio.advertise()
        assert manager.state is ConnectionState.CONNECTING
        await asyncio.sleep(0.05)
        radio.advertise()
        await _settle()

        assert radio.count("connect") == 1
        assert manager.connected is True

    asyncio.run(scenario())


def test_concurrent_ensure_connected_share_one_attempt() -> None:
    async def scenario() -> None:
        radio = FakeRadio()
        radio.connect_delay = 0.02
        manager = _manager(radio)

        radio.advertise()
        first = manager.ensure_connected()
        second = manager.ensure_connected()
        results = await asyncio.gather(first, second)

        assert results == [None, None]
        assert radio.count("connect") == 1
        assert manager.connecting is False

    asyncio.run(scenario())


def test_concurrent_callers_share_failure_and_discovery_recovers() -> None:
    async def scenario() -> None:
        radio = FakeRadio()
        radio.connect_delay = 0.02
        radio.connect_failures = 1
        manager = _manager(radio)
        manager.on_adapter_powered_on()
        await _settle()

        radio.advertise()
        results = await asyncio.gather(
            manager.ensure_connected(),
            manager.ensure_connected(),
            return_exceptions=True,
        )
        await _settle()

        assert all(isinstance(result, TransportConnectError) for result in results)
        assert radio.count("connect") == 1
        assert manager.connected is False
        assert manager.peripheral is None
        assert manager.scanning is True
        assert radio.count("start_scan") == 2

    asyncio.run(scenario())


def test_ensure_connected_without_discovery_fails() -> None:
    async def scenario() -> None:
        manager = _manager(FakeRadio())
        with pytest.raises(TransportConnectError):
            await manager.ensure_connected()

    asyncio.run(scenario())


def test_ensure_connected_when_ready_resolves_immediately() -> None:
    async def scenario() -> None:
        radio = FakeRadio()
        manager = _manager(radio)
        radio.advertise()
        await _settle()

        await manager.ensure_connected()

        assert radio.count("connect") == 1
        assert radio.count("discover") == 1

    asyncio.run(scenario())


def test_peer_disconnect_resumes_scanning_once() -> None:
    async def scenario() -> None:
        radio = FakeRadio()
        manager = _manager(radio)
        manager.on_adapter_powered_on()
        await _settle()
        radio.advertise()
        await _settle()
        assert manager.scanning is False

        radio.drop_link()
        manager.start_scanning()
        await _settle()

        assert manager.connected is False
        assert manager.peripheral is None
        assert manager.write_channel is None
        assert manager.state is ConnectionState.SCANNING
        assert radio.count("start_scan") == 2

    asyncio.run(scenario())


def test_reconnects_after_peer_disconnect() -> None:
    async def scenario() -> None:
        radio = FakeRadio(advertise_on_scan=ADDRESS)
        manager = _manager(radio)
        manager.on_adapter_powered_on()
        await _settle()
        assert manager.connected is True

        radio.drop_link()
        await _settle()

        assert manager.connected is True
        assert radio.count("connect") == 2

    asyncio.run(scenario())


def test_adapter_power_off_resets_to_idle() -> None:
    async def scenario() -> None:
        radio = FakeRadio()
        manager = _manager(radio)
        manager.on_adapter_powered_on()
        await _settle()
        radio.advertise()
        await _settle()

        manager.on_adapter_powered_off()
        await _settle()

        assert manager.state is ConnectionState.IDLE
        assert manager.connected is False
        assert manager.write_channel is None
        assert radio.count("disconnect") == 1
        assert radio.observers == {}

        manager.start_scanning()
        await _settle()
        assert radio.count("start_scan") == 1

    asyncio.run(scenario())


def test_wait_for_ready_times_out_after_budget() -> None:
    async def scenario() -> float:
        manager = _manager(FakeRadio())
        manager.on_adapter_powered_on()
        loop = asyncio.get_running_loop()
        started = loop.time()
        with pytest.raises(ReadinessTimeoutError):
            await manager.wait_for_ready(timeout_s=0.3, poll_interval_s=0.05)
        return loop.time() - started

    elapsed = asyncio.run(scenario())
    assert 0.3 <= elapsed < 0.3 + 0.05 + 0.2


def test_wait_for_ready_keeps_trying_through_connect_failures() -> None:
    async def scenario() -> None:
        radio = FakeRadio(advertise_on_scan=ADDRESS)
        radio.connect_failures = 2
        manager = _manager(radio)
        manager.on_adapter_powered_on()

        await manager.wait_for_ready(timeout_s=2.0, poll_interval_s=0.01)

        assert manager.connected is True
        assert radio.count("connect") == 3

    asyncio.run(scenario())


def test_adapter_power_off_during_connect_fails_attempt() -> None:
    async def scenario() -> None:
        radio = FakeRadio()
        radio.connect_delay = 0.05
        manager = _manager(radio)
        manager.on_adapter_powered_on()
        await _settle()
        radio.advertise()
        attempt = manager.ensure_connected()
        await _settle()
        assert manager.state is ConnectionState.CONNECTING

        manager.on_adapter_powered_off()
        with pytest.raises(TransportConnectError):
            await attempt
        await _settle()

        assert manager.state is ConnectionState.IDLE
        assert manager.write_channel is None
        assert radio.count("start_scan") == 1

    asyncio.run(scenario())


def test_stop_scan_is_awaited_by_first_connect_only() -> None:
    async def scenario() -> None:
        radio = FakeRadio()
        manager = _manager(radio)
        manager.on_adapter_powered_on()
        await _settle()
        radio.advertise()
        await _settle()
        assert manager.connected is True
        assert manager._stop_scan_task is None

        radio.drop_link()
        await _settle()
        radio.advertise()
        await _settle()

        assert manager.connected is True
        assert radio.count("stop_scan") == 2
        assert manager._stop_scan_task is None

    asyncio.run(scenario())

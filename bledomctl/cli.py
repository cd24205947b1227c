"""Typer CLI entrypoint."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path

import typer

from bledomctl.core.config import load_config
from bledomctl.core.device import LedStripDevice, check_hue, check_saturation
from bledomctl.core.errors import BledomctlError, MissingDeviceIdentityError
from bledomctl.core.model import DeviceConfig, QueueSettings
from bledomctl.transports.ble_gatt import BleakRadio, scan_for_devices

LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"
log = logging.getLogger("bledomctl")

app = typer.Typer(help="Control ELK-BLEDOM style Bluetooth LED strips")

DeviceOption = typer.Option(None, "--device", "-d", help="Device address/UUID (overrides config)")
ConfigOption = typer.Option(None, "--config", help="Path to config.yaml")
TimeoutOption = typer.Option(None, "--timeout", help="Seconds to wait for the device to become ready")
DebugOption = typer.Option(False, "--debug", help="Enable debug logging")


def configure_logging(debug: bool) -> None:
    logging.basicConfig(level=logging.WARNING, format=LOG_FORMAT, force=True)
    log.setLevel(logging.DEBUG if debug else logging.WARNING)


def _build_config(device: str | None, config_path: Path | None, timeout: float | None) -> DeviceConfig:
    config = load_config(config_path).config
    if device:
        config = dataclasses.replace(config, uuid=device.strip())
    if timeout is not None:
        config = dataclasses.replace(
            config,
            queue=QueueSettings(ready_timeout_s=timeout, poll_interval_s=config.queue.poll_interval_s),
        )
    if not config.uuid:
        raise MissingDeviceIdentityError(
            "Missing device UUID. Pass --device or set device.uuid in the config file."
        )
    return config


def _run_command(
    config: DeviceConfig,
    command: Callable[[LedStripDevice], Awaitable[None]],
    label: str,
) -> None:
    async def _run() -> LedStripDevice:
        radio = BleakRadio(connect_timeout_s=config.transport.connect_timeout_s)
        device = LedStripDevice(radio, config)
        await radio.power_on()
        try:
            await command(device)
        finally:
            await radio.power_off()
            await device.close()
        return device

    device = asyncio.run(_run())
    state = device.state
    target = f"{config.name} ({device.uuid})" if config.name else device.uuid
    typer.echo(f"Sent {label} to {target}")
    typer.echo(
        f"power={'on' if state.power else 'off'} brightness={state.brightness} "
        f"hue={state.hue:g} saturation={state.saturation:g}"
    )


@app.command("power")
def power(
    state: str = typer.Argument(..., help="on or off"),
    device: str | None = DeviceOption,
    config: Path | None = ConfigOption,
    timeout: float | None = TimeoutOption,
    debug: bool = DebugOption,
) -> None:
    """Turn the strip on or off."""
    configure_logging(debug)
    lowered = state.strip().lower()
    if lowered not in {"on", "off"}:
        typer.echo("Error: state must be 'on' or 'off'", err=True)
        raise typer.Exit(code=2)
    try:
        cfg = _build_config(device, config, timeout)
        _run_command(cfg, lambda d: d.set_power(lowered == "on"), f"power={lowered}")
    except BledomctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("brightness")
def brightness(
    level: int = typer.Argument(..., help="Brightness 0..100"),
    device: str | None = DeviceOption,
    config: Path | None = ConfigOption,
    timeout: float | None = TimeoutOption,
    debug: bool = DebugOption,
) -> None:
    """Set brightness (0..100). Out-of-range values are ignored."""
    configure_logging(debug)
    if level < 0 or level > 100:
        typer.echo(f"Brightness {level} is outside 0..100; nothing sent")
        return
    try:
        cfg = _build_config(device, config, timeout)
        _run_command(cfg, lambda d: d.set_brightness(level), f"brightness={level}")
    except BledomctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("hue")
def hue(
    degrees: float = typer.Argument(..., help="Hue in degrees 0..360"),
    device: str | None = DeviceOption,
    config: Path | None = ConfigOption,
    timeout: float | None = TimeoutOption,
    debug: bool = DebugOption,
) -> None:
    """Set hue, keeping the current saturation."""
    configure_logging(debug)
    try:
        check_hue(degrees)
        cfg = _build_config(device, config, timeout)
        _run_command(cfg, lambda d: d.set_hue(degrees), f"hue={degrees:g}")
    except BledomctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("saturation")
def saturation(
    percent: float = typer.Argument(..., help="Saturation 0..100"),
    device: str | None = DeviceOption,
    config: Path | None = ConfigOption,
    timeout: float | None = TimeoutOption,
    debug: bool = DebugOption,
) -> None:
    """Set saturation, keeping the current hue."""
    configure_logging(debug)
    try:
        check_saturation(percent)
        cfg = _build_config(device, config, timeout)
        _run_command(cfg, lambda d: d.set_saturation(percent), f"saturation={percent:g}")
    except BledomctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("color")
def color(
    hue_degrees: float = typer.Option(..., "--hue", help="Hue in degrees 0..360"),
    saturation_percent: float = typer.Option(100.0, "--saturation", help="Saturation 0..100"),
    device: str | None = DeviceOption,
    config: Path | None = ConfigOption,
    timeout: float | None = TimeoutOption,
    debug: bool = DebugOption,
) -> None:
    """Set hue and saturation together."""
    configure_logging(debug)

    async def _apply(d: LedStripDevice) -> None:
        await d.set_hue(hue_degrees)
        await d.set_saturation(saturation_percent)

    try:
        check_hue(hue_degrees)
        check_saturation(saturation_percent)
        cfg = _build_config(device, config, timeout)
        _run_command(cfg, _apply, f"color hue={hue_degrees:g} saturation={saturation_percent:g}")
    except BledomctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("scan")
def scan(
    duration: float = typer.Option(5.0, "--duration", help="Scan duration in seconds"),
    config: Path | None = ConfigOption,
    debug: bool = DebugOption,
) -> None:
    """List advertising Bluetooth devices, marking the configured strip."""
    configure_logging(debug)
    try:
        configured = load_config(config).config.uuid
        peripherals = asyncio.run(scan_for_devices(duration))
        if not peripherals:
            typer.echo("No Bluetooth devices found")
            return

        for peripheral in peripherals:
            marker = ""
            if configured and peripheral.address.lower() == configured.lower():
                marker = " <- configured"
            typer.echo(f"{peripheral.address} {peripheral.name or '<unknown-device>'}{marker}")
    except BledomctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


def run() -> None:
    app()


if __name__ == "__main__":
    run()

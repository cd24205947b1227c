from __future__ import annotations

import asyncio

import pytest
from fakes import ADDRESS, FakeRadio

from bledomctl.api import DeviceConfig, LightAccessory, MissingDeviceIdentityError, QueueSettings

CONFIG = DeviceConfig(uuid=ADDRESS, queue=QueueSettings(ready_timeout_s=1.0, poll_interval_s=0.01))


def test_accessory_without_identity_rejects_every_property() -> None:
    accessory = LightAccessory(DeviceConfig(uuid=None), radio=FakeRadio())

    assert accessory.device is None
    for getter in (accessory.get_power, accessory.get_brightness, accessory.get_hue, accessory.get_saturation):
        with pytest.raises(MissingDeviceIdentityError):
            getter()
    with pytest.raises(MissingDeviceIdentityError):
        accessory.set_power(True)


def test_accessory_setters_return_immediately_and_getters_follow_confirmation() -> None:
    async def scenario() -> None:
        radio = FakeRadio(advertise_on_scan=ADDRESS)
        accessory = LightAccessory(CONFIG, radio=radio)

        tasks = [
            accessory.set_power(True),
            accessory.set_brightness(30),
            accessory.set_saturation(100),
            accessory.set_hue(0),
        ]
        assert accessory.get_power() is False

        await radio.power_on()
        await asyncio.gather(*tasks)

        assert accessory.get_power() is True
        assert accessory.get_brightness() == 30
        assert accessory.get_saturation() == 100
        assert accessory.get_hue() == 0
        assert len(radio.writes) == 4
        await accessory.device.close()

    asyncio.run(scenario())


def test_accessory_failure_is_contained_in_task() -> None:
    async def scenario() -> None:
        radio = FakeRadio()
        config = DeviceConfig(uuid=ADDRESS, queue=QueueSettings(ready_timeout_s=0.05, poll_interval_s=0.01))
        accessory = LightAccessory(config, radio=radio)

        task = accessory.set_power(True)
        await asyncio.wait([task])

        assert task.exception() is not None
        assert accessory.get_power() is False
        await accessory.device.close()

    asyncio.run(scenario())

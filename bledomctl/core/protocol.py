"""Frame encoders for the ELK-BLEDOM style LED strip protocol.

Every frame starts with ``0x7e`` and ends with ``0xef``. Hue and saturation have
no frame of their own; callers convert them to RGB and use :func:`encode_rgb`.
"""

from __future__ import annotations

SERVICE_UUID = "fff0"
WRITE_CHAR_UUID = "fff3"

_FRAME_START = 0x7E
_FRAME_END = 0xEF


def _frame(*body: int) -> bytes:
    return bytes((_FRAME_START, *body, _FRAME_END))


def encode_power(on: bool) -> bytes:
    flag = 0x01 if on else 0x00
    return _frame(0x04, 0x04, flag, 0x00, flag, 0xFF, 0x00)


def encode_brightness(level: int) -> bytes:
    """Encode a brightness level; the raw 0..100 value is sent as one byte."""
    if not 0 <= level <= 100:
        raise ValueError(f"brightness level must be within 0..100, got {level}")
    return _frame(0x04, 0x01, level, 0xFF, 0xFF, 0xFF, 0x00)


def encode_rgb(r: int, g: int, b: int) -> bytes:
    for channel in (r, g, b):
        if not 0 <= channel <= 255:
            raise ValueError(f"colour channel must be within 0..255, got {channel}")
    return _frame(0x07, 0x05, 0x03, r, g, b, 0x10)

"""Notification decoding and hex rendering."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from gattcheck.core.model import CharacteristicUpdate

LOGGER = logging.getLogger(__name__)

_FLAG_UINT16 = 0x01


def hex_dump(data: bytes) -> str:
    """Render bytes as ``"0A FF "``: two uppercase digits and a space per byte."""
    return "".join(f"{byte:02X} " for byte in data)


def batch_hex_dump(payloads: Iterable[bytes]) -> str:
    return "".join(hex_dump(payload) + "\n" for payload in payloads)


def parse_hex(text: str) -> bytes:
    return bytes.fromhex("".join(text.split()))


@dataclass(frozen=True)
class DecodedUpdate:
    text: str | None = None
    payload: bytes | None = None

    @property
    def is_reading(self) -> bool:
        return self.text is not None and self.payload is None

    @property
    def is_empty(self) -> bool:
        return self.text is None


def decode_measurement(value: bytes) -> int | None:
    if not value:
        return None
    width = 2 if value[0] & _FLAG_UINT16 else 1
    if width == 2:
        LOGGER.debug("Measurement format UINT16")
    else:
        LOGGER.debug("Measurement format UINT8")
    field = value[1 : 1 + width]
    if not field:
        return None
    return int.from_bytes(field, "little")


def decode_update(update: CharacteristicUpdate, *, measurement_uuid: str) -> DecodedUpdate:
    if update.uuid.lower() == measurement_uuid:
        reading = decode_measurement(update.value)
        if reading is None:
            LOGGER.warning("Measurement update too short: %r", update.value)
            return DecodedUpdate()
        LOGGER.debug("Received measurement: %d", reading)
        return DecodedUpdate(text=str(reading))

    if not update.value:
        return DecodedUpdate()

    text = update.value.decode("utf-8", errors="replace")
    return DecodedUpdate(text=f"{text}\n{hex_dump(update.value)}", payload=bytes(update.value))

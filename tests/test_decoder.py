from __future__ import annotations

from gattcheck.core.decoder import batch_hex_dump, decode_update, hex_dump, parse_hex
from gattcheck.core.model import CharacteristicUpdate

HEART_RATE_UUID = "00002a37-0000-1000-8000-00805f9b34fb"
DATA_UUID = "0000fff4-0000-1000-8000-00805f9b34fb"


def _update(uuid: str, value: bytes) -> CharacteristicUpdate:
    return CharacteristicUpdate(uuid=uuid, value=value, received_at=0.0)


def test_hex_dump_uses_two_uppercase_digits_and_trailing_space() -> None:
    assert hex_dump(b"\x00\x0a\xff") == "00 0A FF "
    assert hex_dump(b"") == ""


def test_hex_dump_parses_back_to_the_same_bytes() -> None:
    for data in (b"", b"\x00", bytes(range(256)), b"hello\r\n"):
        assert parse_hex(hex_dump(data)) == data


def test_batch_hex_dump_ends_each_payload_with_newline() -> None:
    assert batch_hex_dump([b"\x01\x02", b"\x03"]) == "01 02 \n03 \n"


def test_heart_rate_uint16_flag_reads_little_endian_from_offset_one() -> None:
    decoded = decode_update(_update(HEART_RATE_UUID, bytes([0x01, 0x4B])), measurement_uuid=HEART_RATE_UUID)
    assert decoded.is_reading
    assert decoded.text == "75"
    assert decoded.payload is None

    decoded = decode_update(_update(HEART_RATE_UUID, bytes([0x01, 0x2C, 0x01])), measurement_uuid=HEART_RATE_UUID)
    assert decoded.text == "300"


def test_heart_rate_uint8_ignores_following_bytes() -> None:
    decoded = decode_update(_update(HEART_RATE_UUID, bytes([0x00, 0x48, 0xFF])), measurement_uuid=HEART_RATE_UUID)
    assert decoded.text == "72"


def test_heart_rate_without_value_bytes_is_empty() -> None:
    decoded = decode_update(_update(HEART_RATE_UUID, bytes([0x00])), measurement_uuid=HEART_RATE_UUID)
    assert decoded.is_empty


def test_heart_rate_match_ignores_uuid_case() -> None:
    decoded = decode_update(
        _update(HEART_RATE_UUID.upper(), bytes([0x00, 0x3C])),
        measurement_uuid=HEART_RATE_UUID,
    )
    assert decoded.text == "60"


def test_opaque_payload_renders_text_then_hex() -> None:
    decoded = decode_update(_update(DATA_UUID, b"OK"), measurement_uuid=HEART_RATE_UUID)
    assert decoded.text == "OK\n4F 4B "
    assert decoded.payload == b"OK"
    assert not decoded.is_reading


def test_opaque_payload_with_invalid_utf8_still_decodes() -> None:
    decoded = decode_update(_update(DATA_UUID, b"\xff\x01"), measurement_uuid=HEART_RATE_UUID)
    assert decoded.text is not None
    assert decoded.text.endswith("\nFF 01 ")
    assert decoded.payload == b"\xff\x01"


def test_empty_opaque_payload_produces_nothing() -> None:
    decoded = decode_update(_update(DATA_UUID, b""), measurement_uuid=HEART_RATE_UUID)
    assert decoded.is_empty
    assert decoded.payload is None

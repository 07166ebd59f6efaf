from __future__ import annotations

from typing import Optional


def normalize_hex(value: object, *, pad_to: Optional[int] = None) -> str:
    """Return a lowercase 0x-prefixed hex string.

    Integers render as minimal quantities (``0x0`` for zero); bytes render
    verbatim, left-padded to ``pad_to`` bytes when given.
    """
    if isinstance(value, bool):
        raise TypeError("Refusing to hex-encode a bool")
    if isinstance(value, int):
        if value < 0:
            raise ValueError("Negative quantities cannot be hex-encoded")
        return f"0x{value:x}"
    if isinstance(value, (bytes, bytearray)):
        body = bytes(value).hex()
    elif isinstance(value, str):
        body = strip_hex_prefix(value.strip())
    else:
        raise TypeError(f"Unsupported type for hex encoding: {type(value).__name__}")

    if pad_to:
        body = body.rjust(pad_to * 2, "0")
    return "0x" + body.lower()


def strip_hex_prefix(value: str) -> str:
    return value[2:] if value.startswith(("0x", "0X")) else value


def parse_hex_bytes(value: str, *, size: Optional[int] = None) -> bytes:
    body = strip_hex_prefix(value.strip())
    if len(body) % 2:
        body = "0" + body
    raw = bytes.fromhex(body)
    if size is not None:
        if len(raw) > size:
            raise ValueError(f"{value} is longer than {size} bytes")
        raw = raw.rjust(size, b"\x00")
    return raw


def big_endian_to_int(value: bytes) -> int:
    return int.from_bytes(value, "big") if value else 0

"""Address conversion between EVM and Aptos encodings.

The destination address becomes the immutable ``mintRecipient`` of the burn,
so every conversion is exact-width or rejected. Nothing is padded or
truncated silently except where the caller explicitly asks for EVM padding.
"""
from __future__ import annotations

import string
from typing import Union

from .errors import InvalidAddressFormat

DESTINATION_HEX_CHARS = 64  # 32 bytes
EVM_HEX_CHARS = 40  # 20 bytes

_HEX_DIGITS = frozenset(string.hexdigits)


def _strip_prefix(address: str) -> str:
    if address[:2] in ("0x", "0X"):
        return address[2:]
    return address


def _require_hex(address: str, clean: str, width: int) -> None:
    if len(clean) != width or not set(clean) <= _HEX_DIGITS:
        raise InvalidAddressFormat(address, width)


def to_destination_format(native_address: str) -> str:
    """Encode an Aptos address as the 32-byte mint recipient (``0x`` + 64 hex)."""
    if not isinstance(native_address, str):
        raise InvalidAddressFormat(repr(native_address))
    clean = _strip_prefix(native_address.strip())
    _require_hex(native_address, clean, DESTINATION_HEX_CHARS)
    return "0x" + clean.lower()


def from_destination_format(encoded: Union[str, bytes]) -> str:
    """Decode a 32-byte mint recipient back into an Aptos address."""
    if isinstance(encoded, (bytes, bytearray)):
        if len(encoded) != DESTINATION_HEX_CHARS // 2:
            raise InvalidAddressFormat("0x" + bytes(encoded).hex())
        return "0x" + bytes(encoded).hex()
    return to_destination_format(encoded)


def to_bytes32(native_address: str) -> bytes:
    """Raw 32 bytes of an Aptos address, ready for ABI ``bytes32`` encoding."""
    return bytes.fromhex(to_destination_format(native_address)[2:])


def evm_to_destination_format(evm_address: str) -> str:
    """Left-pad a 20-byte EVM address into the 32-byte destination form."""
    clean = _strip_prefix(evm_address.strip())
    _require_hex(evm_address, clean, EVM_HEX_CHARS)
    return "0x" + clean.lower().zfill(DESTINATION_HEX_CHARS)


def mask_address(address: str) -> str:
    """Mask middle portion of address for logs."""
    if len(address) < 10:
        return address
    return f"{address[:6]}...{address[-4:]}"


__all__ = [
    "DESTINATION_HEX_CHARS",
    "EVM_HEX_CHARS",
    "to_destination_format",
    "from_destination_format",
    "to_bytes32",
    "evm_to_destination_format",
    "mask_address",
]

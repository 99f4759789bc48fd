"""Helpers for Ethereum address handling."""

import re

from pollnotify.domain.models.common import EthAddress

ADDRESS_LENGTH = 20  # bytes
_HEX_RE = re.compile(r"^[0-9a-fA-F]*$")


def to_canonical_address(address: str) -> EthAddress:
    """Normalizes an address to ``0x`` followed by 40 lower-case hex digits.

    Shorter values are left-padded with zeros and longer values keep their
    trailing 20 bytes.

    Raises:
        ValueError: If the value contains non-hex characters.
    """
    value = address.strip()
    if value[:2] in ("0x", "0X"):
        value = value[2:]
    if not _HEX_RE.match(value):
        raise ValueError(f"Invalid hex address: {address!r}")
    if len(value) % 2 == 1:
        value = "0" + value

    raw = bytes.fromhex(value)
    if len(raw) > ADDRESS_LENGTH:
        raw = raw[-ADDRESS_LENGTH:]
    raw = raw.rjust(ADDRESS_LENGTH, b"\x00")
    return EthAddress("0x" + raw.hex())

"""Defines common Value Objects used across different domain contexts.

These objects represent simple values like identities, addresses and
cursors, keeping signatures self-describing.
"""

from typing import NewType

# === Identity Context ===
FID = NewType("FID", int)                       # Farcaster numeric identity
SignerUUID = NewType("SignerUUID", str)         # Neynar managed signer of the bot
EthAddress = NewType("EthAddress", str)         # 0x-prefixed, 40 hex digits

# === Feed Context ===
CastHash = NewType("CastHash", str)             # Hash identifying a cast
Cursor = NewType("Cursor", str)                 # Opaque pagination token
UnixTimestamp = NewType("UnixTimestamp", int)   # Seconds since epoch (UTC)

# === Queue Context ===
RecordID = NewType("RecordID", str)             # Opaque queue key

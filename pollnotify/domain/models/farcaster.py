"""Domain models for Farcaster identities and messages."""

from dataclasses import dataclass, field
from typing import List, Optional

from .common import FID, CastHash, EthAddress, UnixTimestamp


@dataclass
class Userdata:
    """Resolved profile of a Farcaster user."""
    fid: FID
    username: str
    custody_address: EthAddress
    verification_addresses: List[EthAddress] = field(default_factory=list)
    signers: List[str] = field(default_factory=list)  # lower-case, unique


@dataclass
class APIMessage:
    """A message read from the mentions feed."""
    is_mention: bool
    author: FID
    content: str  # leading "@bot" token already removed
    hash: CastHash
    timestamp: UnixTimestamp


@dataclass(frozen=True)
class MessageContext:
    """Optional context attached to a published message."""
    embed_url: Optional[str] = None
    parent: Optional[CastHash] = None

"""Wire formats of the Neynar API.

Decodes the JSON bodies returned by the Neynar REST and hub endpoints into
plain structures, and encodes the cast publishing request. Any shape
mismatch is reported as a DecodeError so callers never see KeyError or
TypeError from upstream data.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pollnotify.domain.errors import DecodeError

logger = logging.getLogger(__name__)

MENTION_TYPE = "cast-mention"
HUB_MESSAGE_TYPE_VERIFICATION = "MESSAGE_TYPE_VERIFICATION_ADD_ETH_ADDRESS"
TIME_LAYOUT = "%Y-%m-%dT%H:%M:%S.%fZ"


def decode_json(body: bytes, what: str) -> Any:
    try:
        return json.loads(body)
    except (ValueError, UnicodeDecodeError) as e:
        raise DecodeError(f"error unmarshalling {what}: {e}") from e


def parse_timestamp(value: str) -> int:
    """Converts a Neynar timestamp (``2024-01-31T12:00:00.000Z``) to epoch seconds."""
    try:
        parsed = datetime.strptime(value, TIME_LAYOUT).replace(tzinfo=timezone.utc)
    except (TypeError, ValueError) as e:
        raise DecodeError(f"error parsing timestamp {value!r}: {e}") from e
    return int(parsed.timestamp())


@dataclass
class UserResponse:
    """``GET /v1/farcaster/user``"""
    fid: int
    username: str
    custody_address: str
    verifications: List[str] = field(default_factory=list)

    @classmethod
    def from_body(cls, body: bytes) -> Optional["UserResponse"]:
        """Returns None when the upstream has no such user."""
        data = decode_json(body, "user response")
        try:
            user = (data.get("result") or {}).get("user")
            if not user or not user.get("username"):
                return None
            return cls(
                fid=int(user.get("fid") or 0),
                username=str(user["username"]),
                custody_address=str(user.get("custodyAddress") or ""),
                verifications=[str(v) for v in user.get("verifications") or []],
            )
        except (AttributeError, TypeError, ValueError) as e:
            raise DecodeError(f"unexpected user response shape: {e}") from e


@dataclass
class BulkUser:
    """One entry of ``GET /v2/farcaster/user/bulk-by-address``."""
    fid: int
    username: str
    custody_address: str
    eth_addresses: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, item: Dict[str, Any]) -> "BulkUser":
        verified = item.get("verified_addresses") or {}
        return cls(
            fid=int(item.get("fid") or 0),
            username=str(item.get("username") or ""),
            custody_address=str(item.get("custody_address") or ""),
            eth_addresses=[str(a) for a in verified.get("eth_addresses") or []],
        )


def parse_bulk_by_address(body: bytes) -> List[BulkUser]:
    """Returns the entries listed under the first address key.

    The response is keyed by address, but the key is not guaranteed to keep
    the casing of the request, so only the first value is used.
    """
    data = decode_json(body, "bulk-by-address response")
    if not isinstance(data, dict):
        raise DecodeError("unexpected bulk-by-address response shape")
    for items in data.values():
        try:
            return [BulkUser.from_dict(item) for item in items or []]
        except (AttributeError, TypeError, ValueError) as e:
            raise DecodeError(f"unexpected bulk-by-address entry: {e}") from e
    return []


def parse_verification_signers(body: bytes) -> List[str]:
    """Collects the signers of valid verification messages, lower-cased and unique."""
    data = decode_json(body, "verifications")
    if not isinstance(data, dict):
        raise DecodeError("unexpected verifications response shape")

    signers: List[str] = []
    seen = set()
    for msg in data.get("messages") or []:
        msg_data = msg.get("data") if isinstance(msg, dict) else None
        signer = msg.get("signer") if isinstance(msg, dict) else None
        if (
            not isinstance(msg_data, dict)
            or msg_data.get("type") != HUB_MESSAGE_TYPE_VERIFICATION
            or not msg_data.get("verificationAddEthAddressBody")
            or not signer
        ):
            logger.warning(f"invalid verification message: {msg}")
            continue
        normalized = str(signer).lower()
        if normalized not in seen:
            seen.add(normalized)
            signers.append(normalized)
    return signers


@dataclass
class FeedNotification:
    """One item of ``GET /v1/farcaster/mentions-and-replies``."""
    type: str
    timestamp: str
    text: str
    hash: str
    author_fid: int


@dataclass
class FeedPage:
    notifications: List[FeedNotification]
    next_cursor: str

    @classmethod
    def from_body(cls, body: bytes) -> "FeedPage":
        data = decode_json(body, "mentions response")
        try:
            result = data.get("result") or {}
            items = [
                FeedNotification(
                    type=str(item.get("type") or ""),
                    timestamp=str(item.get("timestamp") or ""),
                    text=str(item.get("text") or ""),
                    hash=str(item.get("hash") or ""),
                    author_fid=int((item.get("author") or {}).get("fid") or 0),
                )
                for item in result.get("notifications") or []
            ]
            cursor = (result.get("next") or {}).get("cursor") or ""
        except (AttributeError, TypeError, ValueError) as e:
            raise DecodeError(f"unexpected mentions response shape: {e}") from e
        return cls(notifications=items, next_cursor=str(cursor))


def encode_cast(signer_uuid: str, text: str, parent: Optional[str] = None,
                embed_url: Optional[str] = None) -> bytes:
    """Body of ``POST /v2/farcaster/cast``."""
    payload: Dict[str, Any] = {"signer_uuid": signer_uuid, "text": text}
    if parent:
        payload["parent"] = parent
    if embed_url:
        payload["embeds"] = [{"url": embed_url}]
    return json.dumps(payload).encode("utf-8")

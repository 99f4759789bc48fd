"""Concrete implementation of the SocialAPI interface for Neynar.

Publishes casts through a managed signer, resolves Farcaster users by FID or
by verified address, and reads the bot's mentions feed. All requests go
through the ResilientCallExecutor.
"""

import logging
from typing import List, Optional, Sequence, Tuple
from urllib.parse import urlencode

from pollnotify.domain.errors import NoDataFound, NotConfigured
from pollnotify.domain.interfaces.social_api import SocialAPI
from pollnotify.domain.models.common import FID, CastHash, EthAddress, SignerUUID, UnixTimestamp
from pollnotify.domain.models.farcaster import APIMessage, MessageContext, Userdata
from pollnotify.infrastructure.farcaster.neynar_models import (
    MENTION_TYPE, FeedPage, UserResponse, encode_cast, parse_bulk_by_address,
    parse_timestamp, parse_verification_signers,
)
from pollnotify.infrastructure.resilience.api_retry import ResilientCallExecutor
from pollnotify.utils.address import to_canonical_address

logger = logging.getLogger(__name__)

DEFAULT_API_ENDPOINT = "https://api.neynar.com"
DEFAULT_HUB_ENDPOINT = "https://hub-api.neynar.com"
MENTIONS_PAGE_SIZE = 150


class NeynarClient(SocialAPI):
    """Neynar REST/hub client built on the resilient executor."""

    def __init__(
        self,
        executor: ResilientCallExecutor,
        api_endpoint: str = DEFAULT_API_ENDPOINT,
        hub_endpoint: str = DEFAULT_HUB_ENDPOINT,
    ):
        self.executor = executor
        self.api_endpoint = api_endpoint.rstrip("/")
        self.hub_endpoint = hub_endpoint.rstrip("/")
        self.fid: Optional[FID] = None
        self.signer_uuid: Optional[SignerUUID] = None
        self.username: str = ""

    # --- Identity ---

    async def set_farcaster_user(self, fid: FID, signer: SignerUUID) -> None:
        """Sets the bot identity and resolves its username.

        The username is needed to strip the ``@bot`` token from mentions.
        Nothing is changed when the lookup fails.
        """
        userdata = await self.user_data_by_fid(fid)
        self.fid = fid
        self.signer_uuid = signer
        self.username = userdata.username
        logger.info(f"Farcaster user set: fid={fid} username={self.username}")

    def _require_user(self) -> None:
        if not self.fid:
            raise NotConfigured("farcaster user not set")

    def _require_signer(self) -> None:
        self._require_user()
        if not self.signer_uuid:
            raise NotConfigured("farcaster signer not set")

    # --- Publishing ---

    async def publish(
        self,
        content: str,
        recipient_fids: Sequence[FID],
        context: Optional[MessageContext] = None,
    ) -> None:
        self._require_signer()
        if not recipient_fids:
            raise ValueError("no recipients given")
        context = context or MessageContext()
        body = encode_cast(
            signer_uuid=self.signer_uuid,
            text=content,
            parent=context.parent,
            embed_url=context.embed_url,
        )
        await self.executor.execute(f"{self.api_endpoint}/v2/farcaster/cast", "POST", body)
        logger.debug(f"Cast published for fids {list(recipient_fids)}")

    async def reply(self, fid: FID, parent_hash: CastHash, content: str) -> None:
        await self.publish(content, [fid], MessageContext(parent=parent_hash))

    # --- Users ---

    async def user_data_by_fid(self, fid: FID) -> Userdata:
        url = f"{self.api_endpoint}/v1/farcaster/user?{urlencode({'fid': fid})}"
        body = await self.executor.execute(url, "GET")
        user = UserResponse.from_body(body)
        if user is None:
            raise NoDataFound(f"no user found for fid {fid}")

        signers = await self._signers_from_fid(fid)
        return Userdata(
            fid=fid,
            username=user.username,
            custody_address=EthAddress(user.custody_address),
            verification_addresses=[EthAddress(a) for a in user.verifications],
            signers=signers,
        )

    async def user_data_by_verification_address(self, address: str) -> Userdata:
        eth_address = to_canonical_address(address)
        url = f"{self.api_endpoint}/v2/farcaster/user/bulk-by-address?{urlencode({'addresses': eth_address})}"
        body = await self.executor.execute(url, "GET")

        entries = parse_bulk_by_address(body)
        if not entries:
            raise NoDataFound(f"no user found for address {eth_address}")
        data = next((entry for entry in entries if entry.username), None)
        if data is None:
            raise NoDataFound(f"no valid data found for address {eth_address}")

        signers = await self._signers_from_fid(FID(data.fid))
        return Userdata(
            fid=FID(data.fid),
            username=data.username,
            custody_address=to_canonical_address(data.custody_address) if data.custody_address else EthAddress(""),
            verification_addresses=[to_canonical_address(a) for a in data.eth_addresses],
            signers=signers,
        )

    async def _signers_from_fid(self, fid: FID) -> List[str]:
        url = f"{self.hub_endpoint}/v1/verificationsByFid?{urlencode({'fid': fid})}"
        body = await self.executor.execute(url, "GET")
        return parse_verification_signers(body)

    # --- Mentions ---

    async def last_mentions(self, since_timestamp: UnixTimestamp) -> Tuple[List[APIMessage], UnixTimestamp]:
        """Reads every mention newer than ``since_timestamp``.

        Timestamps are assumed non-decreasing within the feed; an item that
        arrives out of order and older than ``since_timestamp`` is skipped.
        """
        self._require_user()

        messages: List[APIMessage] = []
        last_timestamp = since_timestamp
        mention = f"@{self.username}"
        cursor = ""
        while True:
            query = urlencode({"fid": self.fid, "limit": MENTIONS_PAGE_SIZE, "cursor": cursor})
            body = await self.executor.execute(
                f"{self.api_endpoint}/v1/farcaster/mentions-and-replies?{query}", "GET"
            )
            page = FeedPage.from_body(body)
            for item in page.notifications:
                if item.type != MENTION_TYPE:
                    continue
                item_timestamp = parse_timestamp(item.timestamp)
                if item_timestamp <= since_timestamp:
                    continue
                text = item.text
                if self.username and text.startswith(mention):
                    text = text[len(mention):]
                messages.append(APIMessage(
                    is_mention=True,
                    author=FID(item.author_fid),
                    content=text.strip(),
                    hash=CastHash(item.hash),
                    timestamp=UnixTimestamp(item_timestamp),
                ))
                if item_timestamp > last_timestamp:
                    last_timestamp = UnixTimestamp(item_timestamp)
            if not page.next_cursor:
                break
            cursor = page.next_cursor

        logger.debug(f"{len(messages)} new mentions since {since_timestamp}")
        return messages, last_timestamp

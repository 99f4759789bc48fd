"""Interface for the social-network API used to deliver notifications.

Defines the contract the dispatcher and the CLI rely on, independent of
the concrete provider (currently Neynar).
"""

import abc
from typing import List, Optional, Sequence, Tuple

from ..models.common import FID, CastHash, SignerUUID, UnixTimestamp
from ..models.farcaster import APIMessage, MessageContext, Userdata


class SocialAPI(abc.ABC):
    """Abstract Base Class for Farcaster API interactions."""

    @abc.abstractmethod
    async def set_farcaster_user(self, fid: FID, signer: SignerUUID) -> None:
        """Configures the identity used to publish and read mentions."""
        pass

    @abc.abstractmethod
    async def publish(
        self,
        content: str,
        recipient_fids: Sequence[FID],
        context: Optional[MessageContext] = None,
    ) -> None:
        """Publishes a message addressed to the given users.

        Raises:
            NotConfigured: If no identity has been set.
            ValueError: If ``recipient_fids`` is empty.
        """
        pass

    @abc.abstractmethod
    async def reply(self, fid: FID, parent_hash: CastHash, content: str) -> None:
        """Publishes ``content`` as a reply to ``parent_hash``."""
        pass

    @abc.abstractmethod
    async def user_data_by_fid(self, fid: FID) -> Userdata:
        """Resolves a user, including linked addresses and signers.

        Raises:
            NoDataFound: If the upstream has no such user.
        """
        pass

    @abc.abstractmethod
    async def user_data_by_verification_address(self, address: str) -> Userdata:
        """Resolves a user from one of its linked Ethereum addresses.

        Raises:
            NoDataFound: If no entry with a username matches the address.
        """
        pass

    @abc.abstractmethod
    async def last_mentions(
        self, since_timestamp: UnixTimestamp
    ) -> Tuple[List[APIMessage], UnixTimestamp]:
        """Returns mentions newer than ``since_timestamp`` and the newest timestamp seen."""
        pass

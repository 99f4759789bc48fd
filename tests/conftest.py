import asyncio
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import httpx
import pytest
from typer.testing import CliRunner

from pollnotify.domain.errors import NotConfigured, UpstreamError
from pollnotify.domain.interfaces.social_api import SocialAPI
from pollnotify.domain.models.common import FID, CastHash, SignerUUID, UnixTimestamp
from pollnotify.domain.models.farcaster import APIMessage, MessageContext, Userdata
from pollnotify.infrastructure.config.settings import clear_test_config, reset_configuration
from pollnotify.infrastructure.resilience.api_retry import ResilientCallExecutor
from pollnotify.infrastructure.resilience.rate_gate import RateGate


@pytest.fixture(scope="session")
def runner():
    """Provides a Typer CliRunner instance."""
    return CliRunner()


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch):
    """Keeps configuration from leaking between tests or from the host."""
    for name in ("NEYNAR_API_KEY", "BOT_FID", "BOT_SIGNER_UUID", "QUEUE_DIR"):
        monkeypatch.delenv(name, raising=False)
    yield
    clear_test_config()
    reset_configuration()


@pytest.fixture
def make_executor():
    """Factory building an executor whose HTTP traffic goes to ``handler``.

    Backoff delays default to zero so retry tests run instantly. The HTTP
    clients it builds are closed at teardown.
    """
    clients: List[httpx.AsyncClient] = []

    def _make(handler: Callable, gate: Optional[RateGate] = None, **kwargs) -> ResilientCallExecutor:
        options = {"max_retries": 12, "base_delay_s": 0.0, "max_jitter_s": 0.0, "timeout_s": 5.0}
        options.update(kwargs)
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        clients.append(client)
        return ResilientCallExecutor(
            client=client,
            rate_gate=gate or RateGate(2),
            headers={"api_key": "test-key"},
            **options,
        )

    yield _make

    async def _close_all():
        for client in clients:
            await client.aclose()

    asyncio.run(_close_all())


class FakeSocialAPI(SocialAPI):
    """In-process SocialAPI recording published messages.

    Publishing to a FID listed in ``failing_fids`` raises UpstreamError.
    ``delay_s`` keeps each publish in flight long enough to observe overlap.
    """

    def __init__(self, failing_fids: Sequence[int] = (), delay_s: float = 0.0):
        self.failing_fids = set(failing_fids)
        self.delay_s = delay_s
        self.published: List[Tuple[str, List[FID], Optional[MessageContext]]] = []
        self.spans: Dict[int, Tuple[float, float]] = {}
        self.active = 0
        self.peak = 0
        self.fid: Optional[FID] = None
        self.mentions: List[APIMessage] = []

    async def set_farcaster_user(self, fid: FID, signer: SignerUUID) -> None:
        self.fid = fid

    async def publish(self, content, recipient_fids, context=None) -> None:
        loop = asyncio.get_running_loop()
        start = loop.time()
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            if self.delay_s:
                await asyncio.sleep(self.delay_s)
            fid = recipient_fids[0]
            if fid in self.failing_fids:
                raise UpstreamError("POST", "https://api.test/v2/farcaster/cast", 500, "boom")
            self.published.append((content, list(recipient_fids), context))
        finally:
            self.active -= 1
            self.spans[recipient_fids[0]] = (start, loop.time())

    async def reply(self, fid: FID, parent_hash: CastHash, content: str) -> None:
        await self.publish(content, [fid], MessageContext(parent=parent_hash))

    async def user_data_by_fid(self, fid: FID) -> Userdata:
        return Userdata(fid=fid, username=f"user{fid}", custody_address="0x" + "0" * 40)

    async def user_data_by_verification_address(self, address: str) -> Userdata:
        return Userdata(fid=FID(1), username="user1", custody_address=address)

    async def last_mentions(self, since_timestamp: UnixTimestamp):
        if not self.fid:
            raise NotConfigured("farcaster user not set")
        found = [m for m in self.mentions if m.timestamp > since_timestamp]
        return found, max([since_timestamp] + [m.timestamp for m in found])


@pytest.fixture
def make_fake_api():
    """Returns the FakeSocialAPI class so tests can pass their own options."""
    return FakeSocialAPI

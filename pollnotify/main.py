"""Main entry point for the pollnotify application.

Sets up the Typer CLI application, performs dependency injection
(Composition Root) and runs the notification dispatcher or one of the
operator commands against the Neynar API.
"""

import asyncio
import logging
import signal
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Annotated, Any, AsyncIterator, Coroutine, Optional

import httpx
import typer

from pollnotify.core.services.notification_dispatcher import NotificationDispatcher
from pollnotify.domain.errors import NotConfigured, NotifierError
from pollnotify.domain.models.common import FID, RecordID, SignerUUID, UnixTimestamp
from pollnotify.domain.models.notification import NotificationRecord
from pollnotify.infrastructure.cli.display import ConsoleDisplay
from pollnotify.infrastructure.config.settings import (
    get_bot_fid, get_bot_signer_uuid, get_config, get_dispatcher_options,
    get_executor_options, get_neynar_api_key, get_queue_dir, load_configuration,
)
from pollnotify.infrastructure.farcaster.neynar_client import NeynarClient
from pollnotify.infrastructure.monitoring.logger_setup import parse_log_level, setup_logging
from pollnotify.infrastructure.queue.disk_queue import DiskNotificationQueue
from pollnotify.infrastructure.resilience.api_retry import ResilientCallExecutor
from pollnotify.infrastructure.resilience.rate_gate import RateGate

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="pollnotify",
    help="Deliver new-poll notifications to Farcaster users through the Neynar API.",
    add_completion=False,
)

ui = ConsoleDisplay()


# --- Composition Root ---

def configure() -> None:
    """Loads configuration and sets up logging."""
    load_configuration()
    setup_logging(
        log_level=parse_log_level(get_config("logging.level", "INFO")),
        log_format=get_config("logging.format", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"),
        log_file=get_config("logging.file"),
    )


@asynccontextmanager
async def open_api() -> AsyncIterator[NeynarClient]:
    """Builds the Neynar client and its HTTP stack; closes them on exit."""
    api_key = get_neynar_api_key()
    if not api_key:
        raise NotConfigured("Neynar API key not provided (set NEYNAR_API_KEY)")
    options = get_executor_options()

    async with httpx.AsyncClient() as client:
        executor = ResilientCallExecutor(
            client=client,
            rate_gate=RateGate(options.max_concurrent_requests),
            headers={"api_key": api_key, "accept": "application/json"},
            max_retries=options.max_retries,
            base_delay_s=options.base_delay_s,
            max_jitter_s=options.max_jitter_s,
            timeout_s=options.timeout_s,
        )
        yield NeynarClient(executor, options.api_endpoint, options.hub_endpoint)


def open_queue(queue_dir: Optional[Path] = None) -> DiskNotificationQueue:
    return DiskNotificationQueue(queue_dir or get_queue_dir())


async def set_bot_identity(api: NeynarClient) -> None:
    fid = get_bot_fid()
    signer = get_bot_signer_uuid()
    if not fid or not signer:
        raise NotConfigured("bot identity not provided (set BOT_FID and BOT_SIGNER_UUID)")
    await api.set_farcaster_user(FID(fid), SignerUUID(signer))


def create_dispatcher(queue: DiskNotificationQueue, api: NeynarClient) -> NotificationDispatcher:
    options = get_dispatcher_options()
    return NotificationDispatcher(
        queue=queue,
        api=api,
        interval_s=options.interval_s,
        batch_size=options.batch_size,
        pool_size=options.pool_size,
        send_cooldown_s=options.send_cooldown_s,
    )


def run_async(coro: Coroutine[Any, Any, Any]) -> Any:
    """Runs a command coroutine, turning domain errors into exit code 1."""
    try:
        return asyncio.run(coro)
    except (NotifierError, ValueError) as e:
        logger.error(f"Command failed: {e}")
        ui.display_error(str(e))
        raise typer.Exit(code=1)


# --- CLI Commands ---

QueueDirOption = Annotated[
    Optional[Path],
    typer.Option("--queue-dir", help="Queue directory. Defaults to the configured queue.dir."),
]


@app.command()
def run(queue_dir: QueueDirOption = None):
    """Run the dispatcher loop until interrupted."""
    configure()

    async def _run() -> None:
        queue = open_queue(queue_dir)
        try:
            async with open_api() as api:
                await set_bot_identity(api)
                dispatcher = create_dispatcher(queue, api)
                loop = asyncio.get_running_loop()
                for sig in (signal.SIGINT, signal.SIGTERM):
                    try:
                        loop.add_signal_handler(sig, dispatcher.stop)
                    except (NotImplementedError, RuntimeError):
                        logger.debug(f"Signal handler for {sig} not supported on this platform.")
                ui.display_info("Dispatcher running. Press Ctrl+C to stop.")
                await dispatcher.run()
        finally:
            queue.close()

    run_async(_run())


@app.command()
def dispatch(queue_dir: QueueDirOption = None):
    """Run a single dispatch cycle and report the outcome."""
    configure()

    async def _dispatch():
        queue = open_queue(queue_dir)
        try:
            async with open_api() as api:
                await set_bot_identity(api)
                return await create_dispatcher(queue, api).run_cycle()
        finally:
            queue.close()

    result = run_async(_dispatch())
    ui.display_dispatch_result(result)
    if not result.ok:
        raise typer.Exit(code=1)


@app.command()
def enqueue(
    fid: Annotated[int, typer.Option("--fid", help="FID of the user to notify.")],
    username: Annotated[str, typer.Option("--username", help="Username of the user to notify.")],
    author: Annotated[str, typer.Option("--author", help="Username of the poll creator.")],
    url: Annotated[str, typer.Option("--url", help="Frame URL of the poll.")],
    record_id: Annotated[Optional[str], typer.Option("--id", help="Record id (random if omitted).")] = None,
    queue_dir: QueueDirOption = None,
):
    """Add a notification record to the on-disk queue."""
    configure()
    record = NotificationRecord(
        id=RecordID(record_id or uuid.uuid4().hex),
        recipient_fid=FID(fid),
        recipient_username=username,
        author_username=author,
        frame_url=url,
    )

    async def _enqueue() -> int:
        queue = open_queue(queue_dir)
        try:
            await queue.enqueue(record)
            return await queue.count()
        finally:
            queue.close()

    pending = run_async(_enqueue())
    ui.display_info(f"Queued notification {record.id} ({pending} pending).")


@app.command()
def mentions(
    since: Annotated[int, typer.Option("--since", help="Only mentions after this Unix timestamp.")] = 0,
):
    """List mentions of the bot newer than a timestamp."""
    configure()

    async def _mentions():
        async with open_api() as api:
            await set_bot_identity(api)
            return await api.last_mentions(UnixTimestamp(since))

    messages, last_timestamp = run_async(_mentions())
    ui.display_mentions(messages, last_timestamp)


@app.command()
def user(
    fid: Annotated[Optional[int], typer.Option("--fid", help="Resolve by FID.")] = None,
    address: Annotated[Optional[str], typer.Option("--address", help="Resolve by verified Ethereum address.")] = None,
):
    """Resolve a Farcaster user by FID or verified address."""
    configure()
    if (fid is None) == (address is None):
        ui.display_error("Pass exactly one of --fid or --address.")
        raise typer.Exit(code=2)

    async def _user():
        async with open_api() as api:
            if fid is not None:
                return await api.user_data_by_fid(FID(fid))
            return await api.user_data_by_verification_address(address)

    ui.display_userdata(run_async(_user()))


def cli_entry_point():
    """Function to be called by the script entry point in pyproject.toml."""
    app()


if __name__ == "__main__":
    cli_entry_point()

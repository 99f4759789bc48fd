import asyncio
import logging

import pytest

from pollnotify.core.services.notification_dispatcher import (
    NOTIFICATION_MESSAGE, DispatcherState, NotificationDispatcher,
)
from pollnotify.domain.errors import DeliveryError, QueueError
from pollnotify.domain.models.notification import NotificationRecord
from pollnotify.infrastructure.queue.memory_queue import InMemoryNotificationQueue

DISPATCHER_LOGGER = "pollnotify.core.services.notification_dispatcher"


def record(n: int, created_at: float = None) -> NotificationRecord:
    return NotificationRecord(
        id=str(n),
        recipient_fid=n,
        recipient_username=f"user{n}",
        author_username="alice",
        frame_url=f"https://frames.test/poll/{n}",
        created_at=float(n) if created_at is None else created_at,
    )


def filled_queue(count: int) -> InMemoryNotificationQueue:
    queue = InMemoryNotificationQueue()

    async def fill():
        for n in range(1, count + 1):
            await queue.enqueue(record(n))

    asyncio.run(fill())
    return queue


def pending_ids(queue) -> list:
    return [r.id for r in asyncio.run(queue.list_pending(1000))]


def make_dispatcher(queue, api, **kwargs) -> NotificationDispatcher:
    options = {"interval_s": 0.01, "send_cooldown_s": 0.0}
    options.update(kwargs)
    return NotificationDispatcher(queue, api, **options)


class BrokenQueue(InMemoryNotificationQueue):
    """Queue whose list or remove operations fail on demand."""

    def __init__(self, fail_list=False, fail_remove=False):
        super().__init__()
        self.fail_list = fail_list
        self.fail_remove = fail_remove

    async def list_pending(self, limit):
        if self.fail_list:
            raise ConnectionError("database unavailable")
        return await super().list_pending(limit)

    async def remove(self, record_id):
        if self.fail_remove:
            raise ConnectionError("database unavailable")
        await super().remove(record_id)


# --- Delivery ---

def test_all_records_delivered_and_removed(make_fake_api):
    queue = filled_queue(3)
    api = make_fake_api()
    dispatcher = make_dispatcher(queue, api)

    result = asyncio.run(dispatcher.run_cycle())

    assert result.ok
    assert (result.fetched, result.delivered, result.failed) == (3, 3, 0)
    assert sorted(fids[0] for _, fids, _ in api.published) == [1, 2, 3]
    assert pending_ids(queue) == []
    assert dispatcher.state is DispatcherState.IDLE


def test_failed_record_stays_queued_and_error_logged_once(make_fake_api, caplog):
    queue = filled_queue(3)
    api = make_fake_api(failing_fids=[2])
    dispatcher = make_dispatcher(queue, api)

    with caplog.at_level(logging.ERROR, logger=DISPATCHER_LOGGER):
        result = asyncio.run(dispatcher.run_cycle())

    assert pending_ids(queue) == ["2"]
    assert result.delivered == 2
    assert result.failed == 1
    assert isinstance(result.first_error, DeliveryError)
    assert result.first_error.record_id == "2"

    errors = [r for r in caplog.records if r.name == DISPATCHER_LOGGER and r.levelno >= logging.ERROR]
    assert len(errors) == 1
    assert "error sending notification 2" in errors[0].getMessage()


def test_failed_record_is_retried_next_cycle(make_fake_api):
    queue = filled_queue(2)
    api = make_fake_api(failing_fids=[2])
    dispatcher = make_dispatcher(queue, api)

    asyncio.run(dispatcher.run_cycle())
    api.failing_fids.clear()
    result = asyncio.run(dispatcher.run_cycle())

    assert result.fetched == 1
    assert result.delivered == 1
    assert pending_ids(queue) == []


def test_only_first_error_is_kept(make_fake_api):
    queue = filled_queue(4)
    api = make_fake_api(failing_fids=[1, 3, 4])
    dispatcher = make_dispatcher(queue, api, pool_size=1)

    result = asyncio.run(dispatcher.run_cycle())

    assert result.failed == 3
    assert result.first_error.record_id == "1"
    assert pending_ids(queue) == ["1", "3", "4"]


def test_batch_size_limits_records_per_cycle(make_fake_api):
    queue = filled_queue(5)
    api = make_fake_api()
    dispatcher = make_dispatcher(queue, api, batch_size=2)

    result = asyncio.run(dispatcher.run_cycle())

    assert result.fetched == 2
    assert pending_ids(queue) == ["3", "4", "5"]


def test_empty_queue_publishes_nothing(make_fake_api):
    api = make_fake_api()
    dispatcher = make_dispatcher(InMemoryNotificationQueue(), api)

    result = asyncio.run(dispatcher.run_cycle())

    assert result.ok
    assert result.fetched == 0
    assert api.published == []


# --- Concurrency ---

def test_small_batch_runs_fully_in_parallel(make_fake_api):
    queue = filled_queue(5)
    api = make_fake_api(delay_s=0.05)
    dispatcher = make_dispatcher(queue, api, pool_size=10)

    asyncio.run(dispatcher.run_cycle())

    assert api.peak == 5
    latest_start = max(start for start, _ in api.spans.values())
    earliest_end = min(end for _, end in api.spans.values())
    assert latest_start < earliest_end


def test_pool_size_bounds_units_in_flight(make_fake_api):
    queue = filled_queue(6)
    api = make_fake_api(delay_s=0.02)
    dispatcher = make_dispatcher(queue, api, pool_size=2)

    result = asyncio.run(dispatcher.run_cycle())

    assert result.delivered == 6
    assert api.peak <= 2


def test_cooldown_between_consecutive_records(make_fake_api, mocker):
    queue = filled_queue(3)
    dispatcher = make_dispatcher(queue, make_fake_api(), send_cooldown_s=0.5)
    sleep = mocker.patch(
        "pollnotify.core.services.notification_dispatcher.asyncio.sleep",
        new=mocker.AsyncMock(),
    )

    asyncio.run(dispatcher.run_cycle())

    assert sleep.await_count == 2
    sleep.assert_awaited_with(0.5)


def test_pool_and_batch_must_be_positive(make_fake_api):
    with pytest.raises(ValueError):
        make_dispatcher(InMemoryNotificationQueue(), make_fake_api(), pool_size=0)
    with pytest.raises(ValueError):
        make_dispatcher(InMemoryNotificationQueue(), make_fake_api(), batch_size=0)


# --- Queue failures ---

def test_fetch_failure_skips_cycle(make_fake_api, caplog):
    queue = BrokenQueue(fail_list=True)
    api = make_fake_api()
    dispatcher = make_dispatcher(queue, api)

    with caplog.at_level(logging.ERROR, logger=DISPATCHER_LOGGER):
        result = asyncio.run(dispatcher.run_cycle())

    assert result.skipped
    assert isinstance(result.first_error, QueueError)
    assert api.published == []
    assert "error getting notifications" in caplog.text


def test_remove_failure_is_reported_after_publish(make_fake_api):
    queue = BrokenQueue(fail_remove=True)
    asyncio.run(queue.enqueue(record(1)))
    api = make_fake_api()
    dispatcher = make_dispatcher(queue, api)

    result = asyncio.run(dispatcher.run_cycle())

    assert len(api.published) == 1
    assert result.delivered == 0
    assert isinstance(result.first_error, QueueError)
    assert result.first_error.record_id == "1"
    assert pending_ids(queue) == ["1"]


def test_record_removed_concurrently_is_not_an_error(make_fake_api):
    queue = filled_queue(1)

    class RemovingAPI(make_fake_api):
        async def publish(self, content, recipient_fids, context=None):
            await super().publish(content, recipient_fids, context)
            await queue.remove("1")

    dispatcher = make_dispatcher(queue, RemovingAPI())

    result = asyncio.run(dispatcher.run_cycle())

    assert result.ok
    assert result.delivered == 1


# --- Message composition ---

def test_message_names_recipient_and_author_and_embeds_frame(make_fake_api):
    queue = filled_queue(1)
    api = make_fake_api()
    dispatcher = make_dispatcher(queue, api)

    asyncio.run(dispatcher.run_cycle())

    [(content, fids, context)] = api.published
    assert content == NOTIFICATION_MESSAGE.format(username="user1", author="alice")
    assert content.startswith("👋 Hey @user1!")
    assert "The user alice created a new poll!" in content
    assert fids == [1]
    assert context.embed_url == "https://frames.test/poll/1"
    assert context.parent is None


def test_custom_message_template(make_fake_api):
    dispatcher = make_dispatcher(InMemoryNotificationQueue(), make_fake_api(),
                                 message_template="{author} -> @{username}")
    assert dispatcher.compose_message(record(7)) == "alice -> @user7"


# --- Loop control ---

def test_run_delivers_until_stopped(make_fake_api):
    queue = filled_queue(2)
    api = make_fake_api()
    dispatcher = make_dispatcher(queue, api, interval_s=0.01)

    async def main():
        task = asyncio.create_task(dispatcher.run())
        for _ in range(200):
            if not await queue.count():
                break
            await asyncio.sleep(0.01)
        dispatcher.stop()
        await asyncio.wait_for(task, timeout=1)

    asyncio.run(main())

    assert len(api.published) == 2
    assert dispatcher.stopped
    assert dispatcher.state is DispatcherState.STOPPED


def test_stop_before_run_exits_without_cycle(make_fake_api):
    queue = filled_queue(1)
    api = make_fake_api()
    dispatcher = make_dispatcher(queue, api, interval_s=0.01)
    dispatcher.stop()

    asyncio.run(asyncio.wait_for(dispatcher.run(), timeout=1))

    assert api.published == []
    assert pending_ids(queue) == ["1"]


class CountingQueue(InMemoryNotificationQueue):
    def __init__(self):
        super().__init__()
        self.list_calls = 0

    async def list_pending(self, limit):
        self.list_calls += 1
        return await super().list_pending(limit)


def test_stop_during_distribution_finishes_units_without_new_cycle(make_fake_api):
    queue = CountingQueue()
    for n in range(1, 5):
        asyncio.run(queue.enqueue(record(n)))
    api = make_fake_api(delay_s=0.1)
    dispatcher = make_dispatcher(queue, api, interval_s=0.01)

    async def main():
        task = asyncio.create_task(dispatcher.run())
        while api.active == 0:
            await asyncio.sleep(0.005)
        assert dispatcher.state is DispatcherState.DISTRIBUTING
        dispatcher.stop()
        await asyncio.wait_for(task, timeout=2)

    asyncio.run(main())

    assert queue.list_calls == 1
    assert len(api.published) == 4
    assert api.active == 0
    assert pending_ids(queue) == []
    assert dispatcher.state is DispatcherState.STOPPED

"""Daemon wiring: event stream -> pipeline, concurrency, shutdown."""

from __future__ import annotations

import asyncio

import pytest

from ddo_listener.daemon import ListenerDaemon
from ddo_listener.models.records import FetchResult
from ddo_listener.processor.pipeline import AllocationPipeline

from tests.conftest import PROVIDER_ID, make_test_config
from tests.factories import make_allocation_event, make_raw_log
from tests.mocks import FakeSession, MockFetcher, MockSubmitter


def _daemon(download_dir, session, fetcher=None, submitter=None, **overrides):
    cfg = make_test_config(download_dir=str(download_dir), **overrides)
    pipeline = AllocationPipeline(
        cfg.processor_config(),
        fetcher=fetcher or MockFetcher(download_dir),
        submitter=submitter or MockSubmitter(),
    )
    return ListenerDaemon(cfg, session=session, pipeline=pipeline)


async def _wait_for(predicate, timeout=5.0):
    async def poll():
        while not predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(poll(), timeout)


async def test_processes_backfilled_and_live_events(download_dir):
    session = FakeSession(head=20, logs=[
        make_raw_log(allocation_id=1, block_number=5),
        make_raw_log(allocation_id=2, block_number=6, provider=PROVIDER_ID + 1),
    ])
    submitter = MockSubmitter()
    daemon = _daemon(download_dir, session, submitter=submitter, start_block=0)

    runner = asyncio.create_task(daemon.start())
    await _wait_for(lambda: daemon.processed == 1)

    session.add(make_raw_log(allocation_id=3, block_number=21))
    session.head = 21
    await _wait_for(lambda: daemon.processed == 2)

    await daemon.stop()
    await asyncio.wait_for(runner, 5)

    assert sorted(call[0] for call in submitter.submit_calls) == [1, 3]
    assert daemon.failed == 0
    assert session.started
    assert session.closed


async def test_failed_pipeline_is_counted_not_fatal(download_dir):
    session = FakeSession(head=10, logs=[
        make_raw_log(allocation_id=1, block_number=5, size=1),  # below min_size
        make_raw_log(allocation_id=2, block_number=6),
    ])
    daemon = _daemon(download_dir, session, start_block=0)

    runner = asyncio.create_task(daemon.start())
    await _wait_for(lambda: daemon.processed + daemon.failed == 2)
    await daemon.stop()
    await asyncio.wait_for(runner, 5)

    assert daemon.processed == 1
    assert daemon.failed == 1


async def test_backfill_failure_does_not_stop_daemon(download_dir):
    session = FakeSession(head=20, logs=[make_raw_log(allocation_id=1, block_number=5)])
    session.fail_logs = 2
    submitter = MockSubmitter()
    daemon = _daemon(
        download_dir, session, submitter=submitter, start_block=0, backfill_retries=1,
    )

    runner = asyncio.create_task(daemon.start())
    await _wait_for(lambda: len(session.get_logs_calls) >= 2)
    await asyncio.sleep(0.05)
    assert not runner.done()

    session.add(make_raw_log(allocation_id=2, block_number=21))
    session.head = 21
    await _wait_for(lambda: daemon.processed == 1)
    await daemon.stop()
    await asyncio.wait_for(runner, 5)

    assert [call[0] for call in submitter.submit_calls] == [2]
    assert daemon.failed == 0


async def test_handle_returns_pipeline_result(download_dir):
    daemon = _daemon(download_dir, FakeSession())

    result = await daemon.handle(make_allocation_event(allocation_id=7))

    assert result.success
    assert daemon.processed == 1


async def test_unexpected_pipeline_error_stops_daemon(download_dir):
    session = FakeSession(head=10, logs=[make_raw_log(allocation_id=1, block_number=5)])
    fetcher = MockFetcher(download_dir, raises=RuntimeError("disk on fire"))
    daemon = _daemon(download_dir, session, fetcher=fetcher, start_block=0)

    with pytest.raises(RuntimeError, match="disk on fire"):
        await asyncio.wait_for(daemon.start(), 5)
    assert session.closed


async def test_concurrency_cap(download_dir):
    active = 0
    peak = 0
    release = asyncio.Event()

    class SlowFetcher(MockFetcher):
        async def fetch(self, url, allocation_id):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await release.wait()
            active -= 1
            return await super().fetch(url, allocation_id)

    session = FakeSession(head=10, logs=[
        make_raw_log(allocation_id=i, block_number=i) for i in range(1, 6)
    ])
    daemon = _daemon(
        download_dir, session, fetcher=SlowFetcher(download_dir),
        start_block=0, max_concurrent=2,
    )

    runner = asyncio.create_task(daemon.start())
    await _wait_for(lambda: active == 2)
    await asyncio.sleep(0.05)
    assert active == 2

    release.set()
    await _wait_for(lambda: daemon.processed == 5)
    await daemon.stop()
    await asyncio.wait_for(runner, 5)

    assert peak == 2


async def test_stop_abandons_in_flight_pipelines(download_dir):
    started = asyncio.Event()

    class HangingFetcher(MockFetcher):
        async def fetch(self, url, allocation_id):
            started.set()
            await asyncio.sleep(3600)
            return FetchResult(success=False, allocation_id=allocation_id)

    session = FakeSession(head=10, logs=[make_raw_log(allocation_id=1, block_number=5)])
    daemon = _daemon(
        download_dir, session, fetcher=HangingFetcher(download_dir), start_block=0,
    )

    runner = asyncio.create_task(daemon.start())
    await asyncio.wait_for(started.wait(), 5)
    await daemon.stop()
    await asyncio.wait_for(runner, 5)

    assert daemon.processed == 0
    assert session.closed


async def test_shutdown_flushes_pending_cleanups_when_configured(download_dir):
    session = FakeSession(head=10, logs=[make_raw_log(allocation_id=1, block_number=5)])
    daemon = _daemon(
        download_dir, session, start_block=0,
        delayed_cleanup_hours=1, flush_cleanup_on_exit=True,
    )

    runner = asyncio.create_task(daemon.start())
    await _wait_for(lambda: daemon.processed == 1)
    car = download_dir / "allocation_1.car"
    assert car.exists()

    await daemon.stop()
    await asyncio.wait_for(runner, 5)

    assert not car.exists()


async def test_shutdown_abandons_pending_cleanups_by_default(download_dir):
    session = FakeSession(head=10, logs=[make_raw_log(allocation_id=1, block_number=5)])
    daemon = _daemon(download_dir, session, start_block=0, delayed_cleanup_hours=1)

    runner = asyncio.create_task(daemon.start())
    await _wait_for(lambda: daemon.processed == 1)
    await daemon.stop()
    await asyncio.wait_for(runner, 5)

    assert (download_dir / "allocation_1.car").exists()
    assert daemon.pipeline.retention.pending == 0

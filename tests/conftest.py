"""Shared fixtures for ddo_listener tests."""

from __future__ import annotations

import json
import sys
import textwrap

import pytest
from aiohttp import web

from ddo_listener.models.config import ListenerConfig, ProcessorConfig
from ddo_listener.processor.pipeline import AllocationPipeline

from tests.factories import CONTRACT
from tests.mocks import FakeSession, MockFetcher, MockSubmitter

FIL_CLIENT = "f1testclientaddress"
PROVIDER_ID = 1000

KB = 1024
MB = 1024 * 1024

CAR_BODY = b"CAR" * 10_000


def make_test_config(**overrides) -> ListenerConfig:
    """Build a ListenerConfig suitable for testing."""
    defaults = dict(
        rpc_url="http://127.0.0.1:1234/rpc/v1",
        contract_address=CONTRACT,
        provider_id=PROVIDER_ID,
        network_name="Testnet",
        poll_interval=0.01,
        error_backoff=0.01,
        min_size=KB,
        max_size=10 * MB,
        fil_client_address=FIL_CLIENT,
        download_dir="./downloads",
    )
    defaults.update(overrides)
    return ListenerConfig(**defaults)


def make_processor_config(**overrides) -> ProcessorConfig:
    defaults = dict(
        min_size=KB,
        max_size=10 * MB,
        fil_client_address=FIL_CLIENT,
    )
    defaults.update(overrides)
    return ProcessorConfig(**defaults)


def make_boostd_stub(tmp_path, stdout: str = "", stderr: str = "", exit_code: int = 0):
    """Write a stand-in for the boostd binary.

    Returns (command, argv_log). Each invocation appends its argv (minus the
    program) as one JSON line to argv_log.
    """
    argv_log = tmp_path / "boostd_calls.jsonl"
    script = tmp_path / "boostd_stub.py"
    script.write_text(textwrap.dedent(f"""\
        import json
        import sys

        with open({str(argv_log)!r}, "a") as f:
            f.write(json.dumps(sys.argv[1:]) + "\\n")
        sys.stdout.write({stdout!r})
        sys.stderr.write({stderr!r})
        sys.exit({exit_code!r})
    """))
    return [sys.executable, str(script)], argv_log


def read_calls(argv_log) -> list[list[str]]:
    if not argv_log.exists():
        return []
    return [json.loads(line) for line in argv_log.read_text().splitlines() if line]


@pytest.fixture
def download_dir(tmp_path):
    d = tmp_path / "downloads"
    d.mkdir()
    return d


@pytest.fixture
def test_config(download_dir):
    """Default ListenerConfig for tests."""
    return make_test_config(download_dir=str(download_dir))


@pytest.fixture
def mock_fetcher(download_dir):
    return MockFetcher(download_dir, succeed=True)


@pytest.fixture
def mock_submitter():
    return MockSubmitter(succeed=True)


@pytest.fixture
def fake_session():
    return FakeSession(head=100)


@pytest.fixture
async def pipeline(download_dir, mock_fetcher, mock_submitter):
    """AllocationPipeline with mocked fetcher and submitter."""
    p = AllocationPipeline(
        make_processor_config(download_dir=str(download_dir)),
        fetcher=mock_fetcher,
        submitter=mock_submitter,
    )
    yield p
    await p.retention.shutdown()


# ── Content server ────────────────────────────────────────────────


@pytest.fixture
async def content_server():
    """Serves /car (CAR_BODY), /redirect (-> /car), /missing (404), /error (500).

    Yields (base_url, hits) where hits records every requested path.
    """
    hits: list[str] = []

    async def car(request):
        hits.append(request.path)
        return web.Response(body=CAR_BODY, content_type="application/vnd.ipld.car")

    async def redirect(request):
        hits.append(request.path)
        raise web.HTTPFound("/car")

    async def missing(request):
        hits.append(request.path)
        return web.Response(status=404, text="not here")

    async def error(request):
        hits.append(request.path)
        return web.Response(status=500, text="boom")

    app = web.Application()
    app.router.add_get("/car", car)
    app.router.add_get("/redirect", redirect)
    app.router.add_get("/missing", missing)
    app.router.add_get("/error", error)

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", 0)
    await site.start()
    host, port = runner.addresses[0][:2]
    yield f"http://{host}:{port}", hits
    await runner.cleanup()

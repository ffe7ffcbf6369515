from pathlib import Path
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from webapi_client.config import WebApiConfig, WebApiContext
from worker_server import WorkerServer

TRUST_CERT = Path(__file__).parent / "data" / "trust.pem"


@pytest.fixture
def trust_cert() -> Path:
    return TRUST_CERT


@pytest.fixture
def make_context():
    """Build a context for the given servers with short test delays."""

    def _make(*servers: str, **overrides) -> WebApiContext:
        settings = {"retry_delay": 0.2, "poll_interval": 0.05}
        settings.update(overrides)
        config = WebApiConfig(trust_cert=TRUST_CERT, servers=servers, **settings)
        return WebApiContext.from_config(config)

    return _make


@pytest_asyncio.fixture
async def start_worker() -> AsyncGenerator:
    """Start WorkerServer instances on free ports and stop them afterwards."""
    started = []

    async def _start(**kwargs) -> WorkerServer:
        worker = WorkerServer(**kwargs)
        await worker.start()
        started.append(worker)
        return worker

    try:
        yield _start
    finally:
        for worker in started:
            await worker.stop()

import asyncio
from pathlib import Path

from webapi_client.config import WebApiConfig, WebApiContext
from webapi_client.log import init_log
from webapi_client.webapi_client import WebApiClient
from worker_server import WorkerServer

TRUST_CERT = Path(__file__).parent.parent / "test" / "data" / "trust.pem"


async def state_changed(state):
    print(f"Job state changed to: {state.kind.value}")


async def main():
    init_log("DEBUG")

    busy = WorkerServer(overload_count=2)
    idle = WorkerServer(pending_polls=3)
    for worker in (busy, idle):
        await worker.start()
    print(f"Workers started on {busy.base_url} and {idle.base_url}")

    config = WebApiConfig(
        trust_cert=TRUST_CERT,
        servers=[busy.base_url, idle.base_url],
        retry_delay=2.0,
        poll_interval=1.0,
    )
    context = WebApiContext.from_config(config)

    try:
        async with WebApiClient(context, on_state_change=state_changed) as client:
            result = await client.dispatch_and_await(
                "/seal/seal_commit_phase2", {"sector_id": 42}
            )
        print(f"Result: {result}")
    except Exception as e:
        print(f"Error occurred: {e}")
    finally:
        for worker in (busy, idle):
            await worker.stop()


if __name__ == "__main__":
    asyncio.run(main())

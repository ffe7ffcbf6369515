import asyncio
import os
from typing import Any, Callable, Optional

from loguru import logger
from webapi_client.config import WebApiContext, default_context
from webapi_client.errors import WebApiError
from webapi_client.webapi_client import WebApiClient

DISABLE_ENV = "DISABLE_WEBAPI"

# one open client, and so one session, per context for the life of the process
_shared_clients: dict[WebApiContext, WebApiClient] = {}


def webapi_disabled() -> bool:
    return os.environ.get(DISABLE_ENV) is not None


def shared_client(context: WebApiContext) -> WebApiClient:
    """Return the process-wide client for a context, opening it on first use"""
    client = _shared_clients.get(context)
    if client is None:
        client = WebApiClient(context).open()
        _shared_clients[context] = client
    return client


async def close_shared_clients() -> None:
    while _shared_clients:
        _, client = _shared_clients.popitem()
        await client.close()


def unwrap_ok(result: Any) -> Any:
    """Extract the value a worker wraps as {"Ok": value}"""
    if not isinstance(result, dict) or "Ok" not in result:
        raise WebApiError(f"result without Ok value: {result!r}")
    return result["Ok"]


async def offload(
    path: str,
    payload: Any,
    local: Callable[[], Any],
    context: Optional[WebApiContext] = None,
    client: Optional[WebApiClient] = None,
) -> Any:
    """Run a job on a remote worker, or locally when DISABLE_WEBAPI is set.

    Remote jobs go through ``client`` when given, otherwise through the shared
    client of ``context`` (the default context if omitted). The remote result is
    returned unwrapped from its "Ok" envelope so both paths hand back the same
    value. Remote failures raise WebApiError; the local computation raises
    whatever it raises.
    """
    if webapi_disabled():
        logger.info(f"{DISABLE_ENV} is set, running {path} locally")
        return await asyncio.to_thread(local)

    if client is None:
        client = shared_client(context or default_context())
    result = await client.dispatch_and_await(path, payload)

    logger.info(f"{path}: finished on remote worker")
    return unwrap_ok(result)

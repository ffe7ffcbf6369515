import asyncio
import json
import random
from typing import Any, Callable, Optional

import aiohttp
from loguru import logger
from webapi_client.config import WebApiContext
from webapi_client.errors import MessageError, OperationError, StatusError, WebApiError
from webapi_client.models import JobHandle, PollingState, PollingStateKind

JSON_HEADERS = {"Content-Type": "application/json"}


def join_url(server: str, path: str) -> str:
    return f"{server.rstrip('/')}/{path.lstrip('/')}"


class WebApiClient:
    """Dispatches jobs to remote workers and polls them until they finish.

    Use as an async context manager; the session opened on entry is shared by
    every job dispatched through this client.
    """

    def __init__(
        self,
        context: WebApiContext,
        session: Optional[aiohttp.ClientSession] = None,
        on_state_change: Optional[Callable[[PollingState], Any]] = None,
        rng: Optional[random.Random] = None,
    ):
        self.context = context
        self.config = context.config
        self.logger = logger
        self.on_state_change = on_state_change
        self._session = session
        self._owns_session = session is None
        self._rng = rng or random.Random()

    def open(self) -> "WebApiClient":
        """Open the session; must be called with an event loop running"""
        if self._session is None:
            connector = aiohttp.TCPConnector(ssl=self.context.ssl_context)
            self._session = aiohttp.ClientSession(connector=connector)
        return self

    async def __aenter__(self) -> "WebApiClient":
        return self.open()

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None:
            raise RuntimeError("WebApiClient session is not open")
        return self._session

    def pick_server(self) -> str:
        """Pick one of the configured servers uniformly at random"""
        return self._rng.choice(self.config.servers)

    async def _post_once(self, url: str, payload: Any) -> Any:
        """Post JSON to a worker, returning the decoded body of a 200 response"""
        self.logger.trace(f"webapi post url: {url}")
        body = json.dumps(payload)

        try:
            async with self.session.post(
                url, data=body, headers=JSON_HEADERS
            ) as response:
                if response.status != 200:
                    raise StatusError(response.status, url)
                value = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise MessageError(f"request to {url} failed: {e!r}") from e
        except ValueError as e:
            raise MessageError(f"invalid JSON from {url}: {e}") from e

        if isinstance(value, dict) and "Err" in value:
            raise MessageError(f"{value!r}")

        return value

    async def _wait(self, delay: float) -> None:
        await asyncio.sleep(delay)

    async def submit_with_retry(self, path: str, payload: Any) -> tuple[str, Any]:
        """Post to a randomly picked server, re-picking while the pool is overloaded"""
        while True:
            server = self.pick_server()
            try:
                value = await self._post_once(join_url(server, path), payload)
                return server, value
            except StatusError as e:
                if not e.is_overload:
                    raise

            self.logger.debug(
                f"TooManyRequests in server {server}, "
                f"waiting {self.config.retry_delay:.0f}s..."
            )
            await self._wait(self.config.retry_delay)

    async def _handle_state_change(
        self, state: PollingState, last_kind: Optional[PollingStateKind]
    ) -> None:
        """Invoke the state change callback if the state has changed"""
        if last_kind != state.kind and self.on_state_change is not None:
            self.logger.debug(f"Job state changed to {state.kind.value}")
            await asyncio.create_task(self.on_state_change(state))

    async def submit_job(self, path: str, payload: Any) -> JobHandle:
        """Submit a job and bind its handle to the server that accepted it"""
        try:
            server, value = await self.submit_with_retry(path, payload)
        except OperationError as e:
            raise WebApiError(str(e)) from e

        state = PollingState.from_wire(value)
        self.logger.info(
            f"webapi_post_polling request server: {server}, state: {state.raw_response!r}"
        )

        if state.kind != PollingStateKind.started:
            raise WebApiError(
                f"webapi_post_polling response error: {state.raw_response!r}"
            )

        await self._handle_state_change(state, None)
        return JobHandle(server=server, handle=state.handle)

    async def await_job(self, job: JobHandle) -> Any:
        """Poll the accepting server until the job is done or fails"""
        url = join_url(job.server, self.config.query_state_path)
        last_kind = PollingStateKind.started

        while True:
            try:
                value = await self._post_once(url, job.handle)
            except OperationError as e:
                self.logger.error(f"Error polling job {job.handle}: {e}")
                raise WebApiError(str(e)) from e

            state = PollingState.from_wire(value)
            await self._handle_state_change(state, last_kind)
            last_kind = state.kind

            if state.kind == PollingStateKind.done:
                return state.result

            if state.kind != PollingStateKind.pending:
                self.logger.debug(f"Polling Error: {state.raw_response!r}")
                raise WebApiError(f"poll_state error: {state.raw_response!r}")

            self.logger.debug(
                f"proc_id: {job.handle}, Pending, "
                f"waiting {self.config.poll_interval:.0f}s..."
            )
            await self._wait(self.config.poll_interval)

    async def dispatch_and_await(self, path: str, payload: Any) -> Any:
        """Submit a job and poll it to completion, returning the result unmodified"""
        job = await self.submit_job(path, payload)
        return await self.await_job(job)

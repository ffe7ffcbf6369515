import itertools
from typing import Any, Optional

from aiohttp import web
from loguru import logger


class WorkerServer:
    """Local stand-in for a remote worker speaking the polling protocol"""

    def __init__(
        self,
        pending_polls: int = 2,
        overload_count: int = 0,
        submit_status: int = 200,
        submit_body: Any = None,
        submit_raw: Optional[bytes] = None,
        poll_status: int = 200,
        poll_body: Any = None,
        result: Any = None,
    ):
        self.pending_polls = pending_polls
        self.overload_count = overload_count
        self.submit_status = submit_status
        self.submit_body = submit_body
        self.submit_raw = submit_raw
        self.poll_status = poll_status
        self.poll_body = poll_body
        self.result = result
        self.requests: list[tuple[str, Any]] = []
        self.bodies: list[bytes] = []
        self.jobs: dict[Any, dict] = {}
        self._ids = itertools.count(1)
        self.runner: Optional[web.AppRunner] = None
        self.port: Optional[int] = None
        self.app = web.Application()
        self.app.router.add_post("/sys/query_state", self.handle_query_state)
        self.app.router.add_post("/{path:.*}", self.handle_submit)
        self.logger = logger

    @property
    def base_url(self) -> str:
        return f"http://127.0.0.1:{self.port}"

    def paths(self) -> list[str]:
        return [path for path, _ in self.requests]

    async def handle_submit(self, request):
        self.bodies.append(await request.read())
        payload = await request.json()
        self.requests.append((request.path, payload))

        if self.overload_count > 0:
            self.overload_count -= 1
            self.logger.info("Returning too many requests")
            return web.json_response({"busy": True}, status=429)

        if self.submit_status != 200:
            self.logger.info(f"Returning status {self.submit_status}")
            return web.json_response({}, status=self.submit_status)

        if self.submit_raw is not None:
            return web.Response(body=self.submit_raw, content_type="application/json")

        if self.submit_body is not None:
            return web.json_response(self.submit_body)

        proc_id = next(self._ids)
        result = self.result if self.result is not None else {"Ok": payload}
        self.jobs[proc_id] = {"pending": self.pending_polls, "result": result}
        self.logger.info(f"Started job {proc_id} for {request.path}")
        return web.json_response({"Started": proc_id})

    async def handle_query_state(self, request):
        proc_id = await request.json()
        self.requests.append((request.path, proc_id))

        if self.poll_status != 200:
            return web.json_response({}, status=self.poll_status)

        if self.poll_body is not None:
            return web.json_response(self.poll_body)

        job = self.jobs.get(proc_id)
        if job is None:
            return web.json_response({"Err": f"unknown job {proc_id}"})

        if job["pending"] > 0:
            job["pending"] -= 1
            self.logger.info(f"Returning pending state for job {proc_id}")
            return web.json_response("Pending")

        self.logger.info(f"Returning done state for job {proc_id}")
        return web.json_response({"Done": job["result"]})

    async def start(self, port: int = 0):
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        site = web.TCPSite(self.runner, "127.0.0.1", port)
        await site.start()
        self.port = self.runner.addresses[0][1]
        self.logger.info(f"Worker started on port {self.port}")
        return site

    async def stop(self) -> None:
        if self.runner is not None:
            await self.runner.cleanup()
            self.runner = None

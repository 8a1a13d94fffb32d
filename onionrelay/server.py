# onionrelay/server.py
import asyncio
import logging
from typing import Optional, Set

from aiohttp import web

logger = logging.getLogger(__name__)


class HttpServer:
    """
    Shared plumbing for the registry, relays and users: one aiohttp app on
    one port, plus fire-and-forget background tasks that outlive the request
    that started them.
    """

    name = "Server"

    def __init__(self, host: str, port: int):
        self.host = host
        self.port = port
        self._runner: Optional[web.AppRunner] = None
        self._tasks: Set[asyncio.Task] = set()

    def create_app(self) -> web.Application:
        raise NotImplementedError

    async def handle_status(self, request: web.Request) -> web.Response:
        return web.Response(text="live")

    def spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def busy(self) -> bool:
        return bool(self._tasks)

    async def drain(self) -> None:
        """Wait until every background task started so far has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def start(self) -> None:
        self._runner = web.AppRunner(self.create_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        try:
            await site.start()
        except OSError:
            await self._runner.cleanup()
            self._runner = None
            raise
        logger.info("[%s] Listening on port %d", self.name, self.port)

    async def stop(self) -> None:
        await self.drain()
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

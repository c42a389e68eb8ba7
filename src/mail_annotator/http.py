import logging
import ssl

from aiohttp import web
from aiohttp.web import Request, Response

from .ledger import Ledger
from .scanner import ScanStats
from .utils import VERSION

_logger = logging.getLogger(__name__)


async def run_app(
    api: web.Application,
    host: str | None = None,
    port: int | None = None,
    ssl_context: ssl.SSLContext | None = None,
) -> web.AppRunner:
    app = web.AppRunner(
        api,
        access_log_format='%a "%r" %s %b "%{Referer}i" "%{User-Agent}i"',
    )
    await app.setup()

    site = web.TCPSite(
        app,
        host=host,
        port=port,
        reuse_address=True,
        reuse_port=True,
        ssl_context=ssl_context,
    )
    await site.start()
    return app


class Frontend:
    """Read-only HTTP view on the state of the scanner"""

    def __init__(
        self,
        stats: ScanStats,
        ledger: Ledger,
        *,
        host: str = "",
        port: int = 4080,
    ) -> None:
        self.stats: ScanStats = stats
        self.ledger: Ledger = ledger
        self.api: web.Application | None = None
        self.runner: web.AppRunner | None = None
        self.host: str = host
        self.port: int = port

    async def start(self) -> web.AppRunner:
        self.api = web.Application()

        self.api.add_routes(
            [
                web.get("/health", self._page_health),
                web.get("/status", self._page_status),
            ]
        )

        self.runner = await run_app(
            self.api,
            host=self.host or None,
            port=self.port,
        )
        _logger.info(f"HTTP service [{self.port}]")
        return self.runner

    async def stop(self) -> None:
        if self.runner:
            await self.runner.cleanup()
            self.runner = None

    async def _page_health(self, request: Request) -> Response:  # pylint: disable=W0613
        return web.json_response({"status": "ok", "connected": self.stats.connected})

    async def _page_status(self, request: Request) -> Response:  # pylint: disable=W0613
        data = self.stats.to_api()
        data.update(ledger_size=len(self.ledger), version=VERSION)
        return web.json_response(data)

import argparse
import asyncio
import logging
import os
from contextlib import asynccontextmanager, suppress
from typing import AsyncGenerator

from . import utils
from .builder import default_banner
from .errors import MailError
from .http import Frontend
from .ledger import Ledger
from .scanner import Scanner, ScannerConfig, ScanStats
from .session import TLS_MODES, Endpoint, MailboxSession

try:
    from typing import Self
except ImportError:
    from typing_extensions import Self

_logger = logging.getLogger(__name__)


def env(*names: str, default: str | None = None) -> str | None:
    for name in names:
        value = os.environ.get(name)
        if value:
            return value
    return default


class Service:
    def __init__(self, args: argparse.Namespace) -> None:
        self.args: argparse.Namespace = args
        self.endpoint: Endpoint | None = None
        self.ledger: Ledger | None = None
        self.scanner: Scanner | None = None
        self.frontend: Frontend | None = None
        self.stats: ScanStats = ScanStats()
        self.retry_interval: float = args.retry_interval
        self._supervisor: asyncio.Task | None = None

    @classmethod
    async def init(cls, args: argparse.Namespace) -> Self:
        service = cls(args)

        ssl_context = None
        if args.tls != "none":
            ssl_context = utils.generate_ssl_context(
                ca=args.ca, check_hostname=not args.no_verify
            )

        service.endpoint = Endpoint(
            host=args.imap_host,
            port=args.imap_port,
            tls=args.tls,
            ssl_context=ssl_context,
        )

        service.ledger = Ledger(args.ledger, strict=args.ledger_strict)
        service.ledger.load()

        if args.banner:
            with open(args.banner, encoding="utf-8") as fp:
                banner = fp.read()
        else:
            banner = default_banner()

        config = ScannerConfig(
            account=args.user,
            banner=banner,
            mailbox=args.mailbox,
            trigger=args.trigger,
            tag=args.tag,
            window=args.window,
            poll_interval=args.poll_interval,
        )
        service.scanner = Scanner(config, service.ledger, service.stats)

        # Create the HTTP service
        if args.http:
            service.frontend = Frontend(
                service.stats,
                service.ledger,
                host=args.http_host,
                port=args.http_port,
            )

        return service

    async def connect(self) -> MailboxSession:
        assert self.endpoint
        return await MailboxSession.connect(
            self.endpoint, self.args.user, self.args.password
        )

    async def run_session(self) -> None:
        """Connect and scan until the session fails"""
        assert self.scanner

        async with await self.connect() as session:
            self.stats.connected = True
            try:
                await self.scanner.run(session)
            finally:
                self.stats.connected = False

    async def supervise(self) -> None:
        """Restart the scanner with a fresh session after every failure"""
        while True:
            try:
                await self.run_session()
            except MailError as e:
                _logger.error(f"Session failed: {e}")
                self.stats.last_error = str(e)
            except Exception as e:
                _logger.exception(f"Unexpected error: {e}")
                self.stats.last_error = str(e)

            self.stats.reconnects += 1
            _logger.info(f"Reconnecting in {self.retry_interval} seconds")
            await asyncio.sleep(self.retry_interval)

    @asynccontextmanager
    async def start(self) -> AsyncGenerator[None, None]:
        if self.frontend:
            await self.frontend.start()

        self._supervisor = asyncio.create_task(self.supervise())
        try:
            yield
        finally:
            self._supervisor.cancel()
            with suppress(asyncio.CancelledError):
                await self._supervisor

            if self.frontend:
                await self.frontend.stop()
            if self.ledger:
                self.ledger.close()

    @classmethod
    def parse(cls, args: list[str] | None = None) -> argparse.Namespace:
        parser = argparse.ArgumentParser()

        user = parser.add_argument(
            "--user",
            default=env("MAIL_USER", "EMAIL_USER"),
            help="The mail account to watch. It is also the recipient of the "
            "annotated mails. Can also be set using the environment variable "
            "MAIL_USER",
        )
        pw = parser.add_argument(
            "--password",
            default=env("MAIL_PASSWORD", "EMAIL_PASS"),
            help="The password of the mail account. Can also be set using the "
            "environment variable MAIL_PASSWORD",
        )

        group = parser.add_argument_group("IMAP")
        group.add_argument(
            "--imap-host",
            default=env("MAIL_IMAP_HOST", default="imap.gmail.com"),
            help="The IMAP server. Can also be set using the environment variable "
            "MAIL_IMAP_HOST. Default is %(default)s",
        )
        group.add_argument(
            "--imap-port",
            metavar="PORT",
            type=int,
            default=int(env("MAIL_IMAP_PORT", default="993")),
            help="The port of the IMAP server. Can also be set using the "
            "environment variable MAIL_IMAP_PORT. Default is %(default)s",
        )
        group.add_argument(
            "--tls",
            choices=TLS_MODES,
            default=env("MAIL_TLS", default="ssl"),
            help="Use implicit TLS, STARTTLS or no encryption at all. The last is "
            "only meant for local test servers. Default is %(default)s",
        )
        group.add_argument(
            "--mailbox",
            default=env("MAIL_MAILBOX", default="INBOX"),
            help="The mailbox to scan. Default is %(default)s",
        )

        group = parser.add_argument_group("Annotation")
        group.add_argument(
            "--trigger",
            default=env("MAIL_TRIGGER", default="prueba"),
            help="Case insensitive keyword in the subject which triggers the "
            "annotation. Default is %(default)s",
        )
        group.add_argument(
            "--tag",
            default=env("MAIL_TAG", default="[ANALIZADO]"),
            help="Marker prepended to the subject of annotated mails. Mails "
            "carrying it are never processed. Default is %(default)s",
        )
        group.add_argument(
            "--banner",
            default=env("MAIL_BANNER"),
            metavar="FILE",
            type=utils.valid_file,
            help="HTML fragment placed in front of the original body instead of "
            "the built-in warning",
        )

        group = parser.add_argument_group("Scanning")
        group.add_argument(
            "--ledger",
            default=env("MAIL_LEDGER", default="historial_procesados.txt"),
            metavar="FILE",
            help="File recording the processed UIDs. Default is %(default)s",
        )
        group.add_argument(
            "--ledger-strict",
            action="store_true",
            default=utils.str2bool(env("MAIL_LEDGER_STRICT")),
            help="Treat a failed write to the ledger as a session error",
        )
        group.add_argument(
            "--window",
            type=int,
            default=int(env("MAIL_WINDOW", default="5")),
            help="Number of most recent messages to inspect per cycle. "
            "Default is %(default)s",
        )
        group.add_argument(
            "--poll-interval",
            type=float,
            default=float(env("MAIL_POLL_INTERVAL", default="5")),
            help="Seconds between two scan cycles. Default is %(default)s",
        )
        group.add_argument(
            "--retry-interval",
            type=float,
            default=float(env("MAIL_RETRY_INTERVAL", default="10")),
            help="Seconds to wait before reconnecting. Default is %(default)s",
        )

        group = parser.add_argument_group("HTTP")
        group.add_argument(
            "--http-host",
            default="",
            help="The IP to bind the status server",
        )
        group.add_argument(
            "--http-port",
            metavar="PORT",
            type=int,
            default=int(env("MAIL_HTTP_PORT", default="4080")),
            help="The port of the status server. Can also be set using the "
            "environment variable MAIL_HTTP_PORT. Default is %(default)s",
        )
        group.add_argument(
            "--no-http",
            dest="http",
            action="store_false",
            help="Disable the status server",
        )

        group = parser.add_argument_group("Options")
        group.add_argument("--debug", action="store_true", help="Verbose logging")
        group.add_argument(
            "--log-file",
            default=None,
            metavar="FILE",
            help="Write the log additionally into the file",
        )

        group = parser.add_argument_group("Security")
        group.add_argument(
            "--ca",
            default=None,
            metavar="FILE",
            type=utils.valid_file,
            help="CA file to verify the IMAP server instead of the system CAs",
        )
        group.add_argument(
            "--no-verify",
            action="store_true",
            help="Skip the certificate and hostname verification",
        )

        parsed = parser.parse_args(args)
        if not parsed.user:
            raise argparse.ArgumentError(user, "Missing argument `user`")
        if not parsed.password:
            raise argparse.ArgumentError(pw, "Missing argument `password`")
        if parsed.window < 1:
            raise argparse.ArgumentError(None, "The window must be positive")
        return parsed

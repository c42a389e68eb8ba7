import asyncio
import imaplib
import logging
import re
import ssl
from contextlib import suppress
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Callable

from .errors import ConnectError, ProtocolError

try:
    from typing import Self
except ImportError:
    from typing_extensions import Self

_logger = logging.getLogger(__name__)

TLS_MODES = ("ssl", "starttls", "none")
FETCH_ITEMS = "(UID BODY.PEEK[])"
UID_PATTERN = re.compile(rb"\bUID (\d+)", re.IGNORECASE)


@dataclass(frozen=True)
class Endpoint:
    host: str
    port: int = imaplib.IMAP4_SSL_PORT
    tls: str = "ssl"
    ssl_context: ssl.SSLContext | None = None
    timeout: float | None = 60.0

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class MailboxState:
    name: str
    exists: int


@dataclass(frozen=True)
class RawMessage:
    seq: int
    uid: int
    data: bytes


def quote_mailbox(name: str) -> str:
    if name.startswith('"') or not re.search(r'[\s"\\]', name):
        return name
    escaped = name.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def parse_fetch(seq: int, data: list[Any]) -> RawMessage | None:
    """Extract the UID and the literal from an imaplib FETCH response

    imaplib also returns unsolicited FETCH responses of other messages, so
    only the literal of `seq` and the trailing bytes right after it count.
    """
    prefix = f"{seq} ".encode()
    for index, item in enumerate(data):
        if not isinstance(item, tuple) or not bytes(item[0]).startswith(prefix):
            continue

        meta = bytes(item[0])
        if index + 1 < len(data) and isinstance(data[index + 1], bytes):
            meta += data[index + 1]

        match = UID_PATTERN.search(meta)
        if not match:
            raise ProtocolError(f"Missing UID in FETCH response of message {seq}")

        return RawMessage(seq=seq, uid=int(match.group(1)), data=bytes(item[1]))

    return None


def open_connection(endpoint: Endpoint) -> imaplib.IMAP4:
    if endpoint.tls == "ssl":
        return imaplib.IMAP4_SSL(
            endpoint.host,
            endpoint.port,
            ssl_context=endpoint.ssl_context,
            timeout=endpoint.timeout,
        )

    conn = imaplib.IMAP4(endpoint.host, endpoint.port, timeout=endpoint.timeout)
    if endpoint.tls == "starttls":
        try:
            conn.starttls(ssl_context=endpoint.ssl_context)
        except Exception:
            conn.shutdown()
            raise
    return conn


class MailboxSession:
    """One authenticated IMAP connection

    The blocking imaplib calls run in a worker thread and are serialized with a
    lock, so a fetch producer and a consumer can share the same connection.
    After a `SessionError` the session must be dropped.
    """

    def __init__(self, conn: imaplib.IMAP4, user: str = "") -> None:
        self.conn: imaplib.IMAP4 = conn
        self.user: str = user
        self.closed: bool = False
        self._lock: asyncio.Lock = asyncio.Lock()

    @classmethod
    async def connect(cls, endpoint: Endpoint, user: str, password: str) -> Self:
        if endpoint.tls not in TLS_MODES:
            raise ConnectError(f"Unknown TLS mode {endpoint.tls!r}")

        try:
            conn = await asyncio.to_thread(open_connection, endpoint)
        except (imaplib.IMAP4.error, OSError) as e:
            raise ConnectError(f"Unable to connect to {endpoint}: {e}") from e

        try:
            await asyncio.to_thread(conn.login, user, password)
        except (imaplib.IMAP4.error, OSError) as e:
            with suppress(OSError):
                await asyncio.to_thread(conn.shutdown)
            raise ConnectError(f"Login of {user} at {endpoint} failed: {e}") from e

        _logger.info(f"Connected to {endpoint} as {user}")
        return cls(conn, user)

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.logout()

    async def _call(self, name: str, func: Callable[..., Any], *args: Any) -> Any:
        if self.closed:
            raise ProtocolError(f"{name} on a closed session")

        async with self._lock:
            task = asyncio.ensure_future(asyncio.to_thread(func, *args))
            try:
                typ, data = await asyncio.shield(task)
            except asyncio.CancelledError:
                # A running imaplib command can't be interrupted
                with suppress(Exception):
                    await task
                raise
            except (imaplib.IMAP4.error, OSError) as e:
                raise ProtocolError(f"{name} failed: {e}") from e

        if typ != "OK":
            raise ProtocolError(f"{name} failed: {typ} {data!r}")
        return data

    async def select(self, mailbox: str = "INBOX", readonly: bool = False) -> MailboxState:
        data = await self._call(
            "SELECT", self.conn.select, quote_mailbox(mailbox), readonly
        )
        try:
            exists = int(data[0])
        except (IndexError, TypeError, ValueError) as e:
            raise ProtocolError(f"Invalid SELECT response {data!r}") from e

        return MailboxState(name=mailbox, exists=exists)

    async def fetch(self, seq: int) -> RawMessage | None:
        """Fetch UID and the full message without setting the \\Seen flag"""
        data = await self._call("FETCH", self.conn.fetch, str(seq), FETCH_ITEMS)
        return parse_fetch(seq, data)

    async def fetch_range(self, low: int, high: int) -> AsyncIterator[RawMessage]:
        """Stream the messages of the inclusive sequence range in server order"""
        for seq in range(low, high + 1):
            raw = await self.fetch(seq)
            if raw is None:
                _logger.debug(f"Message {seq} vanished before fetching")
                continue
            yield raw

    async def append(
        self, mailbox: str, data: bytes, timestamp: datetime | None = None
    ) -> None:
        when = timestamp or datetime.now(timezone.utc)
        await self._call(
            "APPEND", self.conn.append, quote_mailbox(mailbox), None, when, data
        )

    async def logout(self) -> None:
        if self.closed:
            return

        self.closed = True
        async with self._lock:
            try:
                await asyncio.to_thread(self.conn.logout)
            except (imaplib.IMAP4.error, OSError) as e:
                _logger.debug(f"Logout failed: {e}")

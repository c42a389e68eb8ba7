import asyncio
import logging
from contextlib import suppress
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from email.errors import MessageError
from typing import Any

from .builder import PLACEHOLDER, Builder, Candidate, extract_html
from .errors import ProtocolError, SessionError
from .ledger import Ledger
from .session import MailboxSession, RawMessage

_logger = logging.getLogger(__name__)

# Marks the end of the fetch stream
_DONE = None


@dataclass
class ScannerConfig:
    account: str
    banner: str
    mailbox: str = "INBOX"
    trigger: str = "prueba"
    tag: str = "[ANALIZADO]"
    placeholder: str = PLACEHOLDER
    window: int = 5
    poll_interval: float = 5.0
    queue_size: int = 5


@dataclass
class ScanStats:
    cycles: int = 0
    annotated: int = 0
    skipped: int = 0
    append_failures: int = 0
    reconnects: int = 0
    connected: bool = False
    last_cycle: datetime | None = None
    last_error: str | None = None

    def to_api(self) -> dict[str, Any]:
        result = asdict(self)
        if self.last_cycle:
            result["last_cycle"] = self.last_cycle.isoformat()
        return result


class Scanner:
    """Polls the mailbox and annotates the matching messages"""

    def __init__(
        self, config: ScannerConfig, ledger: Ledger, stats: ScanStats | None = None
    ) -> None:
        self.config: ScannerConfig = config
        self.ledger: Ledger = ledger
        self.stats: ScanStats = stats or ScanStats()

    def compute_window(self, exists: int) -> tuple[int, int] | None:
        if exists <= 0:
            return None
        return max(1, exists - self.config.window + 1), exists

    def should_process(self, candidate: Candidate) -> bool:
        if self.config.tag in candidate.subject:
            return False

        if candidate.uid in self.ledger:
            return False

        return self.config.trigger.lower() in candidate.subject.lower()

    async def process(self, session: MailboxSession, candidate: Candidate) -> bool:
        """Annotate the candidate and append it to the mailbox"""
        _logger.info(f"Event detected in UID {candidate.uid}: {candidate.subject}")

        html = extract_html(candidate.data, self.config.placeholder)
        annotated = Builder.annotate(
            candidate,
            html,
            account=self.config.account,
            tag=self.config.tag,
            banner=self.config.banner,
        )
        if not annotated.in_reply_to:
            _logger.warning(f"UID {candidate.uid} has no Message-ID to thread on")

        try:
            await session.append(self.config.mailbox, annotated.as_bytes())
        except ProtocolError as e:
            _logger.error(f"Append of UID {candidate.uid} failed: {e}")
            self.stats.append_failures += 1
            return False

        self.ledger.record(candidate.uid)
        self.stats.annotated += 1
        _logger.info(f"UID {candidate.uid} linked to the conversation")
        return True

    async def consume(self, session: MailboxSession, raw: RawMessage) -> bool:
        try:
            candidate = Candidate.from_raw(raw)
        except (MessageError, LookupError, TypeError, ValueError) as e:
            _logger.warning(f"Skipping unparsable message UID {raw.uid}: {e}")
            self.stats.skipped += 1
            return False

        if not self.should_process(candidate):
            self.stats.skipped += 1
            return False

        return await self.process(session, candidate)

    async def produce(
        self,
        session: MailboxSession,
        queue: "asyncio.Queue[RawMessage | None]",
        low: int,
        high: int,
    ) -> None:
        try:
            async for raw in session.fetch_range(low, high):
                await queue.put(raw)
        except Exception:
            await queue.put(_DONE)
            raise

        await queue.put(_DONE)

    async def run_cycle(self, session: MailboxSession) -> int:
        """Run a single scan cycle and return the number of appended messages"""
        state = await session.select(self.config.mailbox)

        window = self.compute_window(state.exists)
        if window is None:
            return 0

        low, high = window
        _logger.debug(f"Scanning messages {low}:{high} of {self.config.mailbox}")

        queue: "asyncio.Queue[RawMessage | None]" = asyncio.Queue(
            maxsize=self.config.queue_size
        )
        producer = asyncio.create_task(self.produce(session, queue, low, high))

        appended = 0
        try:
            while True:
                raw = await queue.get()
                if raw is _DONE:
                    break

                if await self.consume(session, raw):
                    appended += 1
        except BaseException:
            producer.cancel()
            with suppress(asyncio.CancelledError, Exception):
                await producer
            raise

        try:
            await producer
        except SessionError:
            raise
        except Exception as e:
            raise ProtocolError(f"Fetching {low}:{high} failed: {e}") from e

        return appended

    async def run(self, session: MailboxSession) -> None:
        """Scan forever. Only returns by raising an error"""
        while True:
            await self.run_cycle(session)
            self.stats.cycles += 1
            self.stats.last_cycle = datetime.now(timezone.utc)
            await asyncio.sleep(self.config.poll_interval)

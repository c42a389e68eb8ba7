import logging
from typing import IO

from .errors import LedgerError

try:
    from typing import Self
except ImportError:
    from typing_extensions import Self

_logger = logging.getLogger(__name__)


class Ledger:
    """Durable set of processed message UIDs

    The UIDs are kept in memory for membership checks and appended to a
    newline-delimited log file. The log is only ever appended to.
    """

    def __init__(self, path: str, *, strict: bool = False) -> None:
        self.path: str = path
        self.strict: bool = strict
        self.uids: set[int] = set()
        self._fp: IO[str] | None = None

    def __contains__(self, uid: int) -> bool:
        return uid in self.uids

    def __len__(self) -> int:
        return len(self.uids)

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def load(self) -> set[int]:
        """Read the persisted log. A missing or unreadable file is empty"""
        try:
            with open(self.path, encoding="utf-8") as fp:
                lines = fp.read().splitlines()
        except FileNotFoundError:
            _logger.info(f"No ledger at {self.path}, starting empty")
            return self.uids
        except (OSError, UnicodeDecodeError) as e:
            _logger.warning(f"Unable to read ledger {self.path}: {e}")
            return self.uids

        for line in lines:
            line = line.strip()
            if not line:
                continue

            try:
                self.uids.add(int(line))
            except ValueError:
                _logger.warning(f"Skipping invalid ledger line {line!r}")

        _logger.info(f"Loaded {len(self.uids)} processed messages from {self.path}")
        return self.uids

    def contains(self, uid: int) -> bool:
        return uid in self.uids

    def record(self, uid: int) -> None:
        """Mark the UID as processed and append it to the log"""
        self.uids.add(uid)

        try:
            if self._fp is None:
                self._fp = open(self.path, "a", encoding="utf-8")
            self._fp.write(f"{uid}\n")
            self._fp.flush()
        except OSError as e:
            _logger.error(f"Unable to persist UID {uid} to {self.path}: {e}")
            self.close()
            if self.strict:
                raise LedgerError(f"Unable to persist UID {uid}") from e

    def close(self) -> None:
        if self._fp is None:
            return

        try:
            self._fp.close()
        except OSError as e:
            _logger.warning(f"Unable to close ledger {self.path}: {e}")
        self._fp = None

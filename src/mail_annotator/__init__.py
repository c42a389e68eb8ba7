from .builder import AnnotatedMessage, Builder, Candidate, extract_html
from .ledger import Ledger
from .scanner import Scanner, ScannerConfig, ScanStats
from .service import Service
from .session import Endpoint, MailboxSession
from .utils import VERSION

__all__ = [
    "AnnotatedMessage",
    "Builder",
    "Candidate",
    "Endpoint",
    "Ledger",
    "MailboxSession",
    "Scanner",
    "ScannerConfig",
    "ScanStats",
    "Service",
    "VERSION",
    "extract_html",
]

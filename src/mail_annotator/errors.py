class MailError(Exception):
    """Base class of all errors raised by the annotator"""


class SessionError(MailError):
    """The mail session is unusable and has to be re-established"""


class ConnectError(SessionError):
    """Connecting or authenticating against the mail server failed"""


class ProtocolError(SessionError):
    """An IMAP command failed"""


class LedgerError(MailError):
    """Persisting a processed message failed"""

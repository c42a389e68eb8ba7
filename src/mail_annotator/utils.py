import logging
import os
import ssl
import sys
from email import header
from email.message import Message

VERSION = "0.1.0"

DEFAULT_LOG_LEVEL = "info"
LOG_FORMAT = "{asctime} [{levelname:^8}] {message}"

LOG_LEVELS = {
    "critical": logging.CRITICAL,
    "debug": logging.DEBUG,
    "error": logging.ERROR,
    "info": logging.INFO,
    "warn": logging.WARN,
    "warning": logging.WARNING,
}

_logger = logging.getLogger(__name__)


def configure_logging(level_name: str, log_file: str | None = None) -> None:
    """Configure the logging"""
    level = LOG_LEVELS.get(level_name.lower(), logging.DEBUG)

    log = logging.getLogger()
    log.setLevel(level)

    formatter = logging.Formatter(LOG_FORMAT, style="{")

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setLevel(logging.DEBUG)
    stream_handler.setFormatter(formatter)
    log.addHandler(stream_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        log.addHandler(file_handler)


def generate_ssl_context(
    *,
    ca: str | None = None,
    ciphers: str | None = None,
    check_hostname: bool = True,
) -> ssl.SSLContext:
    """Generate a SSL context for the connection to the mail server"""

    # Set the protocol and create the basic context
    ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    ctx.minimum_version = ssl.TLSVersion.TLSv1_2

    # Load the CA to verify the other side
    if ca:
        ctx.load_verify_locations(cafile=ca)
    else:
        ctx.load_default_certs(ssl.Purpose.SERVER_AUTH)

    ctx.check_hostname = check_hostname
    ctx.verify_mode = ssl.CERT_REQUIRED if check_hostname else ssl.CERT_NONE

    # Set possible ciphers to use
    if ciphers:
        ctx.set_ciphers(ciphers)

    # Output debugging
    _logger.info("CA usage: %s", bool(ca))
    _logger.info("Hostname verification: %s", bool(check_hostname))
    # pylint: disable=no-member
    _logger.info("Minimal TLS Version: %s", ctx.minimum_version.name)

    return ctx


def decode_header(value: str) -> str:
    return str(header.make_header(header.decode_header(value)))


def decode_payload(part: Message) -> str:
    """Decode the payload of a non-multipart part using its declared charset"""
    payload = part.get_payload(decode=True)
    if isinstance(payload, bytes):
        charset = part.get_content_charset() or "utf-8"
        try:
            return payload.decode(charset, errors="replace")
        except LookupError:
            return payload.decode("utf-8", errors="replace")

    if isinstance(payload, str):
        return payload

    return ""


def str2bool(x: str | None) -> bool:
    return (x or "").lower() in ("yes", "y", "on", "1")


def valid_file(path: str, is_directory: bool = False) -> str:
    """Check if a file exists and return the absolute path otherwise raise an
    error. This function is used for the argument parsing"""
    path = os.path.abspath(path)
    if is_directory and not os.path.isdir(path):
        raise NotADirectoryError()
    if not is_directory and not os.path.isfile(path):
        raise FileNotFoundError()
    return path

import logging
from dataclasses import dataclass
from email import message_from_bytes
from email.errors import MessageError
from email.message import Message
from email.mime.text import MIMEText
from email.utils import parseaddr
from importlib import resources

from .session import RawMessage
from .utils import decode_header, decode_payload

_logger = logging.getLogger(__name__)

PLACEHOLDER = "(Contenido analizado por Capa de Interconexión)"


def load_resource(resource: str) -> str:
    res = resources.files(f"{__package__}.resources").joinpath(resource)
    if not res.is_file():
        raise FileNotFoundError()

    return res.read_text(encoding="utf-8")


def default_banner() -> str:
    return load_resource("banner.html")


def extract_html(data: bytes, placeholder: str = PLACEHOLDER) -> str:
    """Return the first inline text/html part of the message or the
    placeholder. A part failing to decode stops the walk"""
    try:
        message = message_from_bytes(data)
    except (MessageError, TypeError, ValueError) as e:
        _logger.warning(f"Unable to parse message: {e}")
        return placeholder

    try:
        for part in message.walk():
            if part.is_multipart():
                continue

            if part.get_content_disposition() == "attachment":
                continue

            if part.get_content_type() == "text/html":
                return decode_payload(part) or placeholder
    except (MessageError, LookupError, TypeError, ValueError) as e:
        _logger.warning(f"Stopped extracting the message body: {e}")

    return placeholder


@dataclass(frozen=True)
class Candidate:
    """View over one fetched message during a scan cycle"""

    uid: int
    subject: str
    message_id: str
    sender: str
    data: bytes

    @classmethod
    def from_message(cls, uid: int, message: Message, data: bytes) -> "Candidate":
        return cls(
            uid=uid,
            subject=decode_header(message.get("Subject", "")),
            message_id=(message.get("Message-ID") or "").strip(),
            sender=parseaddr(message.get("From", ""))[1],
            data=data,
        )

    @classmethod
    def from_raw(cls, raw: RawMessage) -> "Candidate":
        return cls.from_message(raw.uid, message_from_bytes(raw.data), raw.data)


@dataclass(frozen=True)
class AnnotatedMessage:
    sender: str
    recipient: str
    subject: str
    in_reply_to: str
    references: str
    html: str

    def to_message(self) -> Message:
        message = MIMEText(self.html, "html", "utf-8")
        message.add_header("From", self.sender)
        message.add_header("To", self.recipient)
        message.add_header("Subject", self.subject)
        if self.in_reply_to:
            message.add_header("In-Reply-To", self.in_reply_to)
        if self.references:
            message.add_header("References", self.references)
        return message

    def as_bytes(self) -> bytes:
        return self.to_message().as_bytes()


class Builder:
    """Helper class to generate the annotated messages"""

    @staticmethod
    def subject(subject: str, tag: str) -> str:
        return f"{tag} {subject}"

    @staticmethod
    def annotate(
        candidate: Candidate,
        html: str,
        *,
        account: str,
        tag: str,
        banner: str,
    ) -> AnnotatedMessage:
        # The threading headers group the copy with the original conversation
        return AnnotatedMessage(
            sender=candidate.sender,
            recipient=account,
            subject=Builder.subject(candidate.subject, tag),
            in_reply_to=candidate.message_id,
            references=candidate.message_id,
            html=banner + html,
        )

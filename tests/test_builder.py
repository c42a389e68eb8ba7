from email import message_from_bytes
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from unittest.mock import patch

from helpers import make_mail
from mail_annotator.builder import (
    PLACEHOLDER,
    AnnotatedMessage,
    Builder,
    Candidate,
    default_banner,
    extract_html,
)
from mail_annotator.session import RawMessage
from mail_annotator.utils import decode_header

BANNER = "<div>WARNING</div>"


def make_candidate(**kwargs) -> Candidate:
    values = {
        "uid": 10,
        "subject": "Prueba de phishing",
        "message_id": "<msg-10@example.org>",
        "sender": "sender@example.org",
        "data": b"",
    }
    values.update(kwargs)
    return Candidate(**values)


def test_extract_html_part():
    assert extract_html(make_mail("hello")).strip() == "<p>hello world</p>"


def test_extract_html_exact_text():
    message = MIMEText("<p>Grüße</p>", "html", "utf-8")
    assert extract_html(message.as_bytes()) == "<p>Grüße</p>"


def test_extract_html_first_part():
    message = MIMEMultipart()
    message.attach(MIMEText("plain", "plain", "utf-8"))
    message.attach(MIMEText("<p>first</p>", "html", "utf-8"))
    message.attach(MIMEText("<p>second</p>", "html", "utf-8"))
    assert extract_html(message.as_bytes()) == "<p>first</p>"


def test_extract_html_skips_attachments():
    message = MIMEMultipart()
    attachment = MIMEText("<p>attached</p>", "html", "utf-8")
    attachment.add_header("Content-Disposition", "attachment", filename="a.html")
    message.attach(attachment)
    message.attach(MIMEText("<p>inline</p>", "html", "utf-8"))
    assert extract_html(message.as_bytes()) == "<p>inline</p>"


def test_extract_html_fallback():
    assert extract_html(make_mail("hello", html=False)) == PLACEHOLDER
    assert extract_html(b"") == PLACEHOLDER
    assert extract_html(b"", "nothing") == "nothing"

    empty = MIMEText("", "html", "utf-8")
    assert extract_html(empty.as_bytes()) == PLACEHOLDER


def test_extract_html_empty_first_part():
    message = MIMEMultipart()
    message.attach(MIMEText("", "html", "utf-8"))
    message.attach(MIMEText("<p>second</p>", "html", "utf-8"))
    assert extract_html(message.as_bytes()) == PLACEHOLDER


def test_extract_html_truncated_multipart():
    truncated = (
        b'Content-Type: multipart/mixed; boundary="XX"\r\n'
        b"MIME-Version: 1.0\r\n"
        b"\r\n"
        b"--XX\r\n"
        b"Content-Type: text/html; charset=utf-8\r\n"
        b"\r\n"
        b"<p>kept</p>\r\n"
        b"--XX\r\n"
        b"Content-Type: text/plain\r\n"
        b"\r\n"
        b"cut off in the mid"
    )
    assert extract_html(truncated).strip() == "<p>kept</p>"

    no_boundary = (
        b'Content-Type: multipart/mixed; boundary="XX"\r\n'
        b"MIME-Version: 1.0\r\n"
        b"\r\n"
        b"<p>never delimited</p>"
    )
    assert extract_html(no_boundary) == PLACEHOLDER


def test_extract_html_part_error():
    message = MIMEMultipart()
    message.attach(MIMEText("<p>first</p>", "html", "utf-8"))
    message.attach(MIMEText("<p>second</p>", "html", "utf-8"))

    with patch("mail_annotator.builder.decode_payload") as mock:
        mock.side_effect = LookupError("unknown encoding")
        assert extract_html(message.as_bytes()) == PLACEHOLDER

    # A broken later part doesn't discard the earlier html part
    with patch("mail_annotator.builder.decode_payload") as mock:
        mock.side_effect = ["<p>first</p>", LookupError("unknown encoding")]
        assert extract_html(message.as_bytes()) == "<p>first</p>"
        assert mock.call_count == 1


def test_candidate_from_raw():
    data = make_mail(
        "=?utf-8?q?Prueba_de_phishing?=",
        message_id=" <abc@example.org> ",
        sender="bad@example.org",
    )
    candidate = Candidate.from_raw(RawMessage(seq=1, uid=42, data=data))

    assert candidate.uid == 42
    assert candidate.subject == "Prueba de phishing"
    assert candidate.message_id == "<abc@example.org>"
    assert candidate.sender == "bad@example.org"
    assert candidate.data == data


def test_annotate_threading_headers():
    annotated = Builder.annotate(
        make_candidate(),
        "<p>original</p>",
        account="me@example.org",
        tag="[ANALIZADO]",
        banner=BANNER,
    )

    assert annotated == AnnotatedMessage(
        sender="sender@example.org",
        recipient="me@example.org",
        subject="[ANALIZADO] Prueba de phishing",
        in_reply_to="<msg-10@example.org>",
        references="<msg-10@example.org>",
        html=BANNER + "<p>original</p>",
    )

    message = message_from_bytes(annotated.as_bytes())
    assert message["From"] == "sender@example.org"
    assert message["To"] == "me@example.org"
    assert message["Subject"] == "[ANALIZADO] Prueba de phishing"
    assert message["In-Reply-To"] == "<msg-10@example.org>"
    assert message["References"] == "<msg-10@example.org>"
    assert message["MIME-Version"] == "1.0"
    assert message.get_content_type() == "text/html"
    assert message.get_content_charset() == "utf-8"
    assert message.get_payload(decode=True).decode() == BANNER + "<p>original</p>"


def test_annotate_is_deterministic():
    kwargs = {"account": "me@example.org", "tag": "[TAG]", "banner": BANNER}
    first = Builder.annotate(make_candidate(), "<p>x</p>", **kwargs)
    second = Builder.annotate(make_candidate(), "<p>x</p>", **kwargs)
    assert first.as_bytes() == second.as_bytes()


def test_annotate_without_message_id():
    annotated = Builder.annotate(
        make_candidate(message_id=""),
        "<p>x</p>",
        account="me@example.org",
        tag="[TAG]",
        banner=BANNER,
    )

    message = message_from_bytes(annotated.as_bytes())
    assert message["In-Reply-To"] is None
    assert message["References"] is None


def test_annotate_non_ascii_subject():
    annotated = Builder.annotate(
        make_candidate(subject="Análisis"),
        "<p>x</p>",
        account="me@example.org",
        tag="[ANALIZADO]",
        banner=BANNER,
    )

    message = message_from_bytes(annotated.as_bytes())
    assert decode_header(message["Subject"]) == "[ANALIZADO] Análisis"


def test_default_banner():
    banner = default_banner()
    assert "PHISHING" in banner
    assert banner.rstrip().endswith("<hr>")


def test_candidate_sender_display_name():
    data = make_mail("prueba", sender="Bad Guy <bad@example.org>", html=False)
    candidate = Candidate.from_raw(RawMessage(seq=1, uid=7, data=data))
    assert candidate.sender == "bad@example.org"

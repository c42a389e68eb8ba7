from __future__ import annotations

from typing import AsyncIterator

from mail_annotator.errors import ProtocolError
from mail_annotator.session import MailboxState, RawMessage

HTML_MAIL = """
Content-Type: multipart/alternative; boundary="------------6S5GIA0a7bmD9z4YzFLV1oIL"
Message-ID: {message_id}
Date: Sat, 18 Feb 2023 15:01:13 +0100
MIME-Version: 1.0
To: test@example.org
From: Sender <{sender}>
Subject: {subject}

This is a multi-part message in MIME format.
--------------6S5GIA0a7bmD9z4YzFLV1oIL
Content-Type: text/plain; charset=UTF-8; format=flowed
Content-Transfer-Encoding: 7bit

hello world

--------------6S5GIA0a7bmD9z4YzFLV1oIL
Content-Type: text/html; charset=UTF-8
Content-Transfer-Encoding: 7bit

<p>hello world</p>

--------------6S5GIA0a7bmD9z4YzFLV1oIL--
""".strip()

PLAIN_MAIL = """
Content-Type: text/plain; charset=UTF-8
Message-ID: {message_id}
MIME-Version: 1.0
To: test@example.org
From: {sender}
Subject: {subject}

hello world
""".strip()


def make_mail(
    subject: str,
    *,
    message_id: str = "<msg-10@example.org>",
    sender: str = "sender@example.org",
    html: bool = True,
) -> bytes:
    template = HTML_MAIL if html else PLAIN_MAIL
    mail = template.format(subject=subject, message_id=message_id, sender=sender)
    return mail.replace("\n", "\r\n").encode()


class FakeSession:
    """In-memory stand-in for the MailboxSession used by the scanner"""

    def __init__(self, messages: list[tuple[int, bytes]] | None = None) -> None:
        self.messages: list[tuple[int, bytes]] = list(messages or [])
        self.appended: list[bytes] = []
        self.fetched: list[int] = []
        self.selected: int = 0
        self.fail_append: bool = False
        self.fail_fetch_at: int | None = None
        self.fetch_error: Exception = ProtocolError("connection lost")

    async def select(self, mailbox: str = "INBOX", readonly: bool = False) -> MailboxState:
        self.selected += 1
        return MailboxState(name=mailbox, exists=len(self.messages))

    async def fetch_range(self, low: int, high: int) -> AsyncIterator[RawMessage]:
        for seq in range(low, high + 1):
            if seq == self.fail_fetch_at:
                raise self.fetch_error

            uid, data = self.messages[seq - 1]
            self.fetched.append(seq)
            yield RawMessage(seq=seq, uid=uid, data=data)

    async def append(self, mailbox: str, data: bytes, timestamp=None) -> None:
        if self.fail_append:
            raise ProtocolError("APPEND failed: NO")

        self.appended.append(data)
        uid = max((uid for uid, _ in self.messages), default=0) + 1
        self.messages.append((uid, data))

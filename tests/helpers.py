from __future__ import annotations

from contracts import MailboxInfo, Message, ProtocolError, SessionState

PLAIN_EMAIL = b"""From: Sender <sender@example.com>
To: Recipient <recipient@example.com>
Subject: Test Subject
Date: Tue, 13 Jan 2026 10:00:00 +0000
Message-ID: <abc123@example.com>
Content-Type: text/plain; charset="utf-8"

This is a test email body.
"""

NESTED_EMAIL = b"""From: Shop <support@nw.nuovapromo.it>
To: me@example.com
Subject: Offers inside
Date: Wed, 14 Jan 2026 09:30:00 +0100
Message-ID: <nested@nuovapromo.it>
MIME-Version: 1.0
Content-Type: multipart/mixed; boundary="outer"

--outer
Content-Type: multipart/alternative; boundary="inner"

--inner
Content-Type: text/plain; charset="utf-8"

Plain offer text
--inner
Content-Type: text/html; charset="utf-8"

<p>HTML offer text</p>
--inner--

--outer
Content-Type: application/pdf
Content-Disposition: attachment; filename="catalog.pdf"
Content-Transfer-Encoding: base64

JVBERi0xLjQ=
--outer
Content-Type: multipart/mixed; boundary="deep"

--deep
Content-Type: image/png
Content-Disposition: ATTACHMENT; filename=logo.png; size=4
Content-Transfer-Encoding: base64

iVBORw==
--deep--

--outer--
"""

HTML_ONLY_EMAIL = b"""From: News <news@example.org>
Subject: =?utf-8?q?Caf=C3=A9_news?=
Date: Thu, 15 Jan 2026 08:00:00 +0000
Message-ID: <html@example.org>
MIME-Version: 1.0
Content-Type: multipart/related; boundary="rel"

--rel
Content-Type: text/html; charset="iso-8859-1"
Content-Transfer-Encoding: quoted-printable

<p>Caf=E9</p>
--rel
Content-Type: image/gif
Content-Disposition: inline

R0lGODlh
--rel--
"""

NO_SUBJECT_EMAIL = b"""From: Sender <sender@example.com>
Date: Tue, 13 Jan 2026 10:00:00 +0000
Message-ID: <nosubject@example.com>

Body without subject.
"""


def make_record(raw: bytes, seq: int = 1) -> dict:
    return {b"SEQ": seq, b"BODY[]": raw}


def make_message(
    *,
    subject: str = "Hello",
    from_addr: str = "friend@gmail.com",
    date: str = "Tue, 13 Jan 2026 10:00:00 +0000",
    message_id: str | None = "<1@x>",
    content: str | None = "Hi there",
) -> Message:
    return Message(
        subject=subject,
        from_addr=from_addr,
        date=date,
        message_id=message_id,
        content=content,
    )


class FakeSession:
    """
    In-memory stand-in for MailSession.

    folders maps folder name -> {message_id: uid}. A successful move
    relocates the Message-ID, so moving the same message again from the
    source folder is not found.
    """

    def __init__(self, folders: dict[str, dict[str, int]] | None = None) -> None:
        self.folders = folders if folders is not None else {"INBOX": {}}
        self.calls: list[tuple] = []
        self.selected: str | None = None
        self.state = SessionState.AUTHENTICATED
        self.fail_move = False

    def select(self, mailbox: str) -> MailboxInfo:
        self.calls.append(("select", mailbox))
        self.selected = mailbox
        self.state = SessionState.SELECTED
        return MailboxInfo(name=mailbox, exists=len(self.folders.get(mailbox, {})))

    def fetch(self, message_range: str, parts: list[str]) -> list[dict]:
        self.calls.append(("fetch", message_range))
        return []

    def _lookup(self, criteria: list) -> list[int]:
        uid = self.folders.get(self.selected, {}).get(criteria[-1])
        return [uid] if uid is not None else []

    def search(self, criteria: list) -> list[int]:
        self.calls.append(("search", tuple(criteria)))
        return self._lookup(criteria)

    def uid_search(self, criteria: list) -> list[int]:
        self.calls.append(("uid_search", tuple(criteria)))
        return self._lookup(criteria)

    def move(self, uid: int, target_folder: str) -> None:
        self.calls.append(("move", uid, target_folder))
        if self.fail_move:
            raise ProtocolError("UID MOVE failed: NO [TRYCREATE]")
        source = self.folders[self.selected]
        message_id = next(mid for mid, u in source.items() if u == uid)
        del source[message_id]
        self.folders.setdefault(target_folder, {})[message_id] = uid

    def store_flag(self, uid: int, flag: bytes) -> None:
        self.calls.append(("store_flag", uid, flag))

    def expunge(self) -> None:
        self.calls.append(("expunge",))

    def list_folders(self, pattern: str = "*") -> list[str]:
        self.calls.append(("list_folders", pattern))
        return list(self.folders)

    def logout(self) -> None:
        self.calls.append(("logout",))
        self.state = SessionState.LOGGED_OUT

    def commands(self, name: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == name]


def fake_session_factory(session: FakeSession):
    """Session factory returning session and recording the connect call."""

    def factory(host: str, port: int, username: str, password: str) -> FakeSession:
        session.calls.append(("connect", host, port, username))
        return session

    return factory

BAD_ENCODED_WORD_EMAIL = b"""From: Sender <sender@example.com>
Subject: =?utf-8?b?a?=
Date: Tue, 13 Jan 2026 10:00:00 +0000
Message-ID: <badword@example.com>

Body.
"""

EIGHT_BIT_FILENAME_EMAIL = (
    b"From: Billing <billing@example.it>\r\n"
    b"Subject: Fattura\r\n"
    b"Date: Tue, 13 Jan 2026 10:00:00 +0000\r\n"
    b"Message-ID: <fattura@example.it>\r\n"
    b"MIME-Version: 1.0\r\n"
    b'Content-Type: multipart/mixed; boundary="b"\r\n'
    b"\r\n"
    b"--b\r\n"
    b"Content-Type: text/plain\r\n"
    b"\r\n"
    b"In allegato la fattura.\r\n"
    b"--b\r\n"
    b"Content-Type: application/pdf\r\n"
    b'Content-Disposition: attachment; filename="fattura_n\xc2\xb01.pdf"\r\n'
    b"Content-Transfer-Encoding: base64\r\n"
    b"\r\n"
    b"JVBERi0xLjQ=\r\n"
    b"--b--\r\n"
)

FOLDED_HEADERS_EMAIL = (
    b"From: Sender <sender@example.com>\r\n"
    b"Subject: Weekly\r\n"
    b" digest\r\n"
    b"Date: Tue, 13 Jan 2026 10:00:00 +0000\r\n"
    b"Message-ID:\r\n"
    b" <1@x>\r\n"
    b"\r\n"
    b"Body.\r\n"
)

"""
IMAP Session Orchestrator
=========================

One authenticated, strictly sequential IMAP session.

States: DISCONNECTED -> CONNECTED -> AUTHENTICATED -> SELECTED -> LOGGED_OUT.
Every command is issued and awaited before the next one; a session handle
must not be shared between threads.

Sequence-number commands (fetch, search) and UID commands (uid_search,
store_flag, move) run on the same connection by toggling imapclient's
use_uid for the duration of the call.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from imapclient import IMAPClient
from imapclient.exceptions import IMAPClientError

from contracts import (
    AuthFailedError,
    ConnectionFailedError,
    MailboxInfo,
    Message,
    NotConnectedError,
    ProtocolError,
    SessionState,
)
from mail_triage.extractor import extract_batch

logger = logging.getLogger("mail-triage.session")

# BODY.PEEK leaves the \Seen flag untouched
HEADERS_AND_BODY = ["BODY.PEEK[]"]
HEADERS_AND_TEXT = ["BODY.PEEK[HEADER]", "BODY.PEEK[TEXT]"]

_AUTHENTICATED_STATES = (SessionState.AUTHENTICATED, SessionState.SELECTED)


def message_range(total_messages: int, count: int) -> str | None:
    """
    Sequence range of the `count` most recent messages.

    Returns None for an empty mailbox, where no valid range exists.
    """
    if total_messages <= 0 or count <= 0:
        return None
    start = total_messages - count + 1 if total_messages > count else 1
    return f"{start}:{total_messages}"


class MailSession:
    """
    Owned IMAP session handle.

    Use connect_and_authenticate() to obtain an AUTHENTICATED session and
    always finish with logout().
    """

    def __init__(self, host: str, port: int = 993) -> None:
        self._host = host
        self._port = port
        self._client: IMAPClient | None = None
        self._state = SessionState.DISCONNECTED
        self._selected: str | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def selected_mailbox(self) -> str | None:
        return self._selected

    @classmethod
    def connect_and_authenticate(
        cls, host: str, port: int, username: str, password: str
    ) -> MailSession:
        """
        Open a TLS connection and log in.

        POST: Returned session is AUTHENTICATED

        ERRORS:
        - ConnectionFailedError: TCP or TLS setup failed
        - AuthFailedError: server rejected the credentials
        """
        session = cls(host, port)
        session.connect()
        session.login(username, password)
        return session

    def connect(self) -> None:
        if self._state is not SessionState.DISCONNECTED:
            raise NotConnectedError(f"Cannot connect from state {self._state.name}")
        try:
            # ssl=True validates the server certificate against the system CAs
            self._client = IMAPClient(self._host, port=self._port, ssl=True)
        except Exception as e:
            raise ConnectionFailedError(
                f"Failed to connect to {self._host}:{self._port}: {e}"
            ) from e

        self._state = SessionState.CONNECTED
        logger.info(f"Connected to {self._host}:{self._port}")

    def login(self, username: str, password: str) -> None:
        client = self._require(SessionState.CONNECTED)
        try:
            client.login(username, password)
        except Exception as e:
            self._shutdown()
            raise AuthFailedError(f"Authentication failed for {username}: {e}") from e

        self._state = SessionState.AUTHENTICATED
        logger.info(f"Logged in as {username}")

    def _require(self, *states: SessionState) -> IMAPClient:
        if self._client is None or self._state not in states:
            raise NotConnectedError(
                f"Command not allowed in session state {self._state.name}"
            )
        return self._client

    def _require_authenticated(self) -> IMAPClient:
        return self._require(*_AUTHENTICATED_STATES)

    def _require_selected(self) -> IMAPClient:
        return self._require(SessionState.SELECTED)

    @contextmanager
    def _command(self, name: str, use_uid: bool) -> Iterator[IMAPClient]:
        """Run one command in the requested addressing mode, mapping failures."""
        client = self._client
        client.use_uid = use_uid
        try:
            yield client
        except (IMAPClientError, OSError) as e:
            raise ProtocolError(f"{name} failed: {e}") from e
        finally:
            client.use_uid = True

    def select(self, mailbox: str) -> MailboxInfo:
        """
        Select mailbox, even when it is already selected.

        ERRORS:
        - ProtocolError: mailbox does not exist or SELECT was rejected
        """
        self._require_authenticated()
        try:
            with self._command("SELECT", use_uid=True) as client:
                response = client.select_folder(mailbox)
        except ProtocolError:
            # a failed SELECT leaves no mailbox selected
            self._state = SessionState.AUTHENTICATED
            self._selected = None
            raise

        self._state = SessionState.SELECTED
        self._selected = mailbox
        info = MailboxInfo(
            name=mailbox,
            exists=int(response.get(b"EXISTS", 0)),
            uidvalidity=int(response.get(b"UIDVALIDITY", 0)),
        )
        logger.info(f"{mailbox} selected ({info.exists} messages)")
        return info

    def fetch(self, message_range: str, parts: list[str]) -> list[dict]:
        """Fetch a sequence range; records are ordered by sequence number."""
        self._require_selected()
        with self._command("FETCH", use_uid=False) as client:
            response = client.fetch(message_range, parts)
        return [response[seq] for seq in sorted(response)]

    def search(self, criteria: list) -> list[int]:
        """Plain SEARCH, returning sequence numbers."""
        self._require_selected()
        with self._command("SEARCH", use_uid=False) as client:
            return list(client.search(criteria))

    def uid_search(self, criteria: list) -> list[int]:
        """UID SEARCH, returning unique ids."""
        self._require_selected()
        with self._command("UID SEARCH", use_uid=True) as client:
            return list(client.search(criteria))

    def store_flag(self, uid: int, flag: bytes) -> None:
        self._require_selected()
        with self._command("UID STORE", use_uid=True) as client:
            client.add_flags([uid], [flag])

    def expunge(self) -> None:
        self._require_selected()
        with self._command("EXPUNGE", use_uid=True) as client:
            client.expunge()

    def move(self, uid: int, target_folder: str) -> None:
        self._require_selected()
        with self._command("UID MOVE", use_uid=True) as client:
            client.move([uid], target_folder)

    def list_folders(self, pattern: str = "*") -> list[str]:
        self._require_authenticated()
        with self._command("LIST", use_uid=True) as client:
            folders = client.list_folders(pattern=pattern)
        return [name for _flags, _delimiter, name in folders]

    def logout(self) -> None:
        """Log out. Safe to call from any state; LOGGED_OUT is terminal."""
        if self._state in (SessionState.DISCONNECTED, SessionState.LOGGED_OUT):
            self._state = SessionState.LOGGED_OUT
            return
        try:
            self._client.logout()
        except (IMAPClientError, OSError) as e:
            logger.warning(f"Logout failed: {e}")
        finally:
            self._client = None
            self._selected = None
            self._state = SessionState.LOGGED_OUT
        logger.info(f"Logged out from {self._host}")

    def _shutdown(self) -> None:
        try:
            self._client.shutdown()
        except (IMAPClientError, OSError):
            pass
        finally:
            self._client = None
            self._state = SessionState.DISCONNECTED


def fetch_messages(
    session: MailSession,
    mailbox: str,
    count: int,
    parts: list[str] = HEADERS_AND_BODY,
) -> list[Message]:
    """
    Fetch and extract the `count` most recent messages of mailbox.

    POST: An empty mailbox yields an empty list without issuing FETCH
    POST: Unparseable records are dropped from the result
    """
    info = session.select(mailbox)
    fetch_range = message_range(info.exists, count)
    if fetch_range is None:
        logger.info(f"{mailbox} is empty, nothing to fetch")
        return []

    records = session.fetch(fetch_range, parts)
    messages = extract_batch(records)
    logger.info(f"Fetched {len(messages)} messages from {mailbox} ({fetch_range})")
    return messages

"""
Mail Triage Contract
====================

Behavioral contract for the mailbox triage core: the domain types that
flow between the session, the extractor, the rule matcher and the action
executor, the error taxonomy, and the structural protocols of the
collaborators the core talks to.

AUTHORITY: This file is the SINGLE authoritative source for domain types and
errors. Import them through the `contracts` package index.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Protocol, runtime_checkable


# =============================================================================
# DOMAIN TYPES
# =============================================================================

class SessionState(Enum):
    """Lifecycle of one IMAP session. LOGGED_OUT is terminal."""
    DISCONNECTED = auto()
    CONNECTED = auto()
    AUTHENTICATED = auto()
    SELECTED = auto()
    LOGGED_OUT = auto()


@dataclass(frozen=True)
class Attachment:
    """A MIME part whose Content-Disposition marks it as an attachment."""
    filename: str
    content_type: str
    size: int
    content: bytes


@dataclass(frozen=True)
class Message:
    """
    One fetched message, built once per raw record and never mutated.

    A missing message_id disables every action targeting this message.
    """
    subject: str
    from_addr: str
    date: str  # Date header, RFC 2822 normal form when parseable
    to: str | None = None
    cc: str | None = None
    bcc: str | None = None
    reply_to: str | None = None
    message_id: str | None = None
    content_type: str | None = None
    content: str | None = None
    attachments: tuple[Attachment, ...] = ()


@dataclass(frozen=True)
class Rule:
    """
    Declarative move rule.

    Each pattern list is None when absent. An absent list never matches;
    a present list matches when any of its patterns is found in the field.
    """
    target_folder: str
    from_patterns: tuple[str, ...] | None = None
    title_patterns: tuple[str, ...] | None = None
    body_patterns: tuple[str, ...] | None = None


@dataclass(frozen=True)
class RulesConfig:
    """Batch size plus the ordered rule list, loaded once per run."""
    messages_to_check: int
    rules: tuple[Rule, ...] = ()


@dataclass(frozen=True)
class SpamFilterSettings:
    """Pattern lists of the implicit spam rule."""
    from_regular_expressions: tuple[str, ...] = ()
    title_regular_expressions: tuple[str, ...] = ()
    body_regular_expressions: tuple[str, ...] = ()


@dataclass(frozen=True)
class MailboxInfo:
    """Metadata returned by SELECT."""
    name: str
    exists: int
    uidvalidity: int = 0


@dataclass(frozen=True)
class Credentials:
    """Login identity and secret, held in memory only."""
    username: str
    password: str = field(repr=False)


# =============================================================================
# ERROR TYPES
# =============================================================================

class TriageError(Exception):
    """Base error for all mail triage operations."""
    code: str = "TRIAGE_ERROR"


class ConnectionFailedError(TriageError):
    """
    Transport or TLS setup failed.

    RECOVERY: Fatal to the run. The next scheduled run tries again.
    """
    code = "CONNECTION_FAILED"


class AuthFailedError(TriageError):
    """
    The server rejected the credentials.

    RECOVERY: Fatal to the run. Stored credentials must be updated.
    """
    code = "AUTH_FAILED"


class NotConnectedError(TriageError):
    """
    A command was issued in a session state that does not allow it.

    RECOVERY: Caller bug. Propagates.
    """
    code = "NOT_CONNECTED"


class ProtocolError(TriageError):
    """
    A command was rejected or the connection failed mid-command.

    RECOVERY: Logged; the affected message or action is skipped and the
    run continues.
    """
    code = "PROTOCOL_ERROR"


class NotFoundError(TriageError):
    """
    No message with the given Message-ID exists in the searched folder.

    RECOVERY: Logged and skipped. Expected when two rules target the same
    message and the first one already moved it.
    """
    code = "NOT_FOUND"


class ParseError(TriageError):
    """
    A fetched record could not be turned into a Message.

    RECOVERY: The record is dropped from the batch, not retried.
    """
    code = "PARSE_ERROR"


class ConfigError(TriageError):
    """
    A settings or rule source is missing or malformed.

    RECOVERY: Fatal. Raised before any network activity.
    """
    code = "CONFIG_ERROR"


class CredentialError(TriageError):
    """
    The credential cache could not be read, decrypted or written.

    RECOVERY: Fatal. Run `mail-triage forget-password` and re-enter it.
    """
    code = "CREDENTIAL_ERROR"


# =============================================================================
# COLLABORATOR CONTRACTS
# =============================================================================

@runtime_checkable
class CredentialProvider(Protocol):
    """
    Source of the account password.

    PRE: identity is the configured login name
    POST: Returns Credentials whose username equals identity

    ERRORS:
    - CREDENTIAL_ERROR: secret could not be produced
    """

    def get_credentials(self, identity: str) -> Credentials:
        """Return credentials for identity."""
        ...


@runtime_checkable
class MailSessionContract(Protocol):
    """
    Sequential IMAP session used by the action executor and the run
    coordinator.

    Commands are issued and awaited one at a time. Mailbox commands require
    a prior select; select is re-issued even when the mailbox is already
    selected.

    ERRORS:
    - NOT_CONNECTED: command issued in the wrong session state
    - PROTOCOL_ERROR: server rejected the command or the connection dropped
    """

    @property
    def state(self) -> SessionState:
        ...

    def select(self, mailbox: str) -> MailboxInfo:
        ...

    def fetch(self, message_range: str, parts: list[str]) -> list[dict]:
        ...

    def search(self, criteria: list) -> list[int]:
        ...

    def uid_search(self, criteria: list) -> list[int]:
        ...

    def store_flag(self, uid: int, flag: bytes) -> None:
        ...

    def expunge(self) -> None:
        ...

    def move(self, uid: int, target_folder: str) -> None:
        ...

    def list_folders(self, pattern: str = "*") -> list[str]:
        ...

    def logout(self) -> None:
        ...

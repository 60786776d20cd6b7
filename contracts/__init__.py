"""
Mail Triage Contract Index
==========================

AUTHORITY: This file is the SINGLE authoritative entrypoint for all
mail triage contracts. Import from here, not from individual contract files.
"""

from contracts.triage_contract import (
    # Domain Types
    Attachment,
    AuthFailedError,
    ConfigError,
    ConnectionFailedError,
    CredentialError,
    CredentialProvider,
    Credentials,
    MailboxInfo,
    MailSessionContract,
    Message,
    NotConnectedError,
    NotFoundError,
    ParseError,
    ProtocolError,
    Rule,
    RulesConfig,
    SessionState,
    SpamFilterSettings,
    # Error Types
    TriageError,
)

__all__ = [
    # Domain Types
    "SessionState",
    "Attachment",
    "Message",
    "Rule",
    "RulesConfig",
    "SpamFilterSettings",
    "MailboxInfo",
    "Credentials",
    # Error Types
    "TriageError",
    "ConnectionFailedError",
    "AuthFailedError",
    "NotConnectedError",
    "ProtocolError",
    "NotFoundError",
    "ParseError",
    "ConfigError",
    "CredentialError",
    # Contracts
    "CredentialProvider",
    "MailSessionContract",
]

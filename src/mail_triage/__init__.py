"""
Mail Triage
===========

Periodic IMAP mailbox triage: fetch the most recent messages, match them
against declarative regex rules and move or delete the matches.
"""

__version__ = "0.1.0"

from mail_triage.credentials import EncryptedCredentialCache, StaticCredentialProvider
from mail_triage.rules import CompiledRule, compile_rule, matches
from mail_triage.runner import RunReport, apply_rules, spam_filter
from mail_triage.session import MailSession, fetch_messages, message_range

__all__ = [
    "MailSession",
    "fetch_messages",
    "message_range",
    "CompiledRule",
    "compile_rule",
    "matches",
    "RunReport",
    "apply_rules",
    "spam_filter",
    "EncryptedCredentialCache",
    "StaticCredentialProvider",
]

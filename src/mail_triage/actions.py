"""
Action Executor
===============

Resolves a Message-ID to a UID inside a folder and moves or deletes the
message.

Actions are not transactional. A failure after the UID was resolved leaves
the message where it was; ProtocolError and NotFoundError propagate to the
caller, which logs and continues with the next candidate.
"""

from __future__ import annotations

import logging

from imapclient import DELETED

from contracts import MailSessionContract, NotFoundError
from mail_triage.config import DEFAULT_SPAM_FOLDER, INBOX

logger = logging.getLogger("mail-triage.actions")


def message_id_criteria(message_id: str) -> list[str]:
    return ["HEADER", "Message-ID", message_id]


def _resolve_uid(session: MailSessionContract, message_id: str, folder: str) -> int:
    uids = session.uid_search(message_id_criteria(message_id))
    if not uids:
        raise NotFoundError(f"Message {message_id} not found in {folder}")
    return uids[0]


def move(
    session: MailSessionContract,
    message_id: str,
    source_folder: str,
    target_folder: str,
) -> int:
    """
    Move the message with message_id from source_folder to target_folder.

    The plain SEARCH is an existence check; the UID SEARCH that follows
    resolves the id used by UID MOVE.

    POST: Returns the UID the message had in source_folder

    ERRORS:
    - NotFoundError: no message with that Message-ID in source_folder
    - ProtocolError: SELECT, SEARCH or MOVE was rejected
    """
    session.select(source_folder)

    criteria = message_id_criteria(message_id)
    if not session.search(criteria):
        raise NotFoundError(f"Message {message_id} not found in {source_folder}")

    uid = _resolve_uid(session, message_id, source_folder)
    session.move(uid, target_folder)
    logger.info(f"Moved {message_id} (uid {uid}) from {source_folder} to {target_folder}")
    return uid


def delete(session: MailSessionContract, message_id: str, folder: str) -> int:
    """
    Flag the message with message_id as deleted and expunge folder.

    ERRORS:
    - NotFoundError: no message with that Message-ID in folder
    - ProtocolError: SELECT, SEARCH, STORE or EXPUNGE was rejected
    """
    session.select(folder)
    uid = _resolve_uid(session, message_id, folder)
    session.store_flag(uid, DELETED)
    session.expunge()
    logger.info(f"Deleted {message_id} (uid {uid}) from {folder}")
    return uid


def move_to_spam(
    session: MailSessionContract,
    message_id: str,
    spam_folder: str = DEFAULT_SPAM_FOLDER,
    source_folder: str = INBOX,
) -> int:
    return move(session, message_id, source_folder, spam_folder)

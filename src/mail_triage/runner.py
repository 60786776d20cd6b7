"""
Run Coordinator
===============

Drives one triage run: authenticate, fetch the most recent batch, evaluate
every (message, rule) pair, move the matches, log out.

Connection and authentication failures abort the run. Per-message failures
(missing Message-ID, NotFoundError, ProtocolError) are logged and the run
continues with the next pair.

The Scheduler invokes runs periodically with an immutable Settings snapshot.
All jobs share one RunGuard so two sessions never race on the mailbox.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable

from contracts import (
    CredentialProvider,
    Message,
    NotFoundError,
    ProtocolError,
    RulesConfig,
    SpamFilterSettings,
)
from mail_triage import actions
from mail_triage.config import INBOX, Settings
from mail_triage.rules import CompiledRule, compile_rules, matching_pairs, spam_rule
from mail_triage.session import HEADERS_AND_BODY, MailSession, fetch_messages

logger = logging.getLogger("mail-triage.runner")

SessionFactory = Callable[[str, int, str, str], MailSession]


@dataclass(frozen=True)
class RunReport:
    """Outcome counters of one run."""
    fetched: int = 0
    matched: int = 0
    moved: int = 0
    skipped: int = 0
    failed: int = 0


def open_session(
    settings: Settings,
    credential_provider: CredentialProvider,
    session_factory: SessionFactory = MailSession.connect_and_authenticate,
) -> MailSession:
    """Authenticate a new session for the configured account."""
    credentials = credential_provider.get_credentials(settings.imap.username)
    return session_factory(
        settings.imap.server,
        settings.imap.port,
        credentials.username,
        credentials.password,
    )


def execute_moves(
    session: MailSession,
    messages: list[Message],
    rules: list[CompiledRule],
    source_folder: str = INBOX,
) -> RunReport:
    """Move every message matching a rule, in message-major rule order."""
    pairs = matching_pairs(messages, rules)
    moved = skipped = failed = 0

    for message, rule in pairs:
        logger.info(f"The message {message.subject!r} is matching, trying to move it")
        if message.message_id is None:
            logger.warning(
                f"Skipping {message.subject!r}: cannot move a message without Message-ID"
            )
            skipped += 1
            continue

        try:
            actions.move(session, message.message_id, source_folder, rule.target_folder)
            moved += 1
        except NotFoundError as e:
            logger.warning(f"Failed to move message: {e}")
            failed += 1
        except ProtocolError as e:
            logger.error(f"Failed to move message {message.message_id}: {e}")
            failed += 1

    return RunReport(
        fetched=len(messages),
        matched=len(pairs),
        moved=moved,
        skipped=skipped,
        failed=failed,
    )


def _run(
    name: str,
    settings: Settings,
    credential_provider: CredentialProvider,
    rules: list[CompiledRule],
    count: int,
    session_factory: SessionFactory,
) -> RunReport:
    logger.info(f"{name} running")
    session = open_session(settings, credential_provider, session_factory)
    try:
        messages = fetch_messages(session, INBOX, count)
        report = execute_moves(session, messages, rules)
    finally:
        session.logout()

    logger.info(
        f"{name} finished: {report.fetched} fetched, {report.matched} matched, "
        f"{report.moved} moved, {report.skipped} skipped, {report.failed} failed"
    )
    return report


def apply_rules(
    settings: Settings,
    rules_config: RulesConfig,
    credential_provider: CredentialProvider,
    session_factory: SessionFactory = MailSession.connect_and_authenticate,
) -> RunReport:
    """
    Apply the move rules to the most recent INBOX messages.

    ERRORS:
    - ConnectionFailedError, AuthFailedError: run aborted
    - ProtocolError: SELECT or FETCH of the batch failed, run aborted
    - ConfigError: a rule pattern does not compile (before connecting)
    """
    rules = compile_rules(rules_config)
    return _run(
        "Rule application",
        settings,
        credential_provider,
        rules,
        rules_config.messages_to_check,
        session_factory,
    )


def spam_filter(
    settings: Settings,
    spam_settings: SpamFilterSettings,
    credential_provider: CredentialProvider,
    session_factory: SessionFactory = MailSession.connect_and_authenticate,
) -> RunReport:
    """Move recent INBOX messages matching the spam patterns to the spam folder."""
    rule = spam_rule(spam_settings, settings.spam_filter.folder)
    return _run(
        "Spam filter",
        settings,
        credential_provider,
        [rule],
        settings.spam_filter.messages_to_check,
        session_factory,
    )


def fetch_mailbox(
    settings: Settings,
    credential_provider: CredentialProvider,
    folder: str = INBOX,
    count: int = 10,
    session_factory: SessionFactory = MailSession.connect_and_authenticate,
    parts: list[str] = HEADERS_AND_BODY,
) -> list[Message]:
    """Fetch the most recent messages of folder in an independent session."""
    session = open_session(settings, credential_provider, session_factory)
    try:
        return fetch_messages(session, folder, count, parts)
    finally:
        session.logout()


class RunGuard:
    """Single-permit, non-blocking run-in-progress guard."""

    def __init__(self) -> None:
        self._lock = threading.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def run_if_idle(self, name: str, job: Callable[[], object]) -> bool:
        """Run job unless another run holds the guard. Returns whether it ran."""
        if not self._lock.acquire(blocking=False):
            logger.warning(f"{name} skipped: previous run still in progress")
            return False
        try:
            job()
        finally:
            self._lock.release()
        return True


@dataclass(frozen=True)
class PeriodicJob:
    name: str
    interval_seconds: float
    run: Callable[[], object]


class Scheduler:
    """
    Runs each job on its own daemon thread at a fixed interval.

    The first run of every job happens one interval after start(). A job
    raising an exception is logged and rescheduled.
    """

    def __init__(self, jobs: list[PeriodicJob], guard: RunGuard | None = None) -> None:
        self._jobs = list(jobs)
        self._guard = guard or RunGuard()
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []

    @property
    def guard(self) -> RunGuard:
        return self._guard

    def start(self) -> None:
        for job in self._jobs:
            thread = threading.Thread(
                target=self._loop, args=(job,), name=f"job-{job.name}", daemon=True
            )
            thread.start()
            self._threads.append(thread)
            logger.info(f"Scheduled {job.name} every {job.interval_seconds} seconds")

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        for thread in self._threads:
            thread.join(timeout)
        self._threads = []

    def run_forever(self) -> None:
        """Start the jobs and block until interrupted."""
        self.start()
        try:
            while not self._stop.wait(1.0):
                pass
        except KeyboardInterrupt:
            logger.info("Shutting down gracefully...")
        finally:
            self.stop()

    def run_job_once(self, job: PeriodicJob) -> bool:
        try:
            return self._guard.run_if_idle(job.name, job.run)
        except Exception:
            logger.exception(f"{job.name} failed")
            return False

    def _loop(self, job: PeriodicJob) -> None:
        while not self._stop.wait(job.interval_seconds):
            self.run_job_once(job)

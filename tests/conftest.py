"""
Shared test fixtures for mail triage tests.
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from mail_triage.config import (
    ImapConfig,
    MailMoverConfig,
    ServerConfig,
    Settings,
    SpamFilterConfig,
)
from mail_triage.credentials import StaticCredentialProvider


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings snapshot whose rule files live in tmp_path."""
    return Settings(
        imap=ImapConfig(server="imap.example.com", username="me@example.com", port=993),
        mail_mover=MailMoverConfig(
            interval_seconds=60, rules_file=tmp_path / "email_move_rules.yaml"
        ),
        spam_filter=SpamFilterConfig(
            settings_file=tmp_path / "spam_filter_settings.yaml",
            interval_seconds=120,
            folder="Spam",
            messages_to_check=10,
        ),
        server=ServerConfig(host="127.0.0.1", port=3000),
        credentials_dir=tmp_path / "credentials",
    )


@pytest.fixture
def credential_provider():
    return StaticCredentialProvider("secret123")


@pytest.fixture
def mock_imap_client():
    """Mock IMAPClient for testing without real IMAP server."""
    with patch("mail_triage.session.IMAPClient") as mock:
        client = MagicMock()
        mock.return_value = client

        client.select_folder.return_value = {b"EXISTS": 20, b"UIDVALIDITY": 12345}
        client.search.return_value = [100]
        client.fetch.return_value = {}
        client.list_folders.return_value = [
            ([], b"/", "INBOX"),
            ([], b"/", "Spam"),
            ([], b"/", "Promotions"),
        ]

        yield mock

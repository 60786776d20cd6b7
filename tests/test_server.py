"""
Mailbox Query Service Tests
===========================

The MCP tool handlers, each run against an in-memory session. Every
handler opens its own session and logs out before returning.
"""

import json
import logging
from unittest.mock import patch

import anyio
import pytest

from contracts import NotFoundError
from mail_triage.server import MailTriageServer, create_server
from mail_triage.session import HEADERS_AND_BODY
from tests.helpers import FakeSession, fake_session_factory, make_message


@pytest.fixture
def session():
    return FakeSession({"INBOX": {"<1@x>": 1}, "Spam": {}, "Archive": {"<9@x>": 9}})


@pytest.fixture
def server(settings, credential_provider, session):
    return create_server(settings, credential_provider, fake_session_factory(session))


class TestMailboxFetch:

    def test_newest_first(self, server, session):
        messages = [
            make_message(subject="older", date="Tue, 13 Jan 2026 10:00:00 +0000"),
            make_message(subject="newer", date="Thu, 15 Jan 2026 10:00:00 +0000"),
        ]

        with patch("mail_triage.runner.fetch_messages", return_value=messages) as fetch:
            result = server.mailbox_fetch(folder="Archive", count=2)

        fetch.assert_called_once_with(session, "Archive", 2, HEADERS_AND_BODY)
        assert [m.subject for m in result] == ["newer", "older"]
        assert session.calls[-1] == ("logout",)

    def test_result_serializes_with_from_key(self, server):
        with patch("mail_triage.runner.fetch_messages", return_value=[make_message()]):
            result = server.mailbox_fetch()

        decoded = json.loads(server._serialize_result(result))
        assert decoded[0]["from"] == "friend@gmail.com"


class TestMailboxListFolders:

    def test_lists_folders(self, server, session):
        assert server.mailbox_list_folders() == {"folders": ["INBOX", "Spam", "Archive"]}
        assert session.commands("list_folders") == [("list_folders", "*")]
        assert session.calls[-1] == ("logout",)


class TestMailboxMoveToSpam:

    def test_moves_to_configured_spam_folder(self, server, session):
        result = server.mailbox_move_to_spam(message_id="<1@x>")

        assert result == {"moved": "<1@x>", "uid": 1, "folder": "Spam"}
        assert session.folders["Spam"] == {"<1@x>": 1}

    def test_unknown_message_logs_out(self, server, session):
        with pytest.raises(NotFoundError):
            server.mailbox_move_to_spam(message_id="<missing@x>")
        assert session.calls[-1] == ("logout",)


class TestMailboxDelete:

    def test_deletes_from_folder(self, server, session):
        result = server.mailbox_delete(message_id="<9@x>", folder="Archive")

        assert result == {"deleted": "<9@x>", "uid": 9, "folder": "Archive"}
        assert session.commands("expunge") == [("expunge",)]


class TestMailboxApplyRules:

    def test_reports_run(self, server, settings, session):
        settings.mail_mover.rules_file.write_text(
            "messages_to_check: 5\n"
            "rules:\n"
            "  - rule:\n"
            "      target_folder: Archive\n"
            "      title: ['Hello']\n",
            encoding="utf-8",
        )

        with patch("mail_triage.runner.fetch_messages", return_value=[make_message()]):
            report = server.mailbox_apply_rules()

        assert report == {"fetched": 1, "matched": 1, "moved": 1, "skipped": 0, "failed": 0}
        assert session.folders["Archive"]["<1@x>"] == 1


class TestServer:

    def test_unknown_transport(self, server):
        with pytest.raises(ValueError, match="carrier-pigeon"):
            anyio.run(server.run, "carrier-pigeon")

    def test_no_credentials_logged(self, server, caplog):
        with caplog.at_level(logging.DEBUG, logger="mail-triage"):
            server.mailbox_move_to_spam(message_id="<1@x>")

        assert "secret123" not in caplog.text

    def test_no_send_capability(self):
        assert not any("send" in name for name in dir(MailTriageServer))

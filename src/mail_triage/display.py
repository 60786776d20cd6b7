"""
Message Presentation
====================

JSON rendering of fetched messages for the CLI and the query service.
Attachment content is rendered as base64 text.
"""

from __future__ import annotations

import base64
import email.utils
import json
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any

from contracts import Message

SEPARATOR = "---"


def parse_date(value: str) -> datetime | None:
    """Parse an RFC 2822 Date header; None when unparseable."""
    try:
        parsed = email.utils.parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def sort_newest_first(messages: list[Message]) -> list[Message]:
    """
    Order messages by Date header, newest first.

    Messages with an unparseable date keep their relative order after all
    parseable ones.
    """
    dated = []
    undated = []
    for message in messages:
        parsed = parse_date(message.date)
        if parsed is None:
            undated.append(message)
        else:
            dated.append((parsed, message))

    dated.sort(key=lambda pair: pair[0], reverse=True)
    return [message for _, message in dated] + undated


def message_to_dict(message: Message) -> dict[str, Any]:
    data = {
        ("from" if key == "from_addr" else key): value
        for key, value in asdict(message).items()
    }
    data["attachments"] = [
        {
            "filename": attachment.filename,
            "content_type": attachment.content_type,
            "size": attachment.size,
            "content": base64.b64encode(attachment.content).decode("ascii"),
        }
        for attachment in message.attachments
    ]
    return data


def render_messages(messages: list[Message]) -> str:
    """One pretty JSON document per message, separated by `---` lines."""
    blocks = []
    for message in messages:
        blocks.append(json.dumps(message_to_dict(message), indent=2))
        blocks.append(SEPARATOR)
    return "\n".join(blocks)

"""
Message Extractor
=================

Turns one raw IMAP fetch record into a Message. MIME parsing is delegated
to the standard `email` package with the modern policy, which unfolds
headers, decodes RFC 2047 words and records malformed headers as defects
instead of raising; this module only walks the parsed tree.

Walking rules:
- body text: pre-order depth-first, first part whose content type starts
  with `text/`, no concatenation of further text parts
- attachments: full depth-first traversal, every part whose
  Content-Disposition contains `attachment`, at any depth

Bodies and attachments are never logged.
"""

from __future__ import annotations

import email
import email.message
import logging
import re
from email import policy
from email.errors import HeaderParseError, MessageError
from email.header import decode_header
from typing import Iterator

from contracts import Attachment, Message, ParseError

logger = logging.getLogger("mail-triage.extractor")

UNNAMED_ATTACHMENT = "unnamed_attachment"
DEFAULT_CONTENT_TYPE = "text/plain"
FALLBACK_CHARSETS = ("utf-8", "iso-8859-1")

# imapclient keys the message bytes by the data item the server echoed back
RAW_BODY_KEYS = (b"BODY[]", b"RFC822", "BODY[]", "RFC822")
HEADER_KEY = b"BODY[HEADER]"
TEXT_KEY = b"BODY[TEXT]"

_LINE_BREAKS = re.compile(r"\r?\n")


def _as_bytes(raw) -> bytes:
    return raw if isinstance(raw, bytes) else str(raw).encode("utf-8")


def _raw_bytes(raw_record: dict) -> bytes:
    for key in RAW_BODY_KEYS:
        raw = raw_record.get(key)
        if raw:
            return _as_bytes(raw)

    # BODY.PEEK[HEADER] + BODY.PEEK[TEXT]; the header section ends with its blank line
    header = raw_record.get(HEADER_KEY)
    if header:
        return _as_bytes(header) + _as_bytes(raw_record.get(TEXT_KEY) or b"")
    raise ParseError("Fetch record carries no message body")


def header_text(value) -> str | None:
    """Header value as one unfolded, trimmed line; None for absent headers."""
    if value is None:
        return None
    return _LINE_BREAKS.sub("", str(value)).strip()


def decode_header_value(value: str | None) -> str | None:
    """Decode RFC 2047 words left in a raw value, keeping malformed ones as-is."""
    if value is None:
        return None

    try:
        fragments = decode_header(str(value))
    except HeaderParseError:
        return header_text(value)

    decoded_parts = []
    for part, charset in fragments:
        if isinstance(part, bytes):
            try:
                decoded_parts.append(part.decode(charset or "utf-8", errors="replace"))
            except LookupError:
                decoded_parts.append(part.decode("utf-8", errors="replace"))
        else:
            decoded_parts.append(part)
    return header_text("".join(decoded_parts))


def first_header(msg: email.message.Message, name: str) -> str | None:
    """First occurrence of a header, matched case-insensitively."""
    return header_text(msg.get(name))


def part_content_type(part: email.message.Message) -> str:
    """Content-Type header of a part, `text/plain` when absent."""
    return header_text(part.get("Content-Type")) or DEFAULT_CONTENT_TYPE


def is_attachment(part: email.message.Message) -> bool:
    return "attachment" in str(part.get("Content-Disposition", "")).lower()


def iter_text_parts(msg: email.message.Message) -> Iterator[email.message.Message]:
    """Text parts in pre-order depth-first order."""
    for part in msg.walk():
        if part_content_type(part).lower().startswith("text/"):
            yield part


def iter_attachment_parts(msg: email.message.Message) -> Iterator[email.message.Message]:
    """Attachment parts in depth-first discovery order."""
    for part in msg.walk():
        if is_attachment(part):
            yield part


def decode_part(part: email.message.Message) -> str:
    """Decode a part's payload using its charset, then common fallbacks."""
    payload = part.get_payload(decode=True)
    if payload is None:
        return ""

    declared = part.get_content_charset()
    charsets = (declared, *FALLBACK_CHARSETS) if declared else FALLBACK_CHARSETS
    for charset in charsets:
        try:
            return payload.decode(charset)
        except (UnicodeDecodeError, LookupError):
            continue
    return payload.decode("utf-8", errors="replace")


def extract_text_content(msg: email.message.Message) -> str | None:
    """Body text of the first text part, or None when the tree has none."""
    for part in iter_text_parts(msg):
        return decode_part(part)
    return None


def parse_filename(disposition) -> str:
    """
    Filename from a Content-Disposition value.

    Takes the text after `filename=` up to the next `;` and trims quotes.
    """
    disposition = header_text(disposition)
    if not disposition or "filename=" not in disposition:
        return UNNAMED_ATTACHMENT

    start = disposition.index("filename=") + len("filename=")
    end = disposition.find(";", start)
    filename = disposition[start:end] if end > 0 else disposition[start:]
    filename = filename.strip().strip("\"'")
    return decode_header_value(filename) or UNNAMED_ATTACHMENT


def extract_attachments(msg: email.message.Message) -> tuple[Attachment, ...]:
    attachments = []
    for part in iter_attachment_parts(msg):
        payload = part.get_payload(decode=True) or b""
        attachments.append(
            Attachment(
                filename=parse_filename(part.get("Content-Disposition")),
                content_type=part_content_type(part),
                size=len(payload),
                content=payload,
            )
        )
    return tuple(attachments)


def _build_message(parsed: email.message.Message) -> Message:
    subject = first_header(parsed, "Subject")
    from_addr = first_header(parsed, "From")
    date = first_header(parsed, "Date")
    if subject is None or from_addr is None or date is None:
        raise ParseError("Cannot parse the message: Subject, From or Date missing")

    return Message(
        subject=subject,
        from_addr=from_addr,
        date=date,
        to=first_header(parsed, "To"),
        cc=first_header(parsed, "Cc"),
        bcc=first_header(parsed, "Bcc"),
        reply_to=first_header(parsed, "Reply-To"),
        message_id=first_header(parsed, "Message-ID"),
        content_type=first_header(parsed, "Content-Type"),
        content=extract_text_content(parsed),
        attachments=extract_attachments(parsed),
    )


def extract(raw_record: dict) -> Message:
    """
    Build a Message from an imapclient fetch record.

    Header values are unfolded and decoded. A parseable Date header comes
    back in RFC 2822 normal form.

    ERRORS:
    - ParseError: no body in the record, Subject/From/Date missing, or the
      message is malformed beyond what the parser tolerates
    """
    raw = _raw_bytes(raw_record)
    try:
        parsed = email.message_from_bytes(raw, policy=policy.default)
        return _build_message(parsed)
    except (MessageError, LookupError, ValueError) as e:
        raise ParseError(f"Cannot parse the message: {e.__class__.__name__}") from e


def extract_batch(raw_records: list[dict]) -> list[Message]:
    """Extract every record, silently dropping the ones that fail to parse."""
    messages = []
    dropped = 0
    for raw_record in raw_records:
        try:
            messages.append(extract(raw_record))
        except ParseError:
            dropped += 1
    if dropped:
        logger.warning(f"Dropped {dropped} unparseable messages from batch")
    return messages

"""
Mailbox Query Service
=====================

MCP server exposing the mailbox as JSON tools.

Every tool invocation opens its own IMAP session and logs out before
returning; nothing is pooled or shared between requests. IMAP work runs in a
worker thread so concurrent requests do not block the event loop.

Message bodies, attachments and credentials are never logged.
"""

from __future__ import annotations

import functools
import json
import logging
from dataclasses import asdict
from typing import Any

import anyio
import uvicorn
from mcp.server import Server
from mcp.server.sse import SseServerTransport
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool
from starlette.applications import Starlette
from starlette.responses import Response
from starlette.routing import Mount, Route

from contracts import CredentialProvider, Message, TriageError
from mail_triage import actions
from mail_triage.config import INBOX, Settings, load_rules_config
from mail_triage.display import message_to_dict, sort_newest_first
from mail_triage.runner import SessionFactory, apply_rules, fetch_mailbox, open_session
from mail_triage.session import MailSession

logger = logging.getLogger("mail-triage.server")

TRANSPORTS = ("stdio", "sse")


class MailTriageServer:
    """MCP server answering mailbox queries with independent sessions."""

    def __init__(
        self,
        settings: Settings,
        credential_provider: CredentialProvider,
        session_factory: SessionFactory = MailSession.connect_and_authenticate,
    ) -> None:
        self._settings = settings
        self._credential_provider = credential_provider
        self._session_factory = session_factory
        self._server = Server("mail-triage")
        self._setup_tools()

    def _setup_tools(self) -> None:
        """Register MCP tools."""

        @self._server.list_tools()
        async def list_tools() -> list[Tool]:
            return [
                Tool(
                    name="mailbox_fetch",
                    description="Fetch the most recent messages of a folder, newest first",
                    inputSchema={
                        "type": "object",
                        "properties": {
                            "folder": {
                                "type": "string",
                                "description": "Folder name (default: INBOX)",
                                "default": INBOX,
                            },
                            "count": {
                                "type": "integer",
                                "description": "Number of most recent messages to fetch",
                                "minimum": 1,
                                "default": 10,
                            },
                        },
                    },
                ),
                Tool(
                    name="mailbox_list_folders",
                    description="List mailbox folders matching a pattern",
                    inputSchema={
                        "type": "object",
                        "properties": {
                            "pattern": {
                                "type": "string",
                                "description": "IMAP LIST pattern (default: *)",
                                "default": "*",
                            },
                        },
                    },
                ),
                Tool(
                    name="mailbox_move_to_spam",
                    description="Move the message with the given Message-ID from INBOX to the spam folder",
                    inputSchema={
                        "type": "object",
                        "properties": {
                            "message_id": {
                                "type": "string",
                                "description": "Message-ID header value, including angle brackets",
                            },
                        },
                        "required": ["message_id"],
                    },
                ),
                Tool(
                    name="mailbox_delete",
                    description="Delete and expunge the message with the given Message-ID",
                    inputSchema={
                        "type": "object",
                        "properties": {
                            "message_id": {
                                "type": "string",
                                "description": "Message-ID header value, including angle brackets",
                            },
                            "folder": {
                                "type": "string",
                                "description": "Folder containing the message (default: INBOX)",
                                "default": INBOX,
                            },
                        },
                        "required": ["message_id"],
                    },
                ),
                Tool(
                    name="mailbox_apply_rules",
                    description="Run the configured move rules once and report the outcome",
                    inputSchema={
                        "type": "object",
                        "properties": {},
                    },
                ),
            ]

        @self._server.call_tool()
        async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
            handlers = {
                "mailbox_fetch": self.mailbox_fetch,
                "mailbox_list_folders": self.mailbox_list_folders,
                "mailbox_move_to_spam": self.mailbox_move_to_spam,
                "mailbox_delete": self.mailbox_delete,
                "mailbox_apply_rules": self.mailbox_apply_rules,
            }
            handler = handlers.get(name)
            if handler is None:
                return [TextContent(type="text", text=f"Unknown tool: {name}")]

            try:
                result = await anyio.to_thread.run_sync(
                    functools.partial(handler, **(arguments or {}))
                )
            except TriageError as e:
                logger.error(f"{name} failed: {e.__class__.__name__}: {e}")
                return [TextContent(type="text", text=f"Error: {e.__class__.__name__}: {e}")]

            return [TextContent(type="text", text=self._serialize_result(result))]

    def mailbox_fetch(self, *, folder: str = INBOX, count: int = 10) -> list[Message]:
        """Most recent `count` messages of folder, sorted newest first."""
        logger.info(f"Fetching {count} messages from {folder}")
        messages = fetch_mailbox(
            self._settings,
            self._credential_provider,
            folder,
            count,
            self._session_factory,
        )
        return sort_newest_first(messages)

    def mailbox_list_folders(self, *, pattern: str = "*") -> dict:
        logger.info("Listing folders")
        session = open_session(self._settings, self._credential_provider, self._session_factory)
        try:
            return {"folders": session.list_folders(pattern)}
        finally:
            session.logout()

    def mailbox_move_to_spam(self, *, message_id: str) -> dict:
        folder = self._settings.spam_filter.folder
        logger.info(f"Moving {message_id} to {folder}")
        session = open_session(self._settings, self._credential_provider, self._session_factory)
        try:
            uid = actions.move_to_spam(session, message_id, folder)
        finally:
            session.logout()
        return {"moved": message_id, "uid": uid, "folder": folder}

    def mailbox_delete(self, *, message_id: str, folder: str = INBOX) -> dict:
        logger.info(f"Deleting {message_id} from {folder}")
        session = open_session(self._settings, self._credential_provider, self._session_factory)
        try:
            uid = actions.delete(session, message_id, folder)
        finally:
            session.logout()
        return {"deleted": message_id, "uid": uid, "folder": folder}

    def mailbox_apply_rules(self) -> dict:
        rules_config = load_rules_config(self._settings.mail_mover.rules_file)
        report = apply_rules(
            self._settings,
            rules_config,
            self._credential_provider,
            self._session_factory,
        )
        return asdict(report)

    def _serialize_result(self, result: Any) -> str:
        """Serialize result to JSON string."""

        def default_serializer(obj: Any) -> Any:
            if isinstance(obj, Message):
                return message_to_dict(obj)
            if hasattr(obj, "__dataclass_fields__"):
                return asdict(obj)
            raise TypeError(f"Cannot serialize {type(obj)}")

        return json.dumps(result, default=default_serializer, indent=2)

    async def run_stdio(self) -> None:
        """Serve over stdin/stdout."""
        async with stdio_server() as (read_stream, write_stream):
            await self._server.run(
                read_stream, write_stream, self._server.create_initialization_options()
            )

    def sse_app(self) -> Starlette:
        """Starlette app serving the MCP SSE transport at /sse."""
        sse = SseServerTransport("/messages/")

        async def handle_sse(request):
            async with sse.connect_sse(
                request.scope, request.receive, request._send
            ) as (read_stream, write_stream):
                await self._server.run(
                    read_stream, write_stream, self._server.create_initialization_options()
                )
            return Response()

        return Starlette(
            routes=[
                Route("/sse", endpoint=handle_sse, methods=["GET"]),
                Mount("/messages/", app=sse.handle_post_message),
            ]
        )

    async def run_sse(self) -> None:
        """Serve over HTTP/SSE on the configured bind address."""
        host, port = self._settings.server.host, self._settings.server.port
        logger.info(f"Server running on http://{host}:{port}/sse")
        config = uvicorn.Config(self.sse_app(), host=host, port=port, log_level="info")
        await uvicorn.Server(config).serve()

    async def run(self, transport: str = "stdio") -> None:
        """Run the MCP server."""
        if transport == "sse":
            await self.run_sse()
        elif transport == "stdio":
            await self.run_stdio()
        else:
            raise ValueError(f"Unknown transport {transport!r}, expected one of {TRANSPORTS}")


def create_server(
    settings: Settings,
    credential_provider: CredentialProvider,
    session_factory: SessionFactory = MailSession.connect_and_authenticate,
) -> MailTriageServer:
    return MailTriageServer(settings, credential_provider, session_factory)

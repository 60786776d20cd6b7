"""Command-line interface for mail-triage."""

from __future__ import annotations

import functools
import logging
import os
import sys
from dataclasses import asdict

import anyio
import click

from contracts import (
    AuthFailedError,
    ConfigError,
    ConnectionFailedError,
    CredentialError,
    CredentialProvider,
    ProtocolError,
)
from mail_triage import __version__
from mail_triage.config import (
    DEFAULT_SETTINGS_FILE,
    INBOX,
    Settings,
    load_rules_config,
    load_settings,
    load_spam_filter_settings,
)
from mail_triage.credentials import EncryptedCredentialCache, StaticCredentialProvider
from mail_triage.display import render_messages, sort_newest_first
from mail_triage.runner import (
    PeriodicJob,
    Scheduler,
    apply_rules,
    fetch_mailbox,
    open_session,
    spam_filter,
)
from mail_triage.server import TRANSPORTS, create_server
from mail_triage.session import HEADERS_AND_BODY, HEADERS_AND_TEXT

logger = logging.getLogger("mail-triage")

ENV_PASSWORD = "MAIL_TRIAGE_PASSWORD"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Fatal before or during startup; reported and mapped to exit status 1
FATAL_ERRORS = (ConfigError, CredentialError, ConnectionFailedError, AuthFailedError, ProtocolError)


def setup_logging(level: str) -> None:
    """Configure logging. Logs go to stderr so stdout stays clean for output."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        stream=sys.stderr,
        force=True,
    )
    logging.getLogger("imapclient").setLevel(logging.WARNING)


def credential_provider_for(settings: Settings) -> CredentialProvider:
    password = os.environ.get(ENV_PASSWORD)
    if password:
        return StaticCredentialProvider(password)
    return EncryptedCredentialCache(settings.credentials_dir)


class Context:
    def __init__(self, settings_path: str) -> None:
        self.settings_path = settings_path
        self._settings: Settings | None = None

    @property
    def settings(self) -> Settings:
        if self._settings is None:
            self._settings = load_settings(self.settings_path)
        return self._settings


pass_context = click.make_pass_decorator(Context)


def fail_on_fatal(func):
    """Log fatal errors and exit with status 1 instead of a traceback."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except FATAL_ERRORS as e:
            logger.error(f"{e.__class__.__name__}: {e}")
            sys.exit(1)

    return wrapper


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--settings",
    "-s",
    "settings_path",
    default=DEFAULT_SETTINGS_FILE,
    show_default=True,
    type=click.Path(dir_okay=False),
    help="Path to settings YAML file",
)
@click.option(
    "--log-level",
    default="INFO",
    show_default=True,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
)
@click.pass_context
def cli(ctx: click.Context, settings_path: str, log_level: str) -> None:
    """Mailbox triage - move and delete messages by pattern rules."""
    setup_logging(log_level)
    ctx.obj = Context(settings_path)


@cli.command()
@pass_context
@fail_on_fatal
def run(ctx: Context) -> None:
    """Run the mail mover and spam filter periodically."""
    settings = ctx.settings
    credentials = credential_provider_for(settings)

    # Validate the rule sources now; later runs reload them
    load_rules_config(settings.mail_mover.rules_file)
    jobs = [
        PeriodicJob(
            name="Rule application",
            interval_seconds=settings.mail_mover.interval_seconds,
            run=lambda: apply_rules(
                settings, load_rules_config(settings.mail_mover.rules_file), credentials
            ),
        )
    ]
    if settings.spam_filter.interval_seconds is not None:
        load_spam_filter_settings(settings.spam_filter.settings_file)
        jobs.append(
            PeriodicJob(
                name="Spam filter",
                interval_seconds=settings.spam_filter.interval_seconds,
                run=lambda: spam_filter(
                    settings,
                    load_spam_filter_settings(settings.spam_filter.settings_file),
                    credentials,
                ),
            )
        )

    # Prompt for the password once, before the job threads start
    credentials.get_credentials(settings.imap.username)
    Scheduler(jobs).run_forever()


@cli.command("apply-rules")
@pass_context
@fail_on_fatal
def apply_rules_command(ctx: Context) -> None:
    """Apply the move rules once."""
    settings = ctx.settings
    rules_config = load_rules_config(settings.mail_mover.rules_file)
    report = apply_rules(settings, rules_config, credential_provider_for(settings))
    click.echo(asdict(report))


@cli.command("spam-filter")
@pass_context
@fail_on_fatal
def spam_filter_command(ctx: Context) -> None:
    """Run the spam filter once."""
    settings = ctx.settings
    spam_settings = load_spam_filter_settings(settings.spam_filter.settings_file)
    report = spam_filter(settings, spam_settings, credential_provider_for(settings))
    click.echo(asdict(report))


@cli.command()
@click.option("--folder", "-f", default=INBOX, show_default=True)
@click.option("--count", "-n", default=10, show_default=True, type=click.IntRange(min=1))
@click.option(
    "--split-fetch",
    is_flag=True,
    help="Fetch header and text sections separately instead of the whole message",
)
@pass_context
@fail_on_fatal
def show(ctx: Context, folder: str, count: int, split_fetch: bool) -> None:
    """Print the most recent messages of a folder as JSON."""
    settings = ctx.settings
    parts = HEADERS_AND_TEXT if split_fetch else HEADERS_AND_BODY
    messages = fetch_mailbox(
        settings, credential_provider_for(settings), folder, count, parts=parts
    )
    click.echo(render_messages(sort_newest_first(messages)))


@cli.command()
@click.option("--pattern", "-p", default="*", show_default=True)
@pass_context
@fail_on_fatal
def folders(ctx: Context, pattern: str) -> None:
    """List mailbox folders."""
    settings = ctx.settings
    session = open_session(settings, credential_provider_for(settings))
    try:
        for name in session.list_folders(pattern):
            click.echo(name)
    finally:
        session.logout()


@cli.command()
@click.option(
    "--transport",
    "-t",
    default="stdio",
    show_default=True,
    type=click.Choice(TRANSPORTS),
)
@pass_context
@fail_on_fatal
def serve(ctx: Context, transport: str) -> None:
    """Serve mailbox queries over MCP."""
    settings = ctx.settings
    server = create_server(settings, credential_provider_for(settings))
    anyio.run(server.run, transport)


@cli.command("forget-password")
@pass_context
@fail_on_fatal
def forget_password(ctx: Context) -> None:
    """Remove the stored encrypted password."""
    EncryptedCredentialCache(ctx.settings.credentials_dir).clear()
    click.echo("Stored password removed")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()

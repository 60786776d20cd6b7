"""
Configuration Loading
=====================

YAML sources for the service settings, the move rules and the spam filter
patterns. All loaders return frozen dataclasses so a run works on an
immutable snapshot. Any missing file or malformed content raises
ConfigError before a connection is attempted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from contracts import ConfigError, Rule, RulesConfig, SpamFilterSettings

logger = logging.getLogger("mail-triage.config")

DEFAULT_SETTINGS_FILE = "settings.yaml"
DEFAULT_RULES_FILE = "email_move_rules.yaml"
DEFAULT_SPAM_FILTER_FILE = "spam_filter_settings.yaml"
DEFAULT_IMAP_PORT = 993
DEFAULT_SPAM_FOLDER = "Spam"
DEFAULT_SPAM_MESSAGES_TO_CHECK = 10
DEFAULT_SERVER_HOST = "127.0.0.1"
DEFAULT_SERVER_PORT = 3000
DEFAULT_CREDENTIALS_DIR = "~/.mail_triage"
INBOX = "INBOX"


@dataclass(frozen=True)
class ImapConfig:
    server: str
    username: str
    port: int = DEFAULT_IMAP_PORT


@dataclass(frozen=True)
class MailMoverConfig:
    interval_seconds: int
    rules_file: Path


@dataclass(frozen=True)
class SpamFilterConfig:
    settings_file: Path
    interval_seconds: int | None = None
    folder: str = DEFAULT_SPAM_FOLDER
    messages_to_check: int = DEFAULT_SPAM_MESSAGES_TO_CHECK


@dataclass(frozen=True)
class ServerConfig:
    host: str = DEFAULT_SERVER_HOST
    port: int = DEFAULT_SERVER_PORT


@dataclass(frozen=True)
class Settings:
    """Immutable snapshot of settings.yaml, shared by every scheduled run."""
    imap: ImapConfig
    mail_mover: MailMoverConfig
    spam_filter: SpamFilterConfig
    server: ServerConfig = field(default_factory=ServerConfig)
    credentials_dir: Path = Path(DEFAULT_CREDENTIALS_DIR).expanduser()


def _read_yaml(path: str | Path) -> Any:
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"Configuration file not found: {path}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read configuration file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e


def _section(data: dict, name: str, source: str, required: bool = True) -> dict:
    value = data.get(name)
    if value is None:
        if required:
            raise ConfigError(f"{source}: missing section '{name}'")
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"{source}: section '{name}' must be a mapping")
    return value


def _string(data: dict, key: str, source: str, default: str | None = None) -> str:
    value = data.get(key, default)
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"{source}: '{key}' must be a non-empty string")
    return value.strip()


def _positive_int(data: dict, key: str, source: str, default: int | None = None) -> int:
    value = data.get(key, default)
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigError(f"{source}: '{key}' must be a positive integer")
    return value


def _resolve(base_dir: Path, raw: str) -> Path:
    path = Path(raw).expanduser()
    return path if path.is_absolute() else base_dir / path


def load_settings(path: str | Path = DEFAULT_SETTINGS_FILE) -> Settings:
    """
    Load settings.yaml.

    POST: Relative rule file paths are resolved against the settings file's
          directory

    ERRORS:
    - ConfigError: file missing, invalid YAML, or invalid values
    """
    path = Path(path)
    source = str(path)
    data = _read_yaml(path)
    if not isinstance(data, dict):
        raise ConfigError(f"{source}: top level must be a mapping")

    base_dir = path.parent
    imap = _section(data, "imap", source)
    mover = _section(data, "mail_mover", source)
    spam = _section(data, "spam_filter", source, required=False)
    server = _section(data, "server", source, required=False)
    credentials = _section(data, "credentials", source, required=False)

    spam_interval = None
    if "check_interval" in spam:
        spam_interval = _positive_int(spam, "check_interval", f"{source}: spam_filter")

    settings = Settings(
        imap=ImapConfig(
            server=_string(imap, "server", f"{source}: imap"),
            username=_string(imap, "username", f"{source}: imap"),
            port=_positive_int(imap, "port", f"{source}: imap", DEFAULT_IMAP_PORT),
        ),
        mail_mover=MailMoverConfig(
            interval_seconds=_positive_int(mover, "check_interval", f"{source}: mail_mover"),
            rules_file=_resolve(
                base_dir,
                _string(mover, "rules_file", f"{source}: mail_mover", DEFAULT_RULES_FILE),
            ),
        ),
        spam_filter=SpamFilterConfig(
            settings_file=_resolve(
                base_dir,
                _string(spam, "settings_file", f"{source}: spam_filter", DEFAULT_SPAM_FILTER_FILE),
            ),
            interval_seconds=spam_interval,
            folder=_string(spam, "folder", f"{source}: spam_filter", DEFAULT_SPAM_FOLDER),
            messages_to_check=_positive_int(
                spam,
                "messages_to_check",
                f"{source}: spam_filter",
                DEFAULT_SPAM_MESSAGES_TO_CHECK,
            ),
        ),
        server=ServerConfig(
            host=_string(server, "host", f"{source}: server", DEFAULT_SERVER_HOST),
            port=_positive_int(server, "port", f"{source}: server", DEFAULT_SERVER_PORT),
        ),
        credentials_dir=_resolve(
            base_dir,
            _string(credentials, "directory", f"{source}: credentials", DEFAULT_CREDENTIALS_DIR),
        ),
    )
    logger.debug(f"Loaded settings from {path}")
    return settings


def _pattern_list(data: dict, key: str, source: str) -> tuple[str, ...] | None:
    if key not in data or data[key] is None:
        return None
    value = data[key]
    if not isinstance(value, list) or not all(isinstance(p, str) for p in value):
        raise ConfigError(f"{source}: '{key}' must be a list of strings")
    return tuple(value)


def parse_rule(raw: Any, source: str) -> Rule:
    """Parse one rule, accepting both `{rule: {...}}` and the bare mapping."""
    if isinstance(raw, dict) and set(raw) == {"rule"}:
        raw = raw["rule"]
    if not isinstance(raw, dict):
        raise ConfigError(f"{source}: rule must be a mapping")

    return Rule(
        target_folder=_string(raw, "target_folder", source),
        from_patterns=_pattern_list(raw, "from", source),
        title_patterns=_pattern_list(raw, "title", source),
        body_patterns=_pattern_list(raw, "body", source),
    )


def load_rules_config(path: str | Path) -> RulesConfig:
    """
    Load the move rules file.

    ERRORS:
    - ConfigError: file missing, invalid YAML, or invalid rule structure
    """
    source = str(path)
    data = _read_yaml(path)
    if not isinstance(data, dict):
        raise ConfigError(f"{source}: top level must be a mapping")

    raw_rules = data.get("rules") or []
    if not isinstance(raw_rules, list):
        raise ConfigError(f"{source}: 'rules' must be a list")

    rules = tuple(
        parse_rule(raw, f"{source}: rules[{index}]") for index, raw in enumerate(raw_rules)
    )
    config = RulesConfig(
        messages_to_check=_positive_int(data, "messages_to_check", source),
        rules=rules,
    )
    logger.info(f"Loaded {len(rules)} rules from {path}")
    return config


def load_spam_filter_settings(path: str | Path) -> SpamFilterSettings:
    """
    Load the spam filter patterns file. A missing key means an empty list.

    ERRORS:
    - ConfigError: file missing, invalid YAML, or a key is not a string list
    """
    source = str(path)
    data = _read_yaml(path)
    if not isinstance(data, dict):
        raise ConfigError(f"{source}: top level must be a mapping")

    return SpamFilterSettings(
        from_regular_expressions=_pattern_list(data, "from_regular_expressions", source) or (),
        title_regular_expressions=_pattern_list(data, "title_regular_expressions", source) or (),
        body_regular_expressions=_pattern_list(data, "body_regular_expressions", source) or (),
    )

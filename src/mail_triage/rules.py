"""
Rule Matcher
============

Pure evaluation of declarative rules against messages.

A rule matches when any present category (from / title / body) has any
pattern found by an unanchored `re.search` in the corresponding field.
Absent categories never match, so a rule without patterns matches nothing.
A message without extracted body text never matches body patterns.

Patterns are compiled once per rule, at load time, and reused across the
whole message batch.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from contracts import ConfigError, Message, Rule, RulesConfig, SpamFilterSettings

logger = logging.getLogger("mail-triage.rules")

Patterns = tuple[re.Pattern[str], ...]


@dataclass(frozen=True)
class CompiledRule:
    """A Rule with its pattern lists compiled. None keeps the category absent."""
    rule: Rule
    from_patterns: Patterns | None = None
    title_patterns: Patterns | None = None
    body_patterns: Patterns | None = None

    @property
    def target_folder(self) -> str:
        return self.rule.target_folder


def _compile_patterns(patterns: tuple[str, ...] | None, category: str) -> Patterns | None:
    if patterns is None:
        return None

    compiled = []
    for pattern in patterns:
        try:
            compiled.append(re.compile(pattern))
        except re.error as e:
            raise ConfigError(f"Invalid {category} pattern {pattern!r}: {e}") from e
    return tuple(compiled)


def compile_rule(rule: Rule) -> CompiledRule:
    """
    Compile a rule's patterns.

    ERRORS:
    - ConfigError: a pattern is not a valid regular expression
    """
    return CompiledRule(
        rule=rule,
        from_patterns=_compile_patterns(rule.from_patterns, "from"),
        title_patterns=_compile_patterns(rule.title_patterns, "title"),
        body_patterns=_compile_patterns(rule.body_patterns, "body"),
    )


def compile_rules(rules_config: RulesConfig) -> list[CompiledRule]:
    return [compile_rule(rule) for rule in rules_config.rules]


def spam_rule(settings: SpamFilterSettings, folder: str) -> CompiledRule:
    """The implicit spam rule: the three pattern lists, targeting folder."""
    return compile_rule(
        Rule(
            target_folder=folder,
            from_patterns=tuple(settings.from_regular_expressions),
            title_patterns=tuple(settings.title_regular_expressions),
            body_patterns=tuple(settings.body_regular_expressions),
        )
    )


def _any_match(value: str | None, patterns: Patterns | None, category: str) -> bool:
    if patterns is None or value is None:
        return False
    for pattern in patterns:
        if pattern.search(value):
            # never log the field value itself
            logger.debug(f"{category} pattern {pattern.pattern!r} matched")
            return True
    return False


def matches(message: Message, rule: Rule | CompiledRule) -> bool:
    """True if any present pattern category of rule matches message."""
    if isinstance(rule, Rule):
        rule = compile_rule(rule)

    return (
        _any_match(message.from_addr, rule.from_patterns, "from")
        or _any_match(message.subject, rule.title_patterns, "title")
        or _any_match(message.content, rule.body_patterns, "body")
    )


def matching_pairs(
    messages: list[Message], rules: list[CompiledRule]
) -> list[tuple[Message, CompiledRule]]:
    """
    Matching (message, rule) pairs of the cross product.

    Ordered message-major, then by rule declaration order. Rules are not
    exclusive: a message may appear once per matching rule.
    """
    return [
        (message, rule)
        for message in messages
        for rule in rules
        if matches(message, rule)
    ]

"""
Rule Matcher Tests
==================

Any present category with any matching pattern makes the rule match;
absent categories never match.
"""

import pytest

from contracts import ConfigError, Rule, RulesConfig, SpamFilterSettings
from mail_triage.rules import (
    compile_rule,
    compile_rules,
    matches,
    matching_pairs,
    spam_rule,
)
from tests.helpers import make_message


class TestMatches:

    def test_from_pattern_matches_address_suffix(self):
        rule = Rule(target_folder="Promotions", from_patterns=(r"nuovapromo\.it$",))
        message = make_message(from_addr="support@nw.nuovapromo.it")

        assert matches(message, rule)

    def test_anchored_pattern_respects_display_name_brackets(self):
        rule = Rule(target_folder="Promotions", from_patterns=(r"nuovapromo\.it$",))
        message = make_message(from_addr="Shop <support@nw.nuovapromo.it>")

        assert not matches(message, rule)

    def test_unanchored_pattern_matches_anywhere(self):
        rule = Rule(target_folder="Promotions", from_patterns=(r"nuovapromo",))
        message = make_message(from_addr="Shop <support@nw.nuovapromo.it>")

        assert matches(message, rule)

    def test_title_pattern(self):
        rule = Rule(target_folder="Receipts", title_patterns=(r"(?i)your (order|receipt)",))

        assert matches(make_message(subject="Your Order #42 has shipped"), rule)
        assert not matches(make_message(subject="Weekly digest"), rule)

    def test_body_pattern(self):
        rule = Rule(target_folder="Travel", body_patterns=(r"boarding pass",))

        assert matches(make_message(content="Here is your boarding pass."), rule)

    def test_any_category_is_enough(self):
        rule = Rule(
            target_folder="Travel",
            from_patterns=(r"@booking\.com",),
            body_patterns=(r"boarding pass",),
        )
        message = make_message(from_addr="friend@gmail.com", content="boarding pass attached")

        assert matches(message, rule)

    def test_any_pattern_in_list_is_enough(self):
        rule = Rule(target_folder="X", from_patterns=(r"nomatch", r"gmail\.com$"))

        assert matches(make_message(from_addr="friend@gmail.com"), rule)

    def test_rule_without_categories_matches_nothing(self):
        rule = Rule(target_folder="Nowhere")

        assert not matches(make_message(), rule)

    def test_empty_pattern_lists_match_nothing(self):
        rule = Rule(target_folder="X", from_patterns=(), title_patterns=(), body_patterns=())

        assert not matches(make_message(), rule)

    def test_body_pattern_against_missing_content(self):
        rule = Rule(target_folder="X", body_patterns=(r".*",))

        assert not matches(make_message(content=None), rule)

    def test_compiled_rule_is_accepted(self):
        compiled = compile_rule(Rule(target_folder="X", title_patterns=(r"Hello",)))

        assert matches(make_message(subject="Hello"), compiled)
        assert compiled.target_folder == "X"


class TestCompile:

    def test_invalid_pattern_is_config_error(self):
        with pytest.raises(ConfigError, match="title"):
            compile_rule(Rule(target_folder="X", title_patterns=(r"(unclosed",)))

    def test_absent_category_stays_absent(self):
        compiled = compile_rule(Rule(target_folder="X", from_patterns=(r"a",)))

        assert compiled.title_patterns is None
        assert compiled.body_patterns is None
        assert len(compiled.from_patterns) == 1

    def test_compile_rules_keeps_declaration_order(self):
        config = RulesConfig(
            messages_to_check=5,
            rules=(Rule(target_folder="A"), Rule(target_folder="B")),
        )

        assert [r.target_folder for r in compile_rules(config)] == ["A", "B"]

    def test_spam_rule_targets_spam_folder(self):
        settings = SpamFilterSettings(from_regular_expressions=(r"spam\.example\.com>?$",))
        rule = spam_rule(settings, "Junk")

        assert rule.target_folder == "Junk"
        assert matches(make_message(from_addr="Win <a@spam.example.com>"), rule)
        assert not matches(make_message(from_addr="friend@gmail.com"), rule)


class TestMatchingPairs:

    def test_message_major_then_rule_order(self):
        first = make_message(subject="alpha", message_id="<1@x>")
        second = make_message(subject="beta", message_id="<2@x>")
        everything = compile_rule(Rule(target_folder="All", title_patterns=(r".",)))
        betas = compile_rule(Rule(target_folder="Betas", title_patterns=(r"beta",)))

        pairs = matching_pairs([first, second], [everything, betas])

        assert [(m.subject, r.target_folder) for m, r in pairs] == [
            ("alpha", "All"),
            ("beta", "All"),
            ("beta", "Betas"),
        ]

    def test_no_rules_no_pairs(self):
        assert matching_pairs([make_message()], []) == []

"""Tests for moderation heuristics and warning counters."""

import asyncio

import pytest

from community_bot import ModerationCounter, ModerationRules, is_violation
from community_bot.moderation import DEFAULT_BAD_WORDS, contains_bad_word, is_spam


class TestHeuristics:
    def test_bad_word_is_case_insensitive(self):
        assert contains_bad_word("this has BADWORD1 in it", DEFAULT_BAD_WORDS)
        assert not contains_bad_word("perfectly fine", DEFAULT_BAD_WORDS)
        assert not contains_bad_word(None, DEFAULT_BAD_WORDS)

    def test_mentions_over_limit(self):
        assert is_spam("hi", mention_count=6)
        assert not is_spam("hi", mention_count=5)

    def test_links_over_limit(self):
        three = "http://a https://b http://c"
        assert not is_spam(three)
        assert is_spam(three + " https://d")

    def test_repeated_characters(self):
        assert is_spam("a" * 15)
        assert not is_spam("a" * 14)

    def test_custom_rules(self):
        rules = ModerationRules.from_words(["Spoiler", " ", ""])
        assert rules.bad_words == ("spoiler",)
        assert is_violation("no SPOILERS please", rules=rules)
        assert not is_violation("badword1", rules=rules)

    def test_empty_word_list_falls_back_to_defaults(self):
        assert ModerationRules.from_words([]).bad_words == DEFAULT_BAD_WORDS


class TestModerationCounter:
    @pytest.mark.asyncio
    async def test_record_violation_counts_up(self, storage):
        counter = ModerationCounter(storage)

        assert await counter.record_violation("g1", "u1") == 1
        assert await counter.record_violation("g1", "u1") == 2
        assert await counter.record_violation("g1", "u1") == 3
        assert counter.warnings_for("g1", "u1") == 3
        assert counter.warnings_for("g2", "u1") == 0

    @pytest.mark.asyncio
    async def test_concurrent_violations_are_not_lost(self, storage):
        counter = ModerationCounter(storage)
        results = await asyncio.gather(
            *(counter.record_violation("g1", "u1") for _ in range(10))
        )
        assert sorted(results) == list(range(1, 11))

    @pytest.mark.asyncio
    async def test_check_message(self, storage):
        counter = ModerationCounter(storage)

        assert await counter.check_message("hello there", "g1", "u1") is None
        assert await counter.check_message("badword2!", "g1", "u1") == 1
        assert await counter.check_message("hey", "g1", "u1", mention_count=9) == 2
        assert counter.warnings_for("g1", "u1") == 2

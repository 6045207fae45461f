from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass

from .locks import KeyedLock
from .storage import CommunityStorage

log = logging.getLogger("community-moderation")

DEFAULT_BAD_WORDS: tuple[str, ...] = ("badword1", "badword2")
MAX_MENTIONS = 5
MAX_LINKS = 3

_LINK_PATTERN = re.compile(r"https?://")
_REPEAT_PATTERN = re.compile(r"(.)\1{14,}")


@dataclass(frozen=True, slots=True)
class ModerationRules:
    bad_words: tuple[str, ...] = DEFAULT_BAD_WORDS
    max_mentions: int = MAX_MENTIONS
    max_links: int = MAX_LINKS

    @classmethod
    def from_words(cls, words: Iterable[str]) -> ModerationRules:
        cleaned = tuple(w.strip().lower() for w in words if w and w.strip())
        return cls(bad_words=cleaned or DEFAULT_BAD_WORDS)


def contains_bad_word(text: str | None, bad_words: Iterable[str]) -> bool:
    if not text:
        return False
    lowered = text.lower()
    return any(word.lower() in lowered for word in bad_words)


def is_spam(text: str | None, mention_count: int = 0, rules: ModerationRules | None = None) -> bool:
    rules = rules or ModerationRules()
    if mention_count > rules.max_mentions:
        return True
    if not text:
        return False
    if len(_LINK_PATTERN.findall(text)) > rules.max_links:
        return True
    return bool(_REPEAT_PATTERN.search(text))


def is_violation(
    text: str | None, mention_count: int = 0, rules: ModerationRules | None = None
) -> bool:
    rules = rules or ModerationRules()
    return contains_bad_word(text, rules.bad_words) or is_spam(text, mention_count, rules)


class ModerationCounter:
    """Per-member warning counters. Counting only; no escalation."""

    def __init__(self, storage: CommunityStorage, rules: ModerationRules | None = None) -> None:
        self._storage = storage
        self.rules = rules or ModerationRules()
        self._locks = KeyedLock()

    async def record_violation(self, guild_id: str, user_id: str) -> int:
        async with self._locks.hold((guild_id, user_id)):
            count = self._storage.increment_warning(guild_id, user_id)
        log.info("Warning #%s recorded for %s in guild %s", count, user_id, guild_id)
        return count

    async def check_message(
        self, content: str | None, guild_id: str, user_id: str, *, mention_count: int = 0
    ) -> int | None:
        """Return the updated warning count if the message violates the rules."""
        if not is_violation(content, mention_count, self.rules):
            return None
        return await self.record_violation(guild_id, user_id)

    def warnings_for(self, guild_id: str, user_id: str) -> int:
        return self._storage.get_warning_count(guild_id, user_id)


__all__ = [
    "DEFAULT_BAD_WORDS",
    "ModerationCounter",
    "ModerationRules",
    "contains_bad_word",
    "is_spam",
    "is_violation",
]

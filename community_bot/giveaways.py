"""Giveaway lifecycle: creation, timed completion, winner draw and resumption.

Deadlines are durable (``ends_at`` is persisted with every giveaway) while the
timers that act on them are ordinary in-process asyncio tasks. Nothing about
a timer is ever written to the store; ``resume_all`` rebuilds them from the
persisted deadlines on every start.

``complete`` is the only path that ends a giveaway. It is idempotent, so a
manual end racing the timer, or a timer rebuilt for a giveaway that was
already drawn, is harmless.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import random
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol

from .errors import ExternalServiceError
from .event_log import EventLog
from .locks import KeyedLock
from .models import Giveaway, utc_now
from .storage import CommunityStorage

log = logging.getLogger("community-giveaways")


class Announcer(Protocol):
    async def post_announcement(
        self, channel_id: str, content: str, *, interactive: bool = False
    ) -> str:
        """Post ``content`` to a channel and return the new message id.

        ``interactive`` asks for the giveaway entry button to be attached.
        Raises ``ExternalServiceError`` when the post fails.
        """
        ...


class CompletionStatus(enum.Enum):
    COMPLETED = "completed"
    ALREADY_ENDED = "already_ended"
    NOT_FOUND = "not_found"


@dataclass(frozen=True, slots=True)
class CompletionResult:
    status: CompletionStatus
    giveaway: Giveaway | None = None

    @property
    def winners(self) -> list[str]:
        if self.giveaway is None:
            return []
        return list(self.giveaway.winners)


def draw_winners(
    participants: Iterable[str], winner_count: int, rng: random.Random
) -> list[str]:
    """Pick ``min(winner_count, len(participants))`` distinct winners.

    Sampling is without replacement, so every subset of that size is equally
    likely. The pool is sorted first so a seeded ``rng`` gives a repeatable
    draw regardless of set iteration order.
    """
    pool = sorted(set(participants))
    return rng.sample(pool, min(winner_count, len(pool)))


def format_start_announcement(prize: str, winner_count: int, ends_at: datetime) -> str:
    ts = int(ends_at.timestamp())
    noun = "winner" if winner_count == 1 else "winners"
    return (
        f"🎉 **GIVEAWAY** 🎉\n"
        f"Prize: **{prize}**\n"
        f"{winner_count} {noun} | Ends <t:{ts}:F> (<t:{ts}:R>)\n"
        f"Click the button below to enter!"
    )


def format_result_announcement(giveaway: Giveaway) -> str:
    if not giveaway.winners:
        return f"Giveaway for **{giveaway.prize}** ended: no participants."
    mentions = ", ".join(f"<@{user_id}>" for user_id in giveaway.winners)
    return f"🎉 Giveaway for **{giveaway.prize}** ended! Winners: {mentions}"


class GiveawayScheduler:
    def __init__(
        self,
        storage: CommunityStorage,
        announcer: Announcer,
        *,
        event_log: EventLog | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._storage = storage
        self._announcer = announcer
        self._event_log = event_log
        self._rng = rng or random.SystemRandom()
        self._clock = clock
        self._locks = KeyedLock()
        self._timers: dict[str, asyncio.Task[None]] = {}

    @property
    def pending_timers(self) -> set[str]:
        return {mid for mid, task in self._timers.items() if not task.done()}

    def _record(self, type_: str, payload: dict[str, object]) -> None:
        if self._event_log is not None:
            self._event_log.append(type_, payload)

    # ----- creation and participation -----
    async def start(
        self,
        guild_id: str,
        channel_id: str,
        duration_seconds: float,
        winner_count: int,
        prize: str,
    ) -> Giveaway:
        if duration_seconds <= 0:
            raise ValueError("Duration must be positive")
        if winner_count < 1:
            raise ValueError("Winner count must be at least 1")
        prize = prize.strip()
        if not prize:
            raise ValueError("Prize cannot be empty")

        now = self._clock()
        try:
            ends_at = now + timedelta(seconds=duration_seconds)
        except OverflowError as exc:
            raise ValueError("Duration is too long") from exc
        message_id = await self._announcer.post_announcement(
            channel_id,
            format_start_announcement(prize, winner_count, ends_at),
            interactive=True,
        )
        giveaway = Giveaway(
            message_id=str(message_id),
            channel_id=channel_id,
            guild_id=guild_id,
            prize=prize,
            winner_count=winner_count,
            ends_at=ends_at,
        )
        self._storage.save_giveaway(giveaway)
        self._record(
            "giveaway.start",
            {
                "guild": guild_id,
                "channel": channel_id,
                "messageId": giveaway.message_id,
                "prize": prize,
                "winners": winner_count,
                "endsAt": ends_at.isoformat(),
            },
        )
        log.info(
            "Started giveaway %s for %r ending %s",
            giveaway.message_id,
            prize,
            ends_at.isoformat(),
        )
        self._schedule(giveaway, now)
        return giveaway

    def get(self, message_id: str) -> Giveaway | None:
        return self._storage.get_giveaway(message_id)

    def open_giveaways(self) -> list[Giveaway]:
        return [g for g in self._storage.list_giveaways() if not g.ended]

    async def register_participant(self, message_id: str, user_id: str) -> bool:
        """Add ``user_id`` to an open giveaway. Returns False when nothing changed."""
        async with self._locks.hold(message_id):
            giveaway = self._storage.get_giveaway(message_id)
            if giveaway is None or giveaway.ended or user_id in giveaway.participants:
                return False
            giveaway.participants.add(user_id)
            self._storage.save_giveaway(giveaway)
            return True

    async def leave_participant(self, message_id: str, user_id: str) -> bool:
        async with self._locks.hold(message_id):
            giveaway = self._storage.get_giveaway(message_id)
            if (
                giveaway is None
                or giveaway.ended
                or user_id not in giveaway.participants
            ):
                return False
            giveaway.participants.discard(user_id)
            self._storage.save_giveaway(giveaway)
            return True

    async def toggle_participant(self, message_id: str, user_id: str) -> bool | None:
        """Enter or withdraw. Returns True if entered, False if withdrawn,
        None if the giveaway is unknown or closed."""
        async with self._locks.hold(message_id):
            giveaway = self._storage.get_giveaway(message_id)
            if giveaway is None or giveaway.ended:
                return None
            if user_id in giveaway.participants:
                giveaway.participants.discard(user_id)
                entered = False
            else:
                giveaway.participants.add(user_id)
                entered = True
            self._storage.save_giveaway(giveaway)
            return entered

    # ----- completion -----
    async def complete(
        self, message_id: str, channel_id: str | None = None
    ) -> CompletionResult:
        """End a giveaway and draw its winners, at most once.

        The state transition is decided and persisted under the per-giveaway
        lock; the announcement is posted afterwards so a slow or failing post
        never holds the lock or undoes the transition. ``channel_id`` is only
        used when the stored record carries no channel.
        """
        async with self._locks.hold(message_id):
            giveaway = self._storage.get_giveaway(message_id)
            if giveaway is None:
                log.info("Ignoring end request for unknown giveaway %s", message_id)
                return CompletionResult(CompletionStatus.NOT_FOUND)
            if giveaway.ended:
                log.debug("Giveaway %s already ended", message_id)
                return CompletionResult(CompletionStatus.ALREADY_ENDED, giveaway)

            giveaway.winners = draw_winners(
                giveaway.participants, giveaway.winner_count, self._rng
            )
            giveaway.ended = True
            self._storage.save_giveaway(giveaway)

        self._record(
            "giveaway.end",
            {
                "guild": giveaway.guild_id,
                "channel": giveaway.channel_id,
                "messageId": message_id,
                "participants": len(giveaway.participants),
                "winners": list(giveaway.winners),
            },
        )
        log.info(
            "Giveaway %s ended with %s winner(s) from %s participant(s)",
            message_id,
            len(giveaway.winners),
            len(giveaway.participants),
        )

        target = giveaway.channel_id or channel_id
        if target:
            try:
                await self._announcer.post_announcement(
                    target, format_result_announcement(giveaway)
                )
            except ExternalServiceError as exc:
                log.warning("Failed to announce result of giveaway %s: %s", message_id, exc)
                self._record(
                    "giveaway.announce_failed",
                    {"messageId": message_id, "error": str(exc)},
                )
        return CompletionResult(CompletionStatus.COMPLETED, giveaway)

    # ----- timers -----
    def _schedule(self, giveaway: Giveaway, now: datetime) -> None:
        existing = self._timers.get(giveaway.message_id)
        if existing is not None and not existing.done():
            log.debug("Timer for giveaway %s already running", giveaway.message_id)
            return
        delay = giveaway.remaining_seconds(now)
        task = asyncio.create_task(
            self._fire_after(giveaway.message_id, giveaway.channel_id, delay),
            name=f"giveaway-end-{giveaway.message_id}",
        )
        self._timers[giveaway.message_id] = task
        task.add_done_callback(
            lambda done, mid=giveaway.message_id: self._forget_timer(mid, done)
        )

    def _forget_timer(self, message_id: str, task: asyncio.Task[None]) -> None:
        if self._timers.get(message_id) is task:
            del self._timers[message_id]

    async def _fire_after(self, message_id: str, channel_id: str, delay: float) -> None:
        await asyncio.sleep(delay)
        try:
            await self.complete(message_id, channel_id)
        except Exception as exc:  # pylint: disable=broad-except
            log.exception("Timed completion of giveaway %s failed: %s", message_id, exc)

    async def resume_all(self) -> int:
        """Rebuild timers for every open giveaway after a restart.

        Giveaways whose deadline passed while the process was down are
        completed immediately. Returns how many open giveaways were handled.
        """
        now = self._clock()
        handled = 0
        for giveaway in self._storage.list_giveaways():
            if giveaway.ended:
                continue
            handled += 1
            if giveaway.is_due(now):
                log.info("Catching up on overdue giveaway %s", giveaway.message_id)
                await self.complete(giveaway.message_id, giveaway.channel_id)
            else:
                self._schedule(giveaway, now)
        if handled:
            log.info("Resumed %s open giveaway(s)", handled)
        return handled

    async def close(self) -> None:
        tasks = [task for task in self._timers.values() if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._timers.clear()


__all__ = [
    "Announcer",
    "CompletionResult",
    "CompletionStatus",
    "GiveawayScheduler",
    "draw_winners",
    "format_result_announcement",
    "format_start_announcement",
]

"""Invite attribution.

The platform does not say which invite a new member used, so attribution is
inferred by diffing the guild's invite usage table against the snapshot
taken after the previous join. This is best effort: the table is read at two
different times with no transactional guarantee in between, and two members
joining in the same window through different invites can be attributed to
the wrong invite or the wrong joiner. When several invites show an increase
the first one in the platform's order wins.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable

from .errors import ExternalServiceError
from .event_log import EventLog
from .locks import KeyedLock
from .models import InviteUsage
from .storage import CommunityStorage

log = logging.getLogger("community-invites")

InviteFetcher = Callable[[str], Awaitable[list[InviteUsage]]]


class InviteSnapshotCache:
    """Last known ``code -> uses`` table per guild."""

    def __init__(self) -> None:
        self._snapshots: dict[str, dict[str, int]] = {}

    def get(self, guild_id: str) -> dict[str, int] | None:
        snapshot = self._snapshots.get(guild_id)
        return dict(snapshot) if snapshot is not None else None

    def replace(self, guild_id: str, invites: Iterable[InviteUsage]) -> dict[str, int]:
        snapshot = {invite.code: invite.uses for invite in invites}
        self._snapshots[guild_id] = snapshot
        return dict(snapshot)

    def record_created(self, guild_id: str, code: str, uses: int = 0) -> None:
        # without a baseline there is nothing to keep consistent yet
        snapshot = self._snapshots.get(guild_id)
        if snapshot is not None:
            snapshot[code] = uses

    def record_deleted(self, guild_id: str, code: str) -> None:
        snapshot = self._snapshots.get(guild_id)
        if snapshot is not None:
            snapshot.pop(code, None)

    def forget(self, guild_id: str) -> None:
        self._snapshots.pop(guild_id, None)

    def __contains__(self, guild_id: object) -> bool:
        return guild_id in self._snapshots

    def __len__(self) -> int:
        return len(self._snapshots)


def find_used_invite(
    invites: list[InviteUsage], cached: dict[str, int] | None
) -> InviteUsage | None:
    """Return the invite whose use count went up since ``cached``.

    With no cached baseline, fall back to the first invite that has been
    used at all.
    """
    if cached is None:
        return next((invite for invite in invites if invite.uses > 0), None)
    for invite in invites:
        if invite.uses > cached.get(invite.code, 0):
            return invite
    return None


class InviteReconciler:
    def __init__(
        self,
        storage: CommunityStorage,
        fetch_invites: InviteFetcher,
        *,
        cache: InviteSnapshotCache | None = None,
        event_log: EventLog | None = None,
    ) -> None:
        self._storage = storage
        self._fetch_invites = fetch_invites
        self.cache = cache if cache is not None else InviteSnapshotCache()
        self._event_log = event_log
        self._locks = KeyedLock()

    async def refresh_snapshot(self, guild_id: str) -> bool:
        try:
            invites = await self._fetch_invites(guild_id)
        except ExternalServiceError as exc:
            log.warning("Could not cache invites for guild %s: %s", guild_id, exc)
            return False
        self.cache.replace(guild_id, invites)
        if self._event_log is not None:
            self._event_log.append("invites.cache", {"guild": guild_id, "count": len(invites)})
        return True

    async def refresh_all(self, guild_ids: Iterable[str]) -> int:
        refreshed = 0
        for guild_id in guild_ids:
            if await self.refresh_snapshot(guild_id):
                refreshed += 1
        return refreshed

    async def on_join(self, guild_id: str, user_id: str) -> str | None:
        """Attribute a join to an inviter and credit them once.

        Returns the inviter id, or None when no invite could be identified
        or the invite table could not be fetched.
        """
        try:
            invites = await self._fetch_invites(guild_id)
        except ExternalServiceError as exc:
            log.warning(
                "Could not fetch invites for join of %s in guild %s: %s",
                user_id,
                guild_id,
                exc,
            )
            return None

        used = find_used_invite(invites, self.cache.get(guild_id))
        self.cache.replace(guild_id, invites)

        if used is None or used.inviter_id is None:
            log.info("No inviter identified for %s in guild %s", user_id, guild_id)
            return None

        async with self._locks.hold(used.inviter_id):
            total = self._storage.increment_invite_credit(used.inviter_id)
        log.info(
            "Attributed join of %s in guild %s to %s via %s (total %s)",
            user_id,
            guild_id,
            used.inviter_id,
            used.code,
            total,
        )
        return used.inviter_id

    def credits_for(self, user_id: str) -> int:
        return self._storage.get_invite_credit(user_id)

    def on_invite_created(self, guild_id: str, code: str, uses: int = 0) -> None:
        self.cache.record_created(guild_id, code, uses)

    def on_invite_deleted(self, guild_id: str, code: str) -> None:
        self.cache.record_deleted(guild_id, code)

    def forget_guild(self, guild_id: str) -> None:
        self.cache.forget(guild_id)


__all__ = [
    "InviteFetcher",
    "InviteReconciler",
    "InviteSnapshotCache",
    "find_used_invite",
]

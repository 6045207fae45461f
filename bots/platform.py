"""discord.py implementations of the collaborators the core depends on."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Final

import discord

from community_bot import AuthorizationError, ExternalServiceError, InviteUsage
from community_bot.invites import InviteFetcher

log: Final = logging.getLogger("community-platform")


def is_staff(member: discord.abc.User | None, admin_role_name: str = "Admin") -> bool:
    """Administrators, channel managers and holders of the admin role are staff."""
    if member is None:
        return False
    perms = getattr(member, "guild_permissions", None)
    if perms is not None and (perms.administrator or perms.manage_channels):
        return True
    roles = getattr(member, "roles", None) or []
    return any(getattr(role, "name", None) == admin_role_name for role in roles)


def require_staff(member: discord.abc.User | None, admin_role_name: str = "Admin") -> None:
    if not is_staff(member, admin_role_name):
        raise AuthorizationError(f"{member} is not staff")


async def resolve_text_channel(
    bot: discord.Client,
    channel_id: int,
    guild: discord.Guild | None = None,
) -> discord.TextChannel | None:
    """Return a TextChannel object or None if unavailable.

    Looks in the guild and client caches first, then tries REST fetch as
    fallback.
    """
    if not channel_id:
        return None

    channel = guild.get_channel(channel_id) if guild is not None else None
    if channel is None:
        channel = bot.get_channel(channel_id)
    if isinstance(channel, discord.TextChannel):
        return channel

    try:
        channel = await bot.fetch_channel(channel_id)
    except discord.NotFound:
        log.warning("Channel %s not found", channel_id)
        return None
    except discord.Forbidden:
        log.warning("No access to channel %s – check bot permissions", channel_id)
        return None
    except discord.HTTPException as exc:
        log.warning("Cannot fetch channel %s – HTTP error: %s", channel_id, exc)
        return None

    if isinstance(channel, discord.TextChannel):
        return channel
    log.warning("Channel ID %s is not a text channel", channel_id)
    return None


class DiscordAnnouncer:
    """Posts announcements and reports the message id back to the core."""

    def __init__(
        self,
        bot: discord.Client,
        *,
        view_factory: Callable[[], discord.ui.View] | None = None,
    ) -> None:
        self._bot = bot
        self._view_factory = view_factory

    async def post_announcement(
        self, channel_id: str, content: str, *, interactive: bool = False
    ) -> str:
        channel = await resolve_text_channel(self._bot, int(channel_id))
        if channel is None:
            raise ExternalServiceError(f"Channel {channel_id} is not available")

        kwargs: dict[str, object] = {"content": content}
        if interactive and self._view_factory is not None:
            kwargs["view"] = self._view_factory()
        try:
            message = await channel.send(**kwargs)
        except discord.DiscordException as exc:
            raise ExternalServiceError(
                f"Failed to post to channel {channel_id}: {exc}"
            ) from exc
        return str(message.id)


def invite_usage(invite: discord.Invite) -> InviteUsage:
    inviter = invite.inviter
    return InviteUsage(
        code=invite.code,
        uses=invite.uses or 0,
        inviter_id=str(inviter.id) if inviter is not None else None,
    )


def make_invite_fetcher(bot: discord.Client) -> InviteFetcher:
    async def fetch_invites(guild_id: str) -> list[InviteUsage]:
        guild = bot.get_guild(int(guild_id))
        if guild is None:
            raise ExternalServiceError(f"Guild {guild_id} is not available")
        try:
            invites = await guild.invites()
        except discord.Forbidden as exc:
            raise ExternalServiceError(
                f"Missing Manage Server permission to read invites of {guild_id}"
            ) from exc
        except discord.HTTPException as exc:
            raise ExternalServiceError(
                f"Failed to fetch invites of {guild_id}: {exc}"
            ) from exc
        return [invite_usage(invite) for invite in invites]

    return fetch_invites


__all__ = [
    "DiscordAnnouncer",
    "invite_usage",
    "is_staff",
    "make_invite_fetcher",
    "require_staff",
    "resolve_text_channel",
]

"""Tests for the discord.py adapters in bots.platform."""

from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from bots.platform import (
    DiscordAnnouncer,
    invite_usage,
    is_staff,
    make_invite_fetcher,
    require_staff,
    resolve_text_channel,
)
from community_bot import AuthorizationError, ExternalServiceError, InviteUsage


def make_member(*, administrator=False, manage_channels=False, role_names=()):
    member = MagicMock(spec=discord.Member)
    member.guild_permissions = MagicMock(
        administrator=administrator, manage_channels=manage_channels
    )
    roles = []
    for name in role_names:
        role = MagicMock()
        role.name = name
        roles.append(role)
    member.roles = roles
    return member


class TestStaffChecks:
    def test_none_is_not_staff(self):
        assert is_staff(None) is False

    def test_permissions_grant_staff(self):
        assert is_staff(make_member(administrator=True))
        assert is_staff(make_member(manage_channels=True))

    def test_admin_role_grants_staff(self):
        assert is_staff(make_member(role_names=["Admin"]))
        assert not is_staff(make_member(role_names=["Admin"]), "Moderators")
        assert is_staff(make_member(role_names=["Moderators"]), "Moderators")

    def test_plain_member_is_not_staff(self):
        member = make_member(role_names=["Member"])
        assert not is_staff(member)
        with pytest.raises(AuthorizationError):
            require_staff(member)


class TestResolveTextChannel:
    @pytest.mark.asyncio
    async def test_cached_channel(self):
        channel = MagicMock(spec=discord.TextChannel)
        bot = MagicMock()
        bot.get_channel.return_value = channel
        bot.fetch_channel = AsyncMock()

        assert await resolve_text_channel(bot, 42) is channel
        bot.fetch_channel.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_fetch_fallback(self):
        channel = MagicMock(spec=discord.TextChannel)
        bot = MagicMock()
        bot.get_channel.return_value = None
        bot.fetch_channel = AsyncMock(return_value=channel)

        assert await resolve_text_channel(bot, 42) is channel

    @pytest.mark.asyncio
    async def test_missing_channel(self):
        bot = MagicMock()
        bot.get_channel.return_value = None
        bot.fetch_channel = AsyncMock(
            side_effect=discord.NotFound(MagicMock(), "Channel not found")
        )

        assert await resolve_text_channel(bot, 42) is None
        assert await resolve_text_channel(bot, 0) is None

    @pytest.mark.asyncio
    async def test_non_text_channel(self):
        bot = MagicMock()
        bot.get_channel.return_value = None
        bot.fetch_channel = AsyncMock(return_value=MagicMock(spec=discord.VoiceChannel))

        assert await resolve_text_channel(bot, 42) is None


class TestDiscordAnnouncer:
    @pytest.mark.asyncio
    async def test_posts_with_view_when_interactive(self):
        channel = MagicMock(spec=discord.TextChannel)
        channel.send = AsyncMock(return_value=MagicMock(id=555))
        bot = MagicMock()
        bot.get_channel.return_value = channel
        view = object()

        announcer = DiscordAnnouncer(bot, view_factory=lambda: view)
        message_id = await announcer.post_announcement("10", "hello", interactive=True)

        assert message_id == "555"
        bot.get_channel.assert_called_once_with(10)
        channel.send.assert_awaited_once_with(content="hello", view=view)

    @pytest.mark.asyncio
    async def test_plain_post_has_no_view(self):
        channel = MagicMock(spec=discord.TextChannel)
        channel.send = AsyncMock(return_value=MagicMock(id=1))
        bot = MagicMock()
        bot.get_channel.return_value = channel

        announcer = DiscordAnnouncer(bot, view_factory=lambda: object())
        await announcer.post_announcement("10", "results")

        channel.send.assert_awaited_once_with(content="results")

    @pytest.mark.asyncio
    async def test_send_failure_is_wrapped(self):
        channel = MagicMock(spec=discord.TextChannel)
        channel.send = AsyncMock(side_effect=discord.Forbidden(MagicMock(), "Forbidden"))
        bot = MagicMock()
        bot.get_channel.return_value = channel

        with pytest.raises(ExternalServiceError):
            await DiscordAnnouncer(bot).post_announcement("10", "hello")

    @pytest.mark.asyncio
    async def test_unavailable_channel(self):
        bot = MagicMock()
        bot.get_channel.return_value = None
        bot.fetch_channel = AsyncMock(side_effect=discord.Forbidden(MagicMock(), "Forbidden"))

        with pytest.raises(ExternalServiceError):
            await DiscordAnnouncer(bot).post_announcement("10", "hello")


class TestInviteFetcher:
    def test_invite_usage(self):
        invite = MagicMock(code="abc", uses=None, inviter=None)
        assert invite_usage(invite) == InviteUsage("abc", 0, None)

        invite = MagicMock(code="xyz", uses=4)
        invite.inviter.id = 77
        assert invite_usage(invite) == InviteUsage("xyz", 4, "77")

    @pytest.mark.asyncio
    async def test_fetches_guild_invites(self):
        invite = MagicMock(code="abc", uses=2)
        invite.inviter.id = 9
        guild = MagicMock()
        guild.invites = AsyncMock(return_value=[invite])
        bot = MagicMock()
        bot.get_guild.return_value = guild

        fetch = make_invite_fetcher(bot)

        assert await fetch("123") == [InviteUsage("abc", 2, "9")]
        bot.get_guild.assert_called_once_with(123)

    @pytest.mark.asyncio
    async def test_missing_permission(self):
        guild = MagicMock()
        guild.invites = AsyncMock(side_effect=discord.Forbidden(MagicMock(), "Forbidden"))
        bot = MagicMock()
        bot.get_guild.return_value = guild

        with pytest.raises(ExternalServiceError, match="Manage Server"):
            await make_invite_fetcher(bot)("123")

    @pytest.mark.asyncio
    async def test_unknown_guild(self):
        bot = MagicMock()
        bot.get_guild.return_value = None

        with pytest.raises(ExternalServiceError):
            await make_invite_fetcher(bot)("123")

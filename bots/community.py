"""Community bot runtime wiring the core services to discord.py events."""

from __future__ import annotations

import asyncio
import logging

import boto3
import discord
from discord import app_commands

from community_bot import (
    CommunityStorage,
    DynamoStorage,
    EventLog,
    GiveawayScheduler,
    InviteReconciler,
    JsonFileStorage,
    ModerationCounter,
    ModerationRules,
)

from .commands import register_staff_commands
from .config import EnvironmentConfig
from .giveaway import GiveawayEntryView, build_giveaway_group
from .platform import DiscordAnnouncer, make_invite_fetcher
from .tickets import TicketControlsView, register_ticket_commands

log = logging.getLogger("community-bot")

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def build_storage(config: EnvironmentConfig) -> CommunityStorage:
    if config.table_name:
        dynamodb = boto3.resource("dynamodb", region_name=config.aws_region)
        return DynamoStorage(dynamodb.Table(config.table_name))
    return JsonFileStorage(config.data_dir)


def find_channel_containing(guild: discord.Guild, fragment: str) -> discord.TextChannel | None:
    for channel in guild.text_channels:
        if channel.name and fragment in channel.name.lower():
            return channel
    return None


class CommunityRuntime:
    def __init__(
        self,
        config: EnvironmentConfig,
        *,
        storage: CommunityStorage | None = None,
        client: discord.Client | None = None,
    ) -> None:
        intents = discord.Intents.default()
        intents.guilds = True
        intents.members = True
        intents.invites = True
        intents.message_content = True

        self.config = config
        self.bot = client or discord.Client(intents=intents)
        self.tree = app_commands.CommandTree(self.bot)
        self.storage = storage if storage is not None else build_storage(config)
        self.event_log = EventLog(config.log_dir)
        self.announcer = DiscordAnnouncer(
            self.bot, view_factory=lambda: GiveawayEntryView(self.scheduler)
        )
        self.scheduler = GiveawayScheduler(
            self.storage, self.announcer, event_log=self.event_log
        )
        self.reconciler = InviteReconciler(
            self.storage, make_invite_fetcher(self.bot), event_log=self.event_log
        )
        self.moderation = ModerationCounter(
            self.storage, ModerationRules.from_words(config.bad_words)
        )
        self._started = False

        self.register_commands()
        for handler in (
            self.on_ready,
            self.on_member_join,
            self.on_message,
            self.on_invite_create,
            self.on_invite_delete,
            self.on_guild_join,
            self.on_guild_remove,
        ):
            self.bot.event(handler)

    def register_commands(self) -> None:
        admin_role = self.config.admin_role_name
        self.tree.add_command(build_giveaway_group(self.scheduler, admin_role_name=admin_role))
        register_ticket_commands(self.tree, admin_role_name=admin_role, event_log=self.event_log)
        register_staff_commands(self.tree, self.event_log, admin_role_name=admin_role)

    async def sync_commands(self) -> None:
        try:
            if self.config.guild_id:
                guild = discord.Object(id=self.config.guild_id)
                self.tree.copy_global_to(guild=guild)
                await self.tree.sync(guild=guild)
                log.info("Registered commands to guild %s", self.config.guild_id)
            else:
                await self.tree.sync()
                log.info("Registered global commands (may take up to 1 hour)")
        except discord.HTTPException as exc:
            log.error("Failed to register commands: %s", exc)

    # ----- events -----
    async def on_ready(self) -> None:
        log.info("Logged in as %s", self.bot.user)
        if self._started:
            return
        self._started = True

        self.bot.add_view(GiveawayEntryView(self.scheduler))
        self.bot.add_view(TicketControlsView(self.config.admin_role_name, self.event_log))
        await self.sync_commands()
        await self.reconciler.refresh_all(str(guild.id) for guild in self.bot.guilds)
        await self.scheduler.resume_all()

    async def on_member_join(self, member: discord.Member) -> None:
        guild = member.guild
        try:
            inviter_id = await self.reconciler.on_join(str(guild.id), str(member.id))
        except Exception as exc:  # pylint: disable=broad-except
            log.exception("Invite attribution failed for %s: %s", member.id, exc)
            inviter_id = None

        self.event_log.append(
            "member.join",
            {
                "guild": str(guild.id),
                "userId": str(member.id),
                "username": str(member),
                "inviterId": inviter_id,
            },
        )

        welcome = find_channel_containing(guild, "welcome")
        if welcome is None:
            return
        if inviter_id:
            text = f"Welcome {member}! Invited by <@{inviter_id}>."
        else:
            text = f"Welcome {member}!"
        try:
            await welcome.send(text)
        except discord.HTTPException as exc:
            log.warning("Failed to send welcome message in %s: %s", guild.id, exc)

    async def on_message(self, message: discord.Message) -> None:
        if message.author.bot or message.guild is None:
            return
        guild_id = str(message.guild.id)
        user_id = str(message.author.id)

        try:
            count = await self.moderation.check_message(
                message.content, guild_id, user_id, mention_count=len(message.mentions)
            )
        except Exception as exc:  # pylint: disable=broad-except
            log.exception("Failed to record warning for %s: %s", user_id, exc)
            return

        if count is not None:
            await self._warn_and_delete(message, count)
            return

        channel_name = getattr(message.channel, "name", "") or ""
        if "feedback" in channel_name.lower():
            try:
                await message.reply(
                    f"Thank you for your feedback, {message.author.mention}! We appreciate it ❤️"
                )
            except discord.HTTPException as exc:
                log.warning("Feedback reply failed: %s", exc)
                return
            self.event_log.append(
                "feedback.reply",
                {
                    "guild": guild_id,
                    "channel": str(message.channel.id),
                    "user": user_id,
                    "content": message.content,
                },
            )

    async def _warn_and_delete(self, message: discord.Message, count: int) -> None:
        payload = {
            "guild": str(message.guild.id),
            "channel": str(message.channel.id),
            "user": str(message.author.id),
        }
        try:
            await message.reply(
                f"{message.author.mention}, this message violates server rules. "
                f"This is warning #{count}. Repeated violations may result in a ban."
            )
            self.event_log.append(
                "moderation.warn",
                {**payload, "reason": "badword_or_spam", "warningCount": count},
            )
        except discord.HTTPException as exc:
            log.warning("Failed to send warning: %s", exc)
        try:
            await message.delete()
            self.event_log.append("moderation.delete", payload)
        except discord.HTTPException as exc:
            log.warning("Failed to delete violating message: %s", exc)

    async def on_invite_create(self, invite: discord.Invite) -> None:
        if invite.guild is not None:
            self.reconciler.on_invite_created(str(invite.guild.id), invite.code, invite.uses or 0)

    async def on_invite_delete(self, invite: discord.Invite) -> None:
        if invite.guild is not None:
            self.reconciler.on_invite_deleted(str(invite.guild.id), invite.code)

    async def on_guild_join(self, guild: discord.Guild) -> None:
        await self.reconciler.refresh_snapshot(str(guild.id))

    async def on_guild_remove(self, guild: discord.Guild) -> None:
        self.reconciler.forget_guild(str(guild.id))

    # ----- lifecycle -----
    def initialize(self) -> None:
        """Prepare the stores. Failures here halt startup."""
        self.storage.initialize()
        self.event_log.initialize()

    async def run(self) -> None:
        self.initialize()
        try:
            async with self.bot:
                await self.bot.start(self.config.discord_token)
        finally:
            await self.scheduler.close()

    @classmethod
    def create(cls) -> "CommunityRuntime":
        config = EnvironmentConfig.load()
        return cls(config)


async def main() -> None:
    runtime = CommunityRuntime.create()
    logging.basicConfig(level=runtime.config.log_level, format=LOG_FORMAT)
    await runtime.run()


if __name__ == "__main__":
    asyncio.run(main())


__all__ = ["CommunityRuntime", "build_storage", "main"]

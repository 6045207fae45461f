"""Support tickets: private channels with claim and close controls."""

from __future__ import annotations

import asyncio
import logging
import re

import discord
from discord import app_commands

from community_bot import EventLog

from .platform import is_staff

log = logging.getLogger("ticket-bot")

CATEGORY_NAME = "Tickets"
CLAIM_CUSTOM_ID = "ticket:claim"
CLOSE_CUSTOM_ID = "ticket:close"
DELETE_DELAY_SECONDS = 10

_pending_deletes: set[asyncio.Task[None]] = set()


def ticket_slug(username: str) -> str:
    return re.sub(r"[^a-z0-9]", "", username.lower())[:12]


def ticket_channel_name(user: discord.abc.User) -> str:
    return f"ticket-{ticket_slug(user.name)}-{str(user.id)[-4:]}"


def is_ticket_owner(channel: discord.abc.GuildChannel, user: discord.abc.User) -> bool:
    expected = ticket_channel_name(user)
    return channel.name in (expected, f"closed-{expected}")


def _record(event_log: EventLog | None, type_: str, payload: dict[str, object]) -> None:
    if event_log is not None:
        event_log.append(type_, payload)


async def ensure_tickets_category(
    guild: discord.Guild, event_log: EventLog | None = None
) -> discord.CategoryChannel | None:
    for category in guild.categories:
        if category.name == CATEGORY_NAME:
            return category
    try:
        created = await guild.create_category(CATEGORY_NAME, reason="Create Tickets category")
    except discord.HTTPException as exc:
        log.warning("Failed to create tickets category in %s: %s", guild.id, exc)
        return None
    _record(event_log, "category.create", {"guild": guild.id, "category": created.id})
    return created


def ticket_overwrites(
    guild: discord.Guild, user: discord.abc.User, admin_role_name: str
) -> dict[discord.abc.Snowflake, discord.PermissionOverwrite]:
    overwrites: dict[discord.abc.Snowflake, discord.PermissionOverwrite] = {
        guild.default_role: discord.PermissionOverwrite(view_channel=False),
        user: discord.PermissionOverwrite(
            view_channel=True,
            send_messages=True,
            attach_files=True,
            read_message_history=True,
        ),
    }
    for role in guild.roles:
        perms = role.permissions
        if perms.manage_channels or perms.administrator or role.name == admin_role_name:
            overwrites[role] = discord.PermissionOverwrite(
                view_channel=True, send_messages=True, manage_channels=True
            )
    return overwrites


async def create_ticket_channel(
    interaction: discord.Interaction,
    game: str,
    issue: str,
    *,
    admin_role_name: str = "Admin",
    event_log: EventLog | None = None,
) -> discord.TextChannel:
    guild = interaction.guild
    user = interaction.user
    category = await ensure_tickets_category(guild, event_log)
    channel = await guild.create_text_channel(
        ticket_channel_name(user),
        category=category,
        overwrites=ticket_overwrites(guild, user, admin_role_name),
    )

    embed = discord.Embed(title="New Support Ticket", color=0x0EA5A4)
    embed.add_field(name="User", value=user.mention, inline=True)
    embed.add_field(name="Game", value=game or "N/A", inline=True)
    embed.add_field(name="Issue", value=issue or "N/A", inline=False)
    embed.set_footer(text=f"Ticket for {user}")

    message = await channel.send(embed=embed, view=TicketControlsView(admin_role_name, event_log))
    _record(
        event_log,
        "ticket.open",
        {
            "guild": guild.id,
            "channel": channel.id,
            "user": user.id,
            "game": game,
            "issue": issue,
            "messageId": message.id,
        },
    )
    return channel


async def _delete_later(channel: discord.TextChannel, delay: float) -> None:
    await asyncio.sleep(delay)
    try:
        await channel.delete(reason="Ticket closed")
    except discord.HTTPException as exc:
        log.warning("Failed to delete ticket channel %s: %s", channel.id, exc)


async def close_ticket(
    channel: discord.TextChannel,
    by_user: discord.abc.User,
    *,
    event_log: EventLog | None = None,
    delete_after: float = DELETE_DELAY_SECONDS,
) -> None:
    try:
        try:
            await channel.edit(name=f"closed-{channel.name}")
        except discord.HTTPException as exc:
            log.warning("Failed to rename ticket channel %s: %s", channel.id, exc)
        await channel.set_permissions(channel.guild.default_role, view_channel=False)
        await channel.send(
            f"This ticket was closed by {by_user}. "
            f"Deleting channel in {int(delete_after)} seconds..."
        )
        _record(
            event_log,
            "ticket.close",
            {"guild": channel.guild.id, "channel": channel.id, "by": by_user.id},
        )
    except discord.HTTPException as exc:
        log.exception("Failed to close ticket %s: %s", channel.id, exc)
        return
    task = asyncio.create_task(_delete_later(channel, delete_after))
    _pending_deletes.add(task)
    task.add_done_callback(_pending_deletes.discard)


class TicketModal(discord.ui.Modal, title="Open a Support Ticket"):
    game = discord.ui.TextInput(
        label="Which game? (e.g. Valorant)", style=discord.TextStyle.short
    )
    issue = discord.ui.TextInput(
        label="Describe your issue", style=discord.TextStyle.paragraph
    )

    def __init__(self, admin_role_name: str, event_log: EventLog | None = None) -> None:
        super().__init__()
        self.admin_role_name = admin_role_name
        self.event_log = event_log

    async def on_submit(self, interaction: discord.Interaction) -> None:
        await interaction.response.send_message(
            "Thanks, your ticket is being created...", ephemeral=True
        )
        try:
            channel = await create_ticket_channel(
                interaction,
                self.game.value,
                self.issue.value,
                admin_role_name=self.admin_role_name,
                event_log=self.event_log,
            )
        except discord.HTTPException as exc:
            log.exception("Failed to create ticket channel: %s", exc)
            await interaction.followup.send("Could not create your ticket.", ephemeral=True)
            return
        await channel.send(f"{interaction.user.mention} Ticket created successfully.")


class TicketControlsView(discord.ui.View):
    def __init__(self, admin_role_name: str = "Admin", event_log: EventLog | None = None) -> None:
        super().__init__(timeout=None)
        self.admin_role_name = admin_role_name
        self.event_log = event_log

    @discord.ui.button(label="Claim", style=discord.ButtonStyle.primary, custom_id=CLAIM_CUSTOM_ID)
    async def claim(self, interaction: discord.Interaction, _: discord.ui.Button) -> None:
        if not is_staff(interaction.user, self.admin_role_name):
            await interaction.response.send_message(
                "Only staff can claim tickets.", ephemeral=True
            )
            return
        channel = interaction.channel
        await interaction.response.send_message(f"{interaction.user} claimed this ticket.")
        await channel.send(
            f"{interaction.user.mention} has claimed this ticket and will assist you."
        )
        _record(
            self.event_log,
            "ticket.claim",
            {"guild": interaction.guild_id, "channel": channel.id, "by": interaction.user.id},
        )

    @discord.ui.button(label="Close Ticket", style=discord.ButtonStyle.danger, custom_id=CLOSE_CUSTOM_ID)
    async def close(self, interaction: discord.Interaction, _: discord.ui.Button) -> None:
        channel = interaction.channel
        if not is_staff(interaction.user, self.admin_role_name):
            if not is_ticket_owner(channel, interaction.user):
                await interaction.response.send_message(
                    "Only staff or ticket owner can close.", ephemeral=True
                )
                return
        await interaction.response.send_message("Closing ticket...", ephemeral=True)
        await close_ticket(channel, interaction.user, event_log=self.event_log)


def register_ticket_commands(
    tree: app_commands.CommandTree,
    *,
    admin_role_name: str = "Admin",
    event_log: EventLog | None = None,
) -> None:
    @tree.command(name="ticket", description="Open a support ticket (you will be asked details)")
    async def ticket(interaction: discord.Interaction) -> None:
        await interaction.response.send_modal(TicketModal(admin_role_name, event_log))
        _record(
            event_log,
            "ticket.modal_shown",
            {"guild": interaction.guild_id, "user": interaction.user.id},
        )

    @tree.command(name="close", description="Close the current ticket (staff only)")
    async def close(interaction: discord.Interaction) -> None:
        if not is_staff(interaction.user, admin_role_name):
            await interaction.response.send_message(
                "You are not allowed to close tickets.", ephemeral=True
            )
            return
        channel = interaction.channel
        if not isinstance(channel, discord.TextChannel):
            await interaction.response.send_message("Not a ticket channel.", ephemeral=True)
            return
        await interaction.response.send_message("Closing ticket...", ephemeral=True)
        await close_ticket(channel, interaction.user, event_log=event_log)


__all__ = [
    "TicketControlsView",
    "TicketModal",
    "close_ticket",
    "create_ticket_channel",
    "ensure_tickets_category",
    "is_ticket_owner",
    "register_ticket_commands",
    "ticket_channel_name",
    "ticket_slug",
]

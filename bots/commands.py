"""Staff utility commands: announcements and event log inspection."""

from __future__ import annotations

import logging

import discord
from discord import app_commands

from community_bot import EventLog

from .platform import is_staff

log = logging.getLogger("community-commands")

DEFAULT_LOG_LINES = 20
MAX_MESSAGE_LENGTH = 2000


def format_log_tail(lines: list[str], requested: int) -> str:
    body = "\n".join(lines)
    header = f"Last {requested} log lines:\n\n```json\n"
    footer = "\n```"
    room = MAX_MESSAGE_LENGTH - len(header) - len(footer)
    if len(body) > room:
        body = body[-room:]
    return header + body + footer


def register_staff_commands(
    tree: app_commands.CommandTree,
    event_log: EventLog,
    *,
    admin_role_name: str = "Admin",
) -> None:
    @tree.command(name="announce", description="Post an embed announcement (staff only)")
    @app_commands.describe(title="Title", description="Description")
    async def announce(interaction: discord.Interaction, title: str, description: str) -> None:
        if not is_staff(interaction.user, admin_role_name):
            await interaction.response.send_message("Not allowed", ephemeral=True)
            return
        embed = discord.Embed(title=title, description=description, color=0x5865F2)
        embed.set_footer(text=f"Announced by {interaction.user}")
        channel = interaction.channel
        try:
            await channel.send(embed=embed)
        except discord.HTTPException as exc:
            log.warning("Failed to post announcement: %s", exc)
            await interaction.response.send_message(
                "Failed to post announcement.", ephemeral=True
            )
            return
        event_log.append(
            "announce.post",
            {
                "guild": interaction.guild_id,
                "channel": interaction.channel_id,
                "by": interaction.user.id,
                "title": title,
            },
        )
        await interaction.response.send_message("Announcement posted.", ephemeral=True)

    @tree.command(name="logs", description="Fetch recent logs (staff only)")
    @app_commands.describe(lines="How many log lines")
    async def logs(interaction: discord.Interaction, lines: int | None = None) -> None:
        if not is_staff(interaction.user, admin_role_name):
            await interaction.response.send_message("Not allowed", ephemeral=True)
            return
        requested = lines or DEFAULT_LOG_LINES
        tail = event_log.tail(requested)
        if not tail:
            await interaction.response.send_message("No logs found.", ephemeral=True)
            return
        await interaction.response.send_message(
            format_log_tail(tail, requested), ephemeral=True
        )


__all__ = ["format_log_tail", "register_staff_commands"]

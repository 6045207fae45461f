"""Giveaway slash commands and the persistent entry button."""

from __future__ import annotations

import logging

import discord
from discord import app_commands

from community_bot import (
    AuthorizationError,
    CompletionStatus,
    ExternalServiceError,
    GiveawayScheduler,
)

from .platform import require_staff

log = logging.getLogger("giveaway-bot")

ENTER_CUSTOM_ID = "giveaway:enter"


class GiveawayEntryView(discord.ui.View):
    """Entry button attached to every giveaway announcement.

    The custom id is static and the giveaway is looked up from the message the
    button lives on, so one registered view serves all giveaways across
    restarts.
    """

    def __init__(self, scheduler: GiveawayScheduler) -> None:
        super().__init__(timeout=None)
        self.scheduler = scheduler

    @discord.ui.button(
        label="Enter Giveaway",
        style=discord.ButtonStyle.green,
        custom_id=ENTER_CUSTOM_ID,
    )
    async def enter(
        self, interaction: discord.Interaction, _: discord.ui.Button
    ) -> None:  # pylint: disable=unused-argument
        if interaction.message is None:
            await interaction.response.send_message("Giveaway not found.", ephemeral=True)
            return
        try:
            entered = await self.scheduler.toggle_participant(
                str(interaction.message.id), str(interaction.user.id)
            )
        except Exception as exc:  # pylint: disable=broad-except
            log.exception("Failed to record entry: %s", exc)
            await interaction.response.send_message("Entry failed", ephemeral=True)
            return

        if entered is None:
            message = "This giveaway has ended."
        elif entered:
            message = "You're entered! Click again to withdraw."
        else:
            message = "You have withdrawn from this giveaway."
        await interaction.response.send_message(message, ephemeral=True)


def describe_completion(status: CompletionStatus, winners: list[str]) -> str:
    if status is CompletionStatus.NOT_FOUND:
        return "No giveaway found with that message id."
    if status is CompletionStatus.ALREADY_ENDED:
        return "That giveaway has already ended."
    if not winners:
        return "Giveaway ended with no participants."
    return "Giveaway ended. Winners: " + ", ".join(f"<@{w}>" for w in winners)


def build_giveaway_group(
    scheduler: GiveawayScheduler, *, admin_role_name: str = "Admin"
) -> app_commands.Group:
    group = app_commands.Group(name="giveaway", description="Giveaway subcommands (start/end)")

    @group.command(name="start", description="Start a giveaway")
    @app_commands.describe(
        duration_seconds="Duration in seconds",
        winners="Number of winners",
        prize="What is the prize?",
    )
    async def start(
        interaction: discord.Interaction,
        duration_seconds: int,
        winners: int,
        prize: str,
    ) -> None:
        try:
            require_staff(interaction.user, admin_role_name)
        except AuthorizationError:
            await interaction.response.send_message("Not allowed", ephemeral=True)
            return
        if interaction.guild_id is None or interaction.channel_id is None:
            await interaction.response.send_message(
                "Giveaways can only be started in a server channel.", ephemeral=True
            )
            return

        await interaction.response.defer(ephemeral=True)
        try:
            giveaway = await scheduler.start(
                str(interaction.guild_id),
                str(interaction.channel_id),
                duration_seconds,
                winners,
                prize,
            )
        except ValueError as exc:
            await interaction.followup.send(f"Invalid giveaway: {exc}", ephemeral=True)
            return
        except ExternalServiceError as exc:
            log.warning("Could not start giveaway: %s", exc)
            await interaction.followup.send(
                "Could not post the giveaway announcement.", ephemeral=True
            )
            return
        await interaction.followup.send(
            f"Giveaway started (message id {giveaway.message_id}).", ephemeral=True
        )

    @group.command(name="end", description="End a running giveaway (provide message id)")
    @app_commands.describe(message_id="Giveaway message id")
    async def end(interaction: discord.Interaction, message_id: str) -> None:
        try:
            require_staff(interaction.user, admin_role_name)
        except AuthorizationError:
            await interaction.response.send_message("Not allowed", ephemeral=True)
            return

        await interaction.response.send_message("Ending giveaway...", ephemeral=True)
        channel_id = str(interaction.channel_id) if interaction.channel_id else None
        try:
            result = await scheduler.complete(message_id.strip(), channel_id)
        except Exception as exc:  # pylint: disable=broad-except
            log.exception("Failed to end giveaway %s: %s", message_id, exc)
            await interaction.followup.send("Could not end the giveaway.", ephemeral=True)
            return
        await interaction.followup.send(
            describe_completion(result.status, result.winners), ephemeral=True
        )

    return group


__all__ = [
    "ENTER_CUSTOM_ID",
    "GiveawayEntryView",
    "build_giveaway_group",
    "describe_completion",
]

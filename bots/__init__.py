"""discord.py runtime for the community bot.

The core services live in :mod:`community_bot`; this package supplies the
platform side: announcements, invite fetching, staff checks, slash commands
and event handlers.
"""

__all__ = ["commands", "community", "config", "giveaway", "platform", "tickets"]

from __future__ import annotations


class CommunityBotError(Exception):
    """Base exception for community bot failures."""


class ExternalServiceError(CommunityBotError):
    """A call to the chat platform failed or timed out.

    Raised by collaborators such as the announcer or the invite fetcher. The
    core logs these and carries on; nothing is retried automatically.
    """


class AuthorizationError(CommunityBotError):
    """The caller lacks the privilege required for the requested action."""


__all__ = ["AuthorizationError", "CommunityBotError", "ExternalServiceError"]

"""Community automation core: giveaways, invite attribution and warnings."""

from .errors import AuthorizationError, CommunityBotError, ExternalServiceError
from .event_log import EventLog
from .giveaways import CompletionResult, CompletionStatus, GiveawayScheduler, draw_winners
from .invites import InviteReconciler, InviteSnapshotCache, find_used_invite
from .locks import KeyedLock
from .models import Giveaway, InviteUsage, LogEntry, utc_now
from .moderation import ModerationCounter, ModerationRules, is_violation
from .storage import CommunityStorage, DynamoStorage, JsonFileStorage

__all__ = [
    "AuthorizationError",
    "CommunityBotError",
    "CommunityStorage",
    "CompletionResult",
    "CompletionStatus",
    "DynamoStorage",
    "EventLog",
    "ExternalServiceError",
    "Giveaway",
    "GiveawayScheduler",
    "InviteReconciler",
    "InviteSnapshotCache",
    "InviteUsage",
    "JsonFileStorage",
    "KeyedLock",
    "LogEntry",
    "ModerationCounter",
    "ModerationRules",
    "draw_winners",
    "find_used_invite",
    "is_violation",
    "utc_now",
]

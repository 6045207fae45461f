from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import ClassVar


def utc_now() -> datetime:
    return datetime.now(UTC)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp, assuming UTC when no offset is present."""
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _id_list(values: Iterable[object] | None) -> list[str]:
    if not values:
        return []
    return [str(value) for value in values]


@dataclass(slots=True)
class Giveaway:
    message_id: str
    channel_id: str
    guild_id: str
    prize: str
    winner_count: int
    ends_at: datetime
    ended: bool = False
    participants: set[str] = field(default_factory=set)
    winners: list[str] = field(default_factory=list)

    PK_TEMPLATE: ClassVar[str] = "GIVEAWAY#%s"
    SK_VALUE: ClassVar[str] = "META"
    ENTITY: ClassVar[str] = "giveaway"

    def is_due(self, now: datetime) -> bool:
        return not self.ended and self.ends_at <= now

    def remaining_seconds(self, now: datetime) -> float:
        return max(0.0, (self.ends_at - now).total_seconds())

    # ----- JSON documents -----
    def to_dict(self) -> dict[str, object]:
        return {
            "message_id": self.message_id,
            "channel_id": self.channel_id,
            "guild_id": self.guild_id,
            "prize": self.prize,
            "winner_count": self.winner_count,
            "ends_at": self.ends_at.isoformat(),
            "ended": self.ended,
            "participants": sorted(self.participants),
            "winners": list(self.winners),
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> Giveaway:
        return cls(
            message_id=str(data["message_id"]),
            channel_id=str(data["channel_id"]),
            guild_id=str(data["guild_id"]),
            prize=str(data.get("prize", "")),
            winner_count=int(data.get("winner_count", 1)),
            ends_at=parse_timestamp(str(data["ends_at"])),
            ended=bool(data.get("ended", False)),
            participants=set(_id_list(data.get("participants"))),  # type: ignore[arg-type]
            winners=_id_list(data.get("winners")),  # type: ignore[arg-type]
        )

    # ----- DynamoDB items -----
    @classmethod
    def key(cls, message_id: str) -> dict[str, str]:
        return {"pk": cls.PK_TEMPLATE % message_id, "sk": cls.SK_VALUE}

    def to_item(self) -> dict[str, object]:
        item: dict[str, object] = self.key(self.message_id)
        item.update(self.to_dict())
        item["entity"] = self.ENTITY
        return item

    @classmethod
    def from_item(cls, item: dict[str, object]) -> Giveaway:
        # numeric attributes come back from DynamoDB as Decimal
        return cls.from_dict(item)


@dataclass(frozen=True, slots=True)
class InviteUsage:
    """One row of a guild's invite table as reported by the platform."""

    code: str
    uses: int
    inviter_id: str | None = None


@dataclass(frozen=True, slots=True)
class LogEntry:
    ts: str
    type: str
    payload: dict[str, object]

    def to_dict(self) -> dict[str, object]:
        return {"ts": self.ts, "type": self.type, "payload": self.payload}

    @classmethod
    def create(cls, type_: str, payload: dict[str, object] | None = None) -> LogEntry:
        stamp = utc_now().isoformat(timespec="milliseconds").replace("+00:00", "Z")
        return cls(ts=stamp, type=type_, payload=dict(payload or {}))


def warning_key(guild_id: str, user_id: str) -> str:
    return f"{guild_id}:{user_id}"


__all__ = [
    "Giveaway",
    "InviteUsage",
    "LogEntry",
    "parse_timestamp",
    "utc_now",
    "warning_key",
]

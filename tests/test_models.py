from datetime import UTC, datetime, timedelta
from decimal import Decimal

from community_bot.models import Giveaway, LogEntry, parse_timestamp, warning_key

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


def make_giveaway(**overrides) -> Giveaway:
    fields = {
        "message_id": "m1",
        "channel_id": "c1",
        "guild_id": "g1",
        "prize": "Nitro",
        "winner_count": 2,
        "ends_at": NOW + timedelta(minutes=5),
    }
    fields.update(overrides)
    return Giveaway(**fields)


def test_is_due_and_remaining_seconds():
    giveaway = make_giveaway()
    assert not giveaway.is_due(NOW)
    assert giveaway.remaining_seconds(NOW) == 300
    assert giveaway.is_due(NOW + timedelta(minutes=5))
    assert giveaway.remaining_seconds(NOW + timedelta(hours=1)) == 0

    giveaway.ended = True
    assert not giveaway.is_due(NOW + timedelta(hours=1))


def test_dict_document_is_stable():
    giveaway = make_giveaway(participants={"u2", "u1"}, winners=["u2"])
    doc = giveaway.to_dict()

    assert doc["participants"] == ["u1", "u2"]
    assert doc["ends_at"] == "2024-05-01T12:05:00+00:00"
    assert Giveaway.from_dict(doc) == giveaway


def test_from_dict_fills_defaults_and_naive_timestamps():
    giveaway = Giveaway.from_dict(
        {"message_id": 5, "channel_id": 6, "guild_id": 7, "ends_at": "2024-05-01T12:00:00"}
    )
    assert giveaway.message_id == "5"
    assert giveaway.winner_count == 1
    assert giveaway.participants == set()
    assert giveaway.ends_at == NOW


def test_item_carries_keys_and_entity():
    item = make_giveaway().to_item()
    assert item["pk"] == "GIVEAWAY#m1"
    assert item["sk"] == "META"
    assert item["entity"] == "giveaway"


def test_from_item_accepts_decimal_numbers():
    item = make_giveaway().to_item()
    item["winner_count"] = Decimal("3")
    assert Giveaway.from_item(item).winner_count == 3


def test_parse_timestamp_keeps_offsets():
    parsed = parse_timestamp("2024-05-01T14:00:00+02:00")
    assert parsed == datetime(2024, 5, 1, 12, tzinfo=UTC)


def test_log_entry_timestamp_format():
    entry = LogEntry.create("member.join", {"userId": "1"})
    assert entry.ts.endswith("Z")
    assert len(entry.ts) == len("2024-05-01T12:00:00.000Z")
    assert entry.to_dict() == {"ts": entry.ts, "type": "member.join", "payload": {"userId": "1"}}


def test_warning_key():
    assert warning_key("g1", "u1") == "g1:u1"

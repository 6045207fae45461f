from __future__ import annotations

import random
from datetime import UTC, datetime, timedelta

import pytest

from community_bot import EventLog, ExternalServiceError, JsonFileStorage

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


class FakeClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeAnnouncer:
    """Records posts and hands out sequential message ids."""

    def __init__(self) -> None:
        self.posts: list[tuple[str, str, bool]] = []
        self.fail = False
        self._next_id = 1000

    async def post_announcement(
        self, channel_id: str, content: str, *, interactive: bool = False
    ) -> str:
        if self.fail:
            raise ExternalServiceError("channel unavailable")
        self.posts.append((channel_id, content, interactive))
        self._next_id += 1
        return str(self._next_id)


class FakeTable:
    """In-memory stand-in for a boto3 DynamoDB table keyed on pk/sk."""

    def __init__(self, page_size: int | None = None) -> None:
        self.items: dict[tuple[str, str], dict[str, object]] = {}
        self.page_size = page_size

    def get_item(self, *, Key):
        item = self.items.get((Key["pk"], Key["sk"]))
        return {"Item": dict(item)} if item is not None else {}

    def put_item(self, *, Item):
        self.items[(Item["pk"], Item["sk"])] = dict(Item)

    def update_item(self, *, Key, UpdateExpression, ExpressionAttributeValues, ReturnValues):
        del ReturnValues  # always UPDATED_NEW here
        _, attribute, placeholder = UpdateExpression.split()
        item = self.items.setdefault((Key["pk"], Key["sk"]), dict(Key))
        item[attribute] = item.get(attribute, 0) + ExpressionAttributeValues[placeholder]
        return {"Attributes": {attribute: item[attribute]}}

    def scan(self, *, FilterExpression=None, ExclusiveStartKey=None):
        keys = sorted(self.items)
        if ExclusiveStartKey is not None:
            start = (ExclusiveStartKey["pk"], ExclusiveStartKey["sk"])
            keys = [key for key in keys if key > start]
        matched = []
        for key in keys:
            item = self.items[key]
            if FilterExpression is not None:
                attr, value = FilterExpression._values  # type: ignore[attr-defined]
                if item.get(attr.name) != value:
                    continue
            matched.append((key, item))
        resp: dict[str, object] = {}
        if self.page_size is not None and len(matched) > self.page_size:
            matched = matched[: self.page_size]
            last = matched[-1][0]
            resp["LastEvaluatedKey"] = {"pk": last[0], "sk": last[1]}
        resp["Items"] = [dict(item) for _, item in matched]
        return resp


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def announcer() -> FakeAnnouncer:
    return FakeAnnouncer()


@pytest.fixture
def storage(tmp_path) -> JsonFileStorage:
    store = JsonFileStorage(tmp_path / "data")
    store.initialize()
    return store


@pytest.fixture
def event_log(tmp_path) -> EventLog:
    log = EventLog(tmp_path / "logs")
    log.initialize()
    return log


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def fake_table() -> FakeTable:
    return FakeTable()

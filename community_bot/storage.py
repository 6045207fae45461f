from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Protocol

from boto3.dynamodb.conditions import Attr

from .models import Giveaway, warning_key

log = logging.getLogger("community-storage")


class CommunityStorage(Protocol):
    """Keyed record stores shared by the giveaway, invite and moderation code.

    There are no transactions across stores. Callers that read, decide and
    write the same key serialize themselves with a ``KeyedLock``.
    """

    def initialize(self) -> None: ...

    def get_giveaway(self, message_id: str) -> Giveaway | None: ...

    def save_giveaway(self, giveaway: Giveaway) -> None: ...

    def list_giveaways(self) -> list[Giveaway]: ...

    def get_warning_count(self, guild_id: str, user_id: str) -> int: ...

    def increment_warning(self, guild_id: str, user_id: str) -> int: ...

    def get_invite_credit(self, user_id: str) -> int: ...

    def increment_invite_credit(self, user_id: str) -> int: ...


class JsonFileStorage:
    """JSON documents on disk, one file per record type.

    Unreadable or malformed files are treated as empty so that one corrupted
    read never takes the bot down.
    """

    GIVEAWAYS_FILE = "giveaways.json"
    WARNINGS_FILE = "warnings.json"
    INVITES_FILE = "invites.json"

    def __init__(self, data_dir: str | os.PathLike[str]) -> None:
        self.data_dir = Path(data_dir)
        self.giveaways_path = self.data_dir / self.GIVEAWAYS_FILE
        self.warnings_path = self.data_dir / self.WARNINGS_FILE
        self.invites_path = self.data_dir / self.INVITES_FILE

    def initialize(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        for path, empty in (
            (self.giveaways_path, []),
            (self.warnings_path, {}),
            (self.invites_path, {}),
        ):
            if not path.exists():
                self._write(path, empty)

    # ----- file helpers -----
    def _read(self, path: Path, expected: type[list] | type[dict]):
        if not path.exists():
            return expected()
        try:
            raw = path.read_text(encoding="utf-8")
            data = json.loads(raw) if raw.strip() else expected()
        except (OSError, ValueError) as exc:
            log.warning("Treating unreadable store %s as empty: %s", path, exc)
            return expected()
        if not isinstance(data, expected):
            log.warning(
                "Treating store %s as empty: expected %s, found %s",
                path,
                expected.__name__,
                type(data).__name__,
            )
            return expected()
        return data

    def _write(self, path: Path, data: object) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, indent=2)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    # ----- Giveaways -----
    def _load_giveaway_docs(self) -> list[dict[str, object]]:
        return [doc for doc in self._read(self.giveaways_path, list) if isinstance(doc, dict)]

    def get_giveaway(self, message_id: str) -> Giveaway | None:
        for doc in self._load_giveaway_docs():
            if str(doc.get("message_id")) == message_id:
                return self._decode_giveaway(doc)
        return None

    def save_giveaway(self, giveaway: Giveaway) -> None:
        docs = self._load_giveaway_docs()
        encoded = giveaway.to_dict()
        for idx, doc in enumerate(docs):
            if str(doc.get("message_id")) == giveaway.message_id:
                docs[idx] = encoded
                break
        else:
            docs.append(encoded)
        self._write(self.giveaways_path, docs)

    def list_giveaways(self) -> list[Giveaway]:
        giveaways = []
        for doc in self._load_giveaway_docs():
            giveaway = self._decode_giveaway(doc)
            if giveaway is not None:
                giveaways.append(giveaway)
        return giveaways

    @staticmethod
    def _decode_giveaway(doc: dict[str, object]) -> Giveaway | None:
        try:
            return Giveaway.from_dict(doc)
        except (KeyError, TypeError, ValueError) as exc:
            log.warning("Skipping malformed giveaway record %r: %s", doc, exc)
            return None

    # ----- Warnings -----
    def get_warning_count(self, guild_id: str, user_id: str) -> int:
        warnings = self._read(self.warnings_path, dict)
        return int(warnings.get(warning_key(guild_id, user_id), 0))

    def increment_warning(self, guild_id: str, user_id: str) -> int:
        warnings = self._read(self.warnings_path, dict)
        key = warning_key(guild_id, user_id)
        warnings[key] = int(warnings.get(key, 0)) + 1
        self._write(self.warnings_path, warnings)
        return warnings[key]

    # ----- Inviter credits -----
    def get_invite_credit(self, user_id: str) -> int:
        credits = self._read(self.invites_path, dict)
        return int(credits.get(user_id, 0))

    def increment_invite_credit(self, user_id: str) -> int:
        credits = self._read(self.invites_path, dict)
        credits[user_id] = int(credits.get(user_id, 0)) + 1
        self._write(self.invites_path, credits)
        return credits[user_id]


class DynamoStorage:
    """Single-table DynamoDB layout for the same three record stores."""

    WARNING_PK_TEMPLATE = "GUILD#%s"
    WARNING_SK_TEMPLATE = "WARN#%s"
    CREDIT_PK_TEMPLATE = "INVITER#%s"
    CREDIT_SK_VALUE = "CREDITS"

    def __init__(self, table) -> None:
        self._table = table

    def ensure_table(self) -> None:
        if self._table is None:
            raise RuntimeError("Community table is not configured")

    def initialize(self) -> None:
        self.ensure_table()

    # ----- Giveaways -----
    def get_giveaway(self, message_id: str) -> Giveaway | None:
        self.ensure_table()
        resp = self._table.get_item(Key=Giveaway.key(message_id))
        item = resp.get("Item")
        if not item:
            return None
        return Giveaway.from_item(item)

    def save_giveaway(self, giveaway: Giveaway) -> None:
        self.ensure_table()
        self._table.put_item(Item=giveaway.to_item())

    def list_giveaways(self) -> list[Giveaway]:
        self.ensure_table()
        giveaways: list[Giveaway] = []
        scan_kwargs: dict[str, object] = {
            "FilterExpression": Attr("entity").eq(Giveaway.ENTITY)
        }
        while True:
            resp = self._table.scan(**scan_kwargs)
            for item in resp.get("Items", []):
                try:
                    giveaways.append(Giveaway.from_item(item))
                except (KeyError, TypeError, ValueError) as exc:
                    log.warning("Skipping malformed giveaway item %r: %s", item, exc)
            last_key = resp.get("LastEvaluatedKey")
            if not last_key:
                break
            scan_kwargs["ExclusiveStartKey"] = last_key
        return giveaways

    # ----- Counters -----
    def _get_counter(self, key: dict[str, str], attribute: str) -> int:
        self.ensure_table()
        item = self._table.get_item(Key=key).get("Item")
        if not item:
            return 0
        return int(item.get(attribute, 0))

    def _increment_counter(self, key: dict[str, str], attribute: str) -> int:
        self.ensure_table()
        resp = self._table.update_item(
            Key=key,
            UpdateExpression=f"ADD {attribute} :one",
            ExpressionAttributeValues={":one": 1},
            ReturnValues="UPDATED_NEW",
        )
        return int(resp.get("Attributes", {}).get(attribute, 0))

    def _warning_key(self, guild_id: str, user_id: str) -> dict[str, str]:
        return {
            "pk": self.WARNING_PK_TEMPLATE % guild_id,
            "sk": self.WARNING_SK_TEMPLATE % user_id,
        }

    def _credit_key(self, user_id: str) -> dict[str, str]:
        return {"pk": self.CREDIT_PK_TEMPLATE % user_id, "sk": self.CREDIT_SK_VALUE}

    def get_warning_count(self, guild_id: str, user_id: str) -> int:
        return self._get_counter(self._warning_key(guild_id, user_id), "warning_count")

    def increment_warning(self, guild_id: str, user_id: str) -> int:
        return self._increment_counter(
            self._warning_key(guild_id, user_id), "warning_count"
        )

    def get_invite_credit(self, user_id: str) -> int:
        return self._get_counter(self._credit_key(user_id), "invite_count")

    def increment_invite_credit(self, user_id: str) -> int:
        return self._increment_counter(self._credit_key(user_id), "invite_count")


__all__ = ["CommunityStorage", "DynamoStorage", "JsonFileStorage"]

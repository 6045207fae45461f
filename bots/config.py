"""Configuration helpers for the community bot runtime."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def env_bool(name: str, *, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    return default


def env_int(name: str, *, default: int | None = None) -> int | None:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def env_list(name: str, *, default: tuple[str, ...] = ()) -> tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None:
        return default
    items = tuple(part.strip() for part in raw.split(",") if part.strip())
    return items or default


@dataclass(frozen=True, slots=True)
class EnvironmentConfig:
    discord_token: str
    guild_id: int | None
    admin_role_name: str
    data_dir: Path
    log_dir: Path
    table_name: str | None
    aws_region: str
    bad_words: tuple[str, ...]
    log_level: str

    @classmethod
    def load(cls) -> "EnvironmentConfig":
        missing: list[str] = []

        def need(name: str) -> str:
            value = os.getenv(name)
            if not value:
                missing.append(name)
                return ""
            return value

        discord_token = need("DISCORD_TOKEN")

        if missing:
            raise RuntimeError("Missing env vars: " + ", ".join(sorted(set(missing))))

        return cls(
            discord_token=discord_token,
            guild_id=env_int("GUILD_ID"),
            admin_role_name=os.getenv("ADMIN_ROLE_NAME") or "Admin",
            data_dir=Path(os.getenv("DATA_DIR") or "data"),
            log_dir=Path(os.getenv("LOG_DIR") or "logs"),
            table_name=os.getenv("COMMUNITY_TABLE_NAME") or None,
            aws_region=os.getenv("AWS_REGION", "us-east-1"),
            bad_words=env_list("BAD_WORDS"),
            log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
        )

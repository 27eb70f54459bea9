from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping

import yaml

from .core.errors import ConfigError
from .core.normalize import coerce_int

DEFAULT_PAGE_URL = "http://www.wowhead.com/world-quests/na"
DEFAULT_DATABASE_URL = "sqlite+pysqlite:///wq_tracker.db"
DEFAULT_WATCH_LIST: dict[int, str] = {
    41896: "Operation Murloc Freedom",
    42023: "Black Rook Rumble",
    42025: "Bareback Brawl",
    41013: "Darkbrul Arena",
}


def parse_watch_list(raw: str, name: str = "WQ_WATCHLIST_YAML") -> dict[int, str]:
    """Parse a YAML mapping of quest id -> display name.

    A bare YAML list of ids is accepted too; those entries get a placeholder
    name until the quest record supplies a real one.
    """
    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid {name}: {exc}") from exc
    if isinstance(data, list):
        data = {entry: f"Quest {entry}" for entry in data}
    if not isinstance(data, dict):
        raise ConfigError(f"{name} must be a YAML mapping of quest id to name.")
    out: dict[int, str] = {}
    for key, value in data.items():
        quest_id = coerce_int(key)
        if quest_id is None:
            raise ConfigError(f"{name} has a non-integer quest id: {key!r}")
        out[quest_id] = str(value) if value is not None else f"Quest {quest_id}"
    return out


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    value = coerce_int(raw)
    if value is None:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")
    return value


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc


def _env_bool(env: Mapping[str, str], name: str, default: bool = False) -> bool:
    raw = (env.get(name) or "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class TrackerConfig:
    page_url: str = DEFAULT_PAGE_URL
    database_url: str = DEFAULT_DATABASE_URL
    watch_list: dict[int, str] = field(default_factory=lambda: dict(DEFAULT_WATCH_LIST))
    alert_email: str = ""
    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    tz_offset_minutes: int = -360
    max_parallel: int = 5
    fetch_timeout: float = 30.0
    port: int = 3000
    dry_run: bool = False
    log_level: str = "INFO"

    @property
    def alert_sender(self) -> str:
        return f"WQ Tracker<{self.alert_email}>"

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "TrackerConfig":
        env = os.environ if env is None else env
        raw_watch = (env.get("WQ_WATCHLIST_YAML") or "").strip()
        watch_list = parse_watch_list(raw_watch) if raw_watch else dict(DEFAULT_WATCH_LIST)
        max_parallel = _env_int(env, "WQ_MAX_PARALLEL", 5)
        if max_parallel < 1:
            raise ConfigError("WQ_MAX_PARALLEL must be at least 1")
        return cls(
            page_url=(env.get("WQ_PAGE_URL") or DEFAULT_PAGE_URL).strip(),
            database_url=(env.get("WQ_DATABASE_URL") or DEFAULT_DATABASE_URL).strip(),
            watch_list=watch_list,
            alert_email=(env.get("WQ_ALERT_EMAIL") or "").strip(),
            smtp_host=(env.get("WQ_SMTP_HOST") or "localhost").strip(),
            smtp_port=_env_int(env, "WQ_SMTP_PORT", 587),
            smtp_username=(env.get("WQ_SMTP_USERNAME") or "").strip(),
            smtp_password=env.get("WQ_SMTP_PASSWORD") or "",
            tz_offset_minutes=_env_int(env, "WQ_TZ_OFFSET_MINUTES", -360),
            max_parallel=max_parallel,
            fetch_timeout=_env_float(env, "WQ_FETCH_TIMEOUT", 30.0),
            port=_env_int(env, "PORT", 3000),
            dry_run=_env_bool(env, "DRY_RUN"),
            log_level=(env.get("LOG_LEVEL") or "INFO").strip().upper(),
        )

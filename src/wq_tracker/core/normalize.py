from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any

from .classify import NAME_FIELD
from .types import ItemRecord, ListingEntry

_NUMERIC = re.compile(r"-?\d+(?:\.\d+)?")
_INTEGER = re.compile(r"-?\d+")


def utcnow() -> datetime:
    """Naive UTC ``now``; stored timestamps carry no tzinfo."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def coerce_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and _INTEGER.fullmatch(value.strip()):
        return int(value.strip())
    return None


def coerce_int_list(value: Any) -> tuple[int, ...]:
    if value is None:
        return ()
    if not isinstance(value, (list, tuple)):
        value = [value]
    out: list[int] = []
    for raw in value:
        parsed = coerce_int(raw)
        if parsed is not None and parsed not in out:
            out.append(parsed)
    return tuple(out)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a listing ``ending`` into naive UTC.

    Numbers (and numeric strings) are epoch milliseconds; other strings
    are ISO 8601, with ``Z`` accepted as UTC.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        if _NUMERIC.fullmatch(raw):
            value = float(raw)
        else:
            if raw.endswith(("Z", "z")):
                raw = raw[:-1] + "+00:00"
            try:
                parsed = datetime.fromisoformat(raw)
            except ValueError:
                return None
            if parsed.tzinfo is not None:
                parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
            return parsed
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc).replace(tzinfo=None)
        except (OverflowError, OSError, ValueError):
            return None
    return None


def normalize_listing_entry(raw: Any) -> tuple[ListingEntry | None, str | None]:
    if not isinstance(raw, dict):
        return None, "entry_not_object"
    quest_id = coerce_int(raw.get("id"))
    if quest_id is None:
        return None, "missing_id"
    ending = parse_timestamp(raw.get("ending"))
    if ending is None:
        return None, "invalid_ending"
    return (
        ListingEntry(
            quest_id=quest_id,
            ending=ending,
            quest_type=coerce_int(raw.get("worldquesttype")),
            faction_ids=coerce_int_list(raw.get("factions")),
            zone_ids=coerce_int_list(raw.get("zones")),
        ),
        None,
    )


def block_name(block: dict[str, Any], fallback_id: int) -> str:
    name = block.get(NAME_FIELD)
    if isinstance(name, str) and name.strip():
        return name.strip()
    return f"#{fallback_id}"


def item_from_block(item_id: int, block: dict[str, Any]) -> ItemRecord:
    icon = block.get("icon")
    return ItemRecord(
        id=item_id,
        name=block_name(block, item_id),
        quality=coerce_int(block.get("quality")),
        icon=str(icon) if icon is not None else None,
    )

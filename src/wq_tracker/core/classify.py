from __future__ import annotations

from typing import Any, Mapping

from .types import EntityKind

ITEM_STATS_FIELD = "jsonequip"
REQ_CLASS_FIELD = "reqclass"
REQ_RACE_FIELD = "reqrace"
NAME_FIELD = "name_enus"


def classify(block: Mapping[str, Any] | Any) -> EntityKind:
    # rule order matters: a quest or item block also carries a name
    if not isinstance(block, Mapping):
        return EntityKind.UNKNOWN
    if ITEM_STATS_FIELD in block:
        return EntityKind.ITEM
    if REQ_CLASS_FIELD in block and REQ_RACE_FIELD in block:
        return EntityKind.QUEST
    if len(block) == 1 and NAME_FIELD in block:
        return EntityKind.FACTION
    return EntityKind.UNKNOWN

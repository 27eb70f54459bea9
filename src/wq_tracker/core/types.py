from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

QUEST_TYPE_UNSET = -1
EPOCH = datetime(1970, 1, 1)


class AnchorKind(enum.Enum):
    ZONE = "zone"
    RECORD = "record"
    QUEST_LISTING = "quest_listing"


class EntityKind(enum.Enum):
    ITEM = "item"
    QUEST = "quest"
    FACTION = "faction"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Anchor:
    kind: AnchorKind
    id: Optional[int]
    span: str


@dataclass(frozen=True)
class ItemRecord:
    id: int
    name: str
    quality: Optional[int] = None
    icon: Optional[str] = None


@dataclass(frozen=True)
class NamedRecord:
    """A Zone or a Faction."""

    id: int
    name: str


@dataclass(frozen=True)
class QuestRecord:
    id: int
    name: str
    last_seen: datetime = EPOCH
    type: int = QUEST_TYPE_UNSET
    faction_ids: frozenset[int] = frozenset()
    zone_ids: frozenset[int] = frozenset()

    @property
    def initialized(self) -> bool:
        return self.type != QUEST_TYPE_UNSET


@dataclass(frozen=True)
class InstanceRecord:
    quest_id: int
    ending: datetime
    id: Optional[str] = None


@dataclass(frozen=True)
class ListingEntry:
    quest_id: int
    ending: datetime
    quest_type: Optional[int] = None
    faction_ids: tuple[int, ...] = ()
    zone_ids: tuple[int, ...] = ()


@dataclass(frozen=True)
class CycleIssue:
    code: str
    message: str
    fatal: bool = False
    ref_id: Optional[int] = None


@dataclass(frozen=True)
class Alert:
    subject: str
    body: str
    quest_ids: tuple[int, ...] = ()


@dataclass
class ReconciliationState:
    items: dict[int, ItemRecord] = field(default_factory=dict)
    quests: dict[int, QuestRecord] = field(default_factory=dict)
    factions: dict[int, NamedRecord] = field(default_factory=dict)
    zones: dict[int, NamedRecord] = field(default_factory=dict)
    active_instances: dict[int, InstanceRecord] = field(default_factory=dict)


@dataclass
class CycleResult:
    status: str
    new_quest_ids: frozenset[int] = frozenset()
    created: dict[str, int] = field(default_factory=dict)
    expired: int = 0
    issues: list[CycleIssue] = field(default_factory=list)
    alert: Optional[Alert] = None

    @property
    def fatal_issue(self) -> CycleIssue | None:
        for issue in self.issues:
            if issue.fatal:
                return issue
        return None

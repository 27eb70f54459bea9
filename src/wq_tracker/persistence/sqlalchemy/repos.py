from __future__ import annotations

import json
from datetime import datetime
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from ...core.normalize import utcnow
from ...core.types import EPOCH, QUEST_TYPE_UNSET
from .models import Faction, Item, Quest, QuestInstance, Zone


class ItemRepo:
    def __init__(self, session: Session):
        self.session = session

    def create(self, item_id: int, name: str, quality: int | None = None, icon: str | None = None) -> Item:
        row = Item(id=item_id, name=name, quality=quality, icon=icon)
        self.session.add(row)
        self.session.flush()
        return row

    def list_all(self) -> list[Item]:
        return list(self.session.execute(select(Item)).scalars().all())


class FactionRepo:
    def __init__(self, session: Session):
        self.session = session

    def create(self, faction_id: int, name: str) -> Faction:
        row = Faction(id=faction_id, name=name)
        self.session.add(row)
        self.session.flush()
        return row

    def list_all(self) -> list[Faction]:
        return list(self.session.execute(select(Faction)).scalars().all())


class ZoneRepo:
    def __init__(self, session: Session):
        self.session = session

    def create(self, zone_id: int, name: str) -> Zone:
        row = Zone(id=zone_id, name=name)
        self.session.add(row)
        self.session.flush()
        return row

    def list_all(self) -> list[Zone]:
        return list(self.session.execute(select(Zone)).scalars().all())


class QuestRepo:
    def __init__(self, session: Session):
        self.session = session

    def create(
        self,
        quest_id: int,
        name: str,
        last_seen: datetime = EPOCH,
        type: int = QUEST_TYPE_UNSET,
    ) -> Quest:
        row = Quest(id=quest_id, name=name, last_seen=last_seen, type=type, factions=[], zones=[])
        self.session.add(row)
        self.session.flush()
        return row

    def list_all(self) -> list[Quest]:
        return list(self.session.execute(select(Quest)).scalars().all())

    def update(
        self,
        quest_id: int,
        *,
        last_seen: datetime | None = None,
        type: int | None = None,
        connect_factions: Iterable[int] = (),
        connect_zones: Iterable[int] = (),
    ) -> Quest:
        row = self.session.get(Quest, quest_id)
        if row is None:
            raise LookupError(f"Quest {quest_id} does not exist")
        if last_seen is not None:
            row.last_seen = last_seen
        if type is not None:
            row.type = type
        known_factions = {f.id for f in row.factions}
        for faction_id in connect_factions:
            if faction_id in known_factions:
                continue
            faction = self.session.get(Faction, faction_id)
            if faction is None:
                raise LookupError(f"Faction {faction_id} does not exist")
            row.factions.append(faction)
            known_factions.add(faction_id)
        known_zones = {z.id for z in row.zones}
        for zone_id in connect_zones:
            if zone_id in known_zones:
                continue
            zone = self.session.get(Zone, zone_id)
            if zone is None:
                raise LookupError(f"Zone {zone_id} does not exist")
            row.zones.append(zone)
            known_zones.add(zone_id)
        row.updated_at = utcnow()
        self.session.flush()
        return row


class QuestInstanceRepo:
    def __init__(self, session: Session):
        self.session = session

    def create(self, quest_id: int, ending: datetime, rewards: list | None = None) -> QuestInstance:
        row = QuestInstance(
            quest_id=quest_id,
            ending=ending,
            rewards_json=json.dumps(rewards or [], separators=(",", ":")),
        )
        self.session.add(row)
        self.session.flush()
        return row

    def list_active(self, ending_after: datetime) -> list[QuestInstance]:
        stmt = (
            select(QuestInstance)
            .where(QuestInstance.ending > ending_after)
            .order_by(QuestInstance.quest_id, QuestInstance.ending)
        )
        return list(self.session.execute(stmt).scalars().all())

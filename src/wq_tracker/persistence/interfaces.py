from __future__ import annotations

from datetime import datetime
from typing import Iterable, Protocol


class ItemRepo(Protocol):
    def create(self, item_id: int, name: str, quality: int | None = None, icon: str | None = None): ...
    def list_all(self): ...


class FactionRepo(Protocol):
    def create(self, faction_id: int, name: str): ...
    def list_all(self): ...


class ZoneRepo(Protocol):
    def create(self, zone_id: int, name: str): ...
    def list_all(self): ...


class QuestRepo(Protocol):
    def create(self, quest_id: int, name: str, last_seen: datetime = ..., type: int = ...): ...
    def list_all(self): ...
    def update(
        self,
        quest_id: int,
        *,
        last_seen: datetime | None = None,
        type: int | None = None,
        connect_factions: Iterable[int] = (),
        connect_zones: Iterable[int] = (),
    ): ...


class QuestInstanceRepo(Protocol):
    def create(self, quest_id: int, ending: datetime, rewards: list | None = None): ...
    def list_active(self, ending_after: datetime): ...


class UnitOfWork(Protocol):
    items: ItemRepo
    factions: FactionRepo
    zones: ZoneRepo
    quests: QuestRepo
    quest_instances: QuestInstanceRepo

    def commit(self) -> None: ...
    def rollback(self) -> None: ...

    def __enter__(self) -> "UnitOfWork": ...
    def __exit__(self, exc_type, exc, tb) -> None: ...

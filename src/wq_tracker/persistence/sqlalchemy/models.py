from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Table, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ...core.types import EPOCH, QUEST_TYPE_UNSET
from .base import Base, TimestampMixin


quest_factions = Table(
    "wq_quest_factions",
    Base.metadata,
    Column("quest_id", Integer, ForeignKey("wq_quests.id"), primary_key=True),
    Column("faction_id", Integer, ForeignKey("wq_factions.id"), primary_key=True),
)

quest_zones = Table(
    "wq_quest_zones",
    Base.metadata,
    Column("quest_id", Integer, ForeignKey("wq_quests.id"), primary_key=True),
    Column("zone_id", Integer, ForeignKey("wq_zones.id"), primary_key=True),
)


class Item(TimestampMixin, Base):
    __tablename__ = "wq_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    quality: Mapped[int | None] = mapped_column(Integer, nullable=True)
    icon: Mapped[str | None] = mapped_column(String(128), nullable=True)


class Faction(TimestampMixin, Base):
    __tablename__ = "wq_factions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(256), nullable=False)


class Zone(TimestampMixin, Base):
    __tablename__ = "wq_zones"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(256), nullable=False)


class Quest(TimestampMixin, Base):
    __tablename__ = "wq_quests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    last_seen: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=EPOCH)
    type: Mapped[int] = mapped_column(Integer, nullable=False, default=QUEST_TYPE_UNSET)

    factions: Mapped[list[Faction]] = relationship(secondary=quest_factions, lazy="selectin")
    zones: Mapped[list[Zone]] = relationship(secondary=quest_zones, lazy="selectin")


class QuestInstance(TimestampMixin, Base):
    __tablename__ = "wq_quest_instances"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    quest_id: Mapped[int] = mapped_column(Integer, ForeignKey("wq_quests.id"), nullable=False)
    ending: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    rewards_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")


Index("ix_wq_quest_instance_ending", QuestInstance.ending)
Index("ix_wq_quest_instance_quest_ending", QuestInstance.quest_id, QuestInstance.ending.desc())

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from wq_tracker.core.engine import ReconciliationEngine
from wq_tracker.core.scanner import QUEST_LISTING_MARKER
from wq_tracker.persistence.sqlalchemy.db import build_engine, build_session_factory, create_schema
from wq_tracker.persistence.sqlalchemy.uow import SQLAlchemyUnitOfWork


DEFAULT_ZONES = {7334: "Azsuna", 7502: "Dalaran"}

DEFAULT_RECORDS = [
    "_[41896]{reqclass:0,reqrace:0,name_enus:'Operation Murloc Freedom'};",
    '_[42023]={"reqclass":0,"reqrace":0,"name_enus":"Black Rook Rumble"};',
    "_[43000]={reqclass:0,reqrace:0,name_enus:'Ancient Bones',};",
    '_[1900]={"name_enus":"Court of Farondis"};',
    '_[124124]={"name_enus":"Blood of Sargeras","quality":2,"icon":"inv_blood_of_sargeras","jsonequip":{}};',
    "_[3]={name_enus:'Wowhead Tooltip',tooltip_enus:'<b>hi</b>'};",
]

DEFAULT_LISTING = [
    "{id:41896, ending:'2024-01-01T00:00:00Z', worldquesttype:1, factions:[1900], zones:[7334]}",
    "{id:43000, ending:1704088800000, worldquesttype:2, factions:[], zones:[7502],}",
]


def build_page(
    zones: dict[int, str] | None = None,
    records: list[str] | None = None,
    listing: list[str] | None = None,
    include_listing: bool = True,
) -> str:
    zones = DEFAULT_ZONES if zones is None else zones
    records = DEFAULT_RECORDS if records is None else records
    listing = DEFAULT_LISTING if listing is None else listing

    parts = ["<html><body><div class=\"zones\">"]
    for zone_id, name in zones.items():
        parts.append(f'<a href="http://www.wowhead.com/zone={zone_id}/{name.lower()}">{name}</a>')
    parts.append("</div><script>")
    parts.extend(records)
    if include_listing:
        parts.append(
            f"{QUEST_LISTING_MARKER}{{template:'worldquest',id:'world-quests',"
            f"extraCols:[Listview.extraCols.popularity],data:[{','.join(listing)}]}});"
        )
    parts.append("</script></body></html>")
    return "\n".join(parts)


class FixedClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture()
def session_factory():
    engine = build_engine("sqlite+pysqlite:///:memory:")
    create_schema(engine)
    return build_session_factory(engine)


@pytest.fixture()
def uow_factory(session_factory):
    def _factory():
        return SQLAlchemyUnitOfWork(session_factory)

    return _factory


@pytest.fixture()
def clock():
    return FixedClock(datetime(2023, 12, 31, 12, 0, 0))


@pytest.fixture()
def engine(uow_factory, clock):
    return ReconciliationEngine(uow_factory=uow_factory, clock=clock)


@pytest.fixture()
def page():
    return build_page()

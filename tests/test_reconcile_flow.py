from __future__ import annotations

import asyncio
import logging
import threading
import time
from datetime import datetime
from types import SimpleNamespace

from sqlalchemy import func, select

from conftest import DEFAULT_RECORDS, build_page
from wq_tracker.core.alerts import compose_alert
from wq_tracker.core.engine import ReconciliationEngine
from wq_tracker.core.types import QUEST_TYPE_UNSET, QuestRecord
from wq_tracker.persistence.sqlalchemy.db import build_engine, build_session_factory, create_schema
from wq_tracker.persistence.sqlalchemy.models import Faction, Item, Quest, QuestInstance, Zone
from wq_tracker.persistence.sqlalchemy.repos import QuestInstanceRepo
from wq_tracker.persistence.sqlalchemy.uow import SQLAlchemyUnitOfWork


def _count(session_factory, model) -> int:
    with session_factory() as session:
        return session.execute(select(func.count()).select_from(model)).scalar_one()


def test_first_cycle_discovers_entities_and_instances(engine, page, session_factory):
    result = asyncio.run(engine.run_cycle(page))

    assert result.status == "ok"
    assert result.issues == []
    assert result.new_quest_ids == {41896, 43000}
    assert result.created == {"zone": 2, "item": 1, "quest": 3, "faction": 1, "instance": 2}

    quest = engine.state.quests[41896]
    assert quest.name == "Operation Murloc Freedom"
    assert quest.type == 1
    assert quest.faction_ids == {1900}
    assert quest.zone_ids == {7334}
    assert quest.last_seen == datetime(2024, 1, 1)

    assert engine.state.active_instances[41896].ending == datetime(2024, 1, 1)
    assert engine.state.active_instances[43000].ending == datetime(2024, 1, 1, 6, 0)
    # listed quests only; 42023 is known but not active
    assert 42023 not in engine.state.active_instances
    assert engine.state.quests[42023].type == QUEST_TYPE_UNSET

    item = engine.state.items[124124]
    assert (item.name, item.quality, item.icon) == ("Blood of Sargeras", 2, "inv_blood_of_sargeras")

    with session_factory() as session:
        row = session.get(Quest, 41896)
        assert row.type == 1
        assert [f.id for f in row.factions] == [1900]
        assert [z.id for z in row.zones] == [7334]
        instances = session.execute(select(QuestInstance)).scalars().all()
        assert sorted(i.quest_id for i in instances) == [41896, 43000]
        assert all(i.rewards_json == "[]" for i in instances)
    assert _count(session_factory, Zone) == 2
    assert _count(session_factory, Faction) == 1
    assert _count(session_factory, Item) == 1


def test_watched_quest_example_produces_alert(engine, page):
    result = asyncio.run(engine.run_cycle(page))
    alert = compose_alert(
        result.new_quest_ids,
        {41896: "Operation Murloc Freedom"},
        engine.state.quests,
        engine.state.active_instances,
    )
    assert alert is not None
    assert "Operation Murloc Freedom" in alert.subject
    assert alert.quest_ids == (41896,)


def test_second_identical_cycle_is_idempotent(engine, page, session_factory):
    asyncio.run(engine.run_cycle(page))
    second = asyncio.run(engine.run_cycle(page))

    assert second.status == "ok"
    assert second.new_quest_ids == frozenset()
    assert second.created == {"zone": 0, "item": 0, "quest": 0, "faction": 0, "instance": 0}
    assert _count(session_factory, QuestInstance) == 2
    assert _count(session_factory, Quest) == 3
    assert compose_alert(second.new_quest_ids, {41896: "x"}, engine.state.quests, {}) is None


def test_state_seeded_from_store_survives_restart(engine, page, uow_factory, clock, session_factory):
    asyncio.run(engine.run_cycle(page))

    restarted = ReconciliationEngine(uow_factory=uow_factory, clock=clock)
    state = restarted.load()
    assert set(state.active_instances) == {41896, 43000}
    assert state.quests[41896].type == 1
    assert state.quests[41896].zone_ids == {7334}
    assert set(state.zones) == {7334, 7502}

    result = asyncio.run(restarted.run_cycle(page))
    assert result.new_quest_ids == frozenset()
    assert _count(session_factory, QuestInstance) == 2


def test_load_ignores_instances_that_already_ended(engine, page, uow_factory, clock):
    asyncio.run(engine.run_cycle(page))
    clock.advance(hours=13)  # past 2024-01-01T00:00, before 06:00

    restarted = ReconciliationEngine(uow_factory=uow_factory, clock=clock)
    state = restarted.load()
    assert set(state.active_instances) == {43000}


def test_expired_instance_is_untracked_even_if_listed_again(engine, page, clock, session_factory):
    asyncio.run(engine.run_cycle(page))
    clock.advance(days=2)

    result = asyncio.run(engine.run_cycle(page))

    assert result.expired == 2
    assert engine.state.active_instances == {}
    assert result.new_quest_ids == frozenset()
    # persistent rows are kept, only untracked
    assert _count(session_factory, QuestInstance) == 2


def test_new_occurrence_after_expiry_keeps_one_shot_initialization(engine, page, clock):
    asyncio.run(engine.run_cycle(page))
    clock.advance(days=2)

    later = build_page(
        listing=[
            "{id:41896, ending:'2024-01-03T00:00:00Z', worldquesttype:9, factions:[], zones:[7502]}",
        ]
    )
    result = asyncio.run(engine.run_cycle(later))

    assert result.new_quest_ids == {41896}
    quest = engine.state.quests[41896]
    assert quest.type == 1
    assert quest.faction_ids == {1900}
    assert quest.zone_ids == {7334}
    assert quest.last_seen == datetime(2024, 1, 3)
    assert engine.state.active_instances[41896].ending == datetime(2024, 1, 3)


def test_unknown_quest_in_listing_is_contained(engine, caplog):
    page = build_page(
        listing=[
            "{id:41896, ending:'2024-01-01T00:00:00Z', worldquesttype:1, factions:[], zones:[]}",
            "{id:99999, ending:'2024-01-01T00:00:00Z', worldquesttype:1, factions:[], zones:[]}",
            "{id:43000, ending:'2024-01-01T00:00:00Z', worldquesttype:2, factions:[], zones:[]}",
        ]
    )
    with caplog.at_level(logging.WARNING, logger="wq_tracker.core.engine"):
        result = asyncio.run(engine.run_cycle(page))

    assert result.status == "ok"
    assert result.new_quest_ids == {41896, 43000}
    assert [(i.code, i.ref_id, i.fatal) for i in result.issues] == [("missing_quest", 99999, False)]
    assert "Could not find Quest with id: 99999" in caplog.text


def test_unresolvable_relations_are_skipped_individually(engine):
    page = build_page(
        listing=["{id:41896, ending:'2024-01-01T00:00:00Z', worldquesttype:1, factions:[1900,555], zones:[7334,8]}"]
    )
    result = asyncio.run(engine.run_cycle(page))

    assert result.new_quest_ids == {41896}
    assert sorted((i.code, i.ref_id) for i in result.issues) == [("missing_faction", 555), ("missing_zone", 8)]
    assert engine.state.quests[41896].faction_ids == {1900}
    assert engine.state.quests[41896].zone_ids == {7334}


def test_duplicate_listing_entries_create_one_instance(engine, session_factory):
    entry = "{id:41896, ending:'2024-01-01T00:00:00Z', worldquesttype:1, factions:[], zones:[]}"
    result = asyncio.run(engine.run_cycle(build_page(listing=[entry, entry, entry])))

    assert result.new_quest_ids == {41896}
    assert _count(session_factory, QuestInstance) == 1


def test_listing_entry_that_already_ended_is_not_tracked(engine, session_factory):
    page = build_page(
        listing=["{id:41896, ending:'2023-12-30T00:00:00Z', worldquesttype:1, factions:[], zones:[]}"]
    )
    result = asyncio.run(engine.run_cycle(page))

    assert result.new_quest_ids == frozenset()
    assert _count(session_factory, QuestInstance) == 0
    assert engine.state.quests[41896].type == QUEST_TYPE_UNSET


def test_malformed_listing_entries_are_non_fatal(engine):
    page = build_page(
        listing=[
            "{ending:'2024-01-01T00:00:00Z'}",
            "{id:41896, ending:'not a date'}",
            "'just a string'",
            "{id:43000, ending:'2024-01-01T00:00:00Z', worldquesttype:2}",
        ]
    )
    result = asyncio.run(engine.run_cycle(page))

    assert result.status == "ok"
    assert result.new_quest_ids == {43000}
    assert [i.code for i in result.issues] == ["bad_entry", "bad_entry", "bad_entry"]


def test_bad_record_is_skipped_without_stopping_discovery(engine):
    records = ["_[5]={name_enus:'broken' oops};"] + DEFAULT_RECORDS
    result = asyncio.run(engine.run_cycle(build_page(records=records)))

    assert result.status == "ok"
    assert [(i.code, i.ref_id) for i in result.issues] == [("record_parse", 5)]
    assert set(engine.state.quests) == {41896, 42023, 43000}
    assert result.new_quest_ids == {41896, 43000}


def test_missing_listing_marker_is_fatal(engine, session_factory):
    result = asyncio.run(engine.run_cycle(build_page(include_listing=False)))

    assert result.status == "fatal"
    assert result.fatal_issue is not None
    assert result.fatal_issue.code == "format"
    assert result.new_quest_ids == frozenset()
    # discovery ran before the listing was needed
    assert _count(session_factory, Quest) == 3
    assert _count(session_factory, QuestInstance) == 0


def test_unparseable_listing_is_fatal(engine):
    page = build_page().replace("data:[", "data:[{id:", 1)
    result = asyncio.run(engine.run_cycle(page))

    assert result.status == "fatal"
    assert result.fatal_issue.code == "format"


def test_store_failure_on_one_entry_rolls_back_only_that_entry(engine, session_factory, monkeypatch):
    original = QuestInstanceRepo.create

    def flaky_create(self, quest_id, ending, rewards=None):
        if quest_id == 43000:
            raise RuntimeError("disk full")
        return original(self, quest_id, ending, rewards)

    monkeypatch.setattr(QuestInstanceRepo, "create", flaky_create)
    result = asyncio.run(engine.run_cycle(build_page()))

    assert result.status == "ok"
    assert result.new_quest_ids == {41896}
    assert [(i.code, i.ref_id) for i in result.issues] == [("store_error", 43000)]
    assert 43000 not in engine.state.active_instances
    with session_factory() as session:
        assert session.get(Quest, 43000).type == QUEST_TYPE_UNSET
        assert [i.quest_id for i in session.execute(select(QuestInstance)).scalars()] == [41896]


class _InFlightStore:
    """Unit-of-work double that records how many units of work overlap."""

    def __init__(self, delay: float = 0.05):
        self.delay = delay
        self.in_flight = 0
        self.peak = 0
        self.created: list[int] = []
        self._lock = threading.Lock()

    def __call__(self):
        return _InFlightUnitOfWork(self)


class _InFlightUnitOfWork:
    def __init__(self, store: _InFlightStore):
        self.store = store
        self.quest_instances = self
        self.quests = self

    def __enter__(self):
        with self.store._lock:
            self.store.in_flight += 1
            self.store.peak = max(self.store.peak, self.store.in_flight)
        return self

    def __exit__(self, exc_type, exc, tb):
        with self.store._lock:
            self.store.in_flight -= 1

    def create(self, quest_id, ending, rewards=None):
        time.sleep(self.store.delay)
        with self.store._lock:
            self.store.created.append(quest_id)
        return SimpleNamespace(id=f"instance-{quest_id}", quest_id=quest_id, ending=ending)

    def update(self, quest_id, *, last_seen=None, type=None, connect_factions=(), connect_zones=()):
        return SimpleNamespace(id=quest_id, name=f"Quest {quest_id}", last_seen=last_seen, type=1, factions=[], zones=[])

    def commit(self):
        pass


def _listing_only_engine(store, clock, quest_ids, max_parallel):
    engine = ReconciliationEngine(uow_factory=store, clock=clock, max_parallel=max_parallel)
    for quest_id in quest_ids:
        engine.state.quests[quest_id] = QuestRecord(id=quest_id, name=f"Quest {quest_id}", type=1)
    return engine


def _listing_page(quest_ids):
    return build_page(
        zones={},
        records=[],
        listing=[f"{{id:{qid}, ending:'2024-01-01T00:00:00Z', worldquesttype:1}}" for qid in quest_ids],
    )


def test_listing_fan_out_is_bounded_by_max_parallel(clock):
    quest_ids = list(range(100, 112))
    store = _InFlightStore()
    engine = _listing_only_engine(store, clock, quest_ids, max_parallel=3)

    result = asyncio.run(engine.run_cycle(_listing_page(quest_ids)))

    assert result.new_quest_ids == set(quest_ids)
    assert sorted(store.created) == quest_ids
    assert 1 < store.peak <= 3


def test_single_slot_fan_out_runs_one_entry_at_a_time(clock):
    quest_ids = [100, 101, 102, 103]
    store = _InFlightStore(delay=0.01)
    engine = _listing_only_engine(store, clock, quest_ids, max_parallel=1)

    result = asyncio.run(engine.run_cycle(_listing_page(quest_ids)))

    assert result.new_quest_ids == set(quest_ids)
    assert store.peak == 1


def test_concurrent_duplicates_for_one_quest_are_serialised(clock):
    store = _InFlightStore()
    engine = _listing_only_engine(store, clock, [100], max_parallel=4)

    result = asyncio.run(engine.run_cycle(_listing_page([100, 100, 100, 100])))

    assert result.new_quest_ids == {100}
    assert store.created == [100]
    assert store.peak == 1


def test_deeply_nested_record_is_a_record_parse_issue(engine):
    records = ["_[7]={a:" + "[" * 5000 + "]" * 5000 + "};"] + DEFAULT_RECORDS
    result = asyncio.run(engine.run_cycle(build_page(records=records)))

    assert result.status == "ok"
    assert [(i.code, i.ref_id) for i in result.issues] == [("record_parse", 7)]
    assert result.new_quest_ids == {41896, 43000}


def test_deeply_nested_listing_is_fatal(engine):
    entry = "{id:41896, ending:'2024-01-01T00:00:00Z', zones:" + "[" * 5000 + "]" * 5000 + "}"
    result = asyncio.run(engine.run_cycle(build_page(listing=[entry])))

    assert result.status == "fatal"
    assert result.fatal_issue.code == "format"
    assert "Nesting too deep" in result.fatal_issue.message


def test_cycle_against_file_database(tmp_path, clock, page):
    db_engine = build_engine(f"sqlite+pysqlite:///{tmp_path / 'wq.db'}")
    create_schema(db_engine)
    session_factory = build_session_factory(db_engine)
    engine = ReconciliationEngine(uow_factory=lambda: SQLAlchemyUnitOfWork(session_factory), clock=clock)

    result = asyncio.run(engine.run_cycle(page))

    assert result.status == "ok"
    assert result.new_quest_ids == {41896, 43000}
    assert _count(session_factory, QuestInstance) == 2

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable

from ..persistence.interfaces import UnitOfWork
from .classify import classify
from .errors import AnchorNotFound, ParseError
from .lenient import parse_block
from .normalize import block_name, item_from_block, normalize_listing_entry, utcnow
from .scanner import QUEST_LISTING_MARKER, PageScan, scan_page
from .types import (
    CycleIssue,
    CycleResult,
    EntityKind,
    InstanceRecord,
    ItemRecord,
    ListingEntry,
    NamedRecord,
    QuestRecord,
    ReconciliationState,
)

logger = logging.getLogger(__name__)


def _quest_record(row: Any) -> QuestRecord:
    return QuestRecord(
        id=row.id,
        name=row.name,
        last_seen=row.last_seen,
        type=row.type,
        faction_ids=frozenset(f.id for f in row.factions),
        zone_ids=frozenset(z.id for z in row.zones),
    )


class ReconciliationEngine:
    """Owns the in-memory entity indexes and merges each page scan into them.

    Indexes are seeded from the store by :meth:`load` and only mutated after
    the matching unit of work has committed, so memory never runs ahead of
    the store.
    """

    def __init__(
        self,
        uow_factory: Callable[[], UnitOfWork],
        clock: Callable[[], datetime] | None = None,
        max_parallel: int = 5,
        listing_marker: str = QUEST_LISTING_MARKER,
    ):
        self._uow_factory = uow_factory
        self._clock = clock or utcnow
        self._max_parallel = max(1, int(max_parallel))
        self._listing_marker = listing_marker
        self.state = ReconciliationState()

    def load(self) -> ReconciliationState:
        now = self._clock()
        state = ReconciliationState()
        with self._uow_factory() as uow:
            for row in uow.items.list_all():
                state.items[row.id] = ItemRecord(id=row.id, name=row.name, quality=row.quality, icon=row.icon)
            for row in uow.factions.list_all():
                state.factions[row.id] = NamedRecord(id=row.id, name=row.name)
            for row in uow.zones.list_all():
                state.zones[row.id] = NamedRecord(id=row.id, name=row.name)
            for row in uow.quests.list_all():
                state.quests[row.id] = _quest_record(row)
            for row in uow.quest_instances.list_active(now):
                current = state.active_instances.get(row.quest_id)
                if current is None or row.ending > current.ending:
                    state.active_instances[row.quest_id] = InstanceRecord(
                        quest_id=row.quest_id,
                        ending=row.ending,
                        id=row.id,
                    )
        self.state = state
        logger.info(
            "Loaded state: %d items, %d quests, %d factions, %d zones, %d active instances",
            len(state.items),
            len(state.quests),
            len(state.factions),
            len(state.zones),
            len(state.active_instances),
        )
        return state

    async def run_cycle(self, page_text: str) -> CycleResult:
        now = self._clock()
        issues: list[CycleIssue] = []
        created = {"zone": 0, "item": 0, "quest": 0, "faction": 0, "instance": 0}

        expired = self._expire(now)
        scan = scan_page(page_text, self._listing_marker)
        self._discover_zones(scan, created, issues)
        self._discover_records(scan, created, issues)

        try:
            entries = self._read_listing(scan)
        except (AnchorNotFound, ParseError) as exc:
            self._record_issue(issues, "format", str(exc), fatal=True)
            return CycleResult(status="fatal", created=created, expired=expired, issues=issues)

        new_quest_ids = await self._process_listing(entries, now, issues)
        created["instance"] = len(new_quest_ids)
        if new_quest_ids:
            logger.info("Added Quests: %s", ", ".join(str(qid) for qid in sorted(new_quest_ids)))
        return CycleResult(
            status="ok",
            new_quest_ids=frozenset(new_quest_ids),
            created=created,
            expired=expired,
            issues=issues,
        )

    def _expire(self, now: datetime) -> int:
        active = self.state.active_instances
        stale = [quest_id for quest_id, instance in active.items() if instance.ending <= now]
        for quest_id in stale:
            del active[quest_id]
        if stale:
            logger.debug("Expired %d quest instances", len(stale))
        return len(stale)

    def _discover_zones(self, scan: PageScan, created: dict[str, int], issues: list[CycleIssue]) -> None:
        zones = self.state.zones
        for anchor in scan.zones():
            zone_id = anchor.id
            if zone_id is None or zone_id in zones:
                continue
            name = anchor.span or f"#{zone_id}"
            try:
                with self._uow_factory() as uow:
                    uow.zones.create(zone_id, name)
                    uow.commit()
            except Exception as exc:
                self._record_issue(issues, "store_error", f"Could not create Zone {zone_id}: {exc}", ref_id=zone_id)
                continue
            logger.debug("Creating Zone: %s - %s", zone_id, name)
            zones[zone_id] = NamedRecord(id=zone_id, name=name)
            created["zone"] += 1

    def _discover_records(self, scan: PageScan, created: dict[str, int], issues: list[CycleIssue]) -> None:
        for anchor in scan.records():
            record_id = anchor.id
            if record_id is None:
                continue
            try:
                block = parse_block(anchor.span)
            except ParseError as exc:
                self._record_issue(issues, "record_parse", f"Record {record_id}: {exc}", ref_id=record_id)
                continue

            kind = classify(block)
            if kind is EntityKind.UNKNOWN:
                logger.debug("Skipping unrecognised record %s", record_id)
                continue
            try:
                if self._create_entity(kind, record_id, block):
                    created[kind.value] += 1
            except Exception as exc:
                self._record_issue(
                    issues,
                    "store_error",
                    f"Could not create {kind.value} {record_id}: {exc}",
                    ref_id=record_id,
                )

    def _create_entity(self, kind: EntityKind, record_id: int, block: dict[str, Any]) -> bool:
        state = self.state
        if kind is EntityKind.ITEM:
            if record_id in state.items:
                return False
            item = item_from_block(record_id, block)
            with self._uow_factory() as uow:
                uow.items.create(item.id, item.name, quality=item.quality, icon=item.icon)
                uow.commit()
            logger.debug("Creating Item: %s - %s", record_id, item.name)
            state.items[record_id] = item
            return True

        if kind is EntityKind.QUEST:
            if record_id in state.quests:
                return False
            name = block_name(block, record_id)
            with self._uow_factory() as uow:
                row = uow.quests.create(record_id, name)
                record = _quest_record(row)
                uow.commit()
            logger.debug("Creating Quest: %s - %s", record_id, name)
            state.quests[record_id] = record
            return True

        if kind is EntityKind.FACTION:
            if record_id in state.factions:
                return False
            name = block_name(block, record_id)
            with self._uow_factory() as uow:
                uow.factions.create(record_id, name)
                uow.commit()
            logger.debug("Creating Faction: %s - %s", record_id, name)
            state.factions[record_id] = NamedRecord(id=record_id, name=name)
            return True

        return False

    def _read_listing(self, scan: PageScan) -> list[Any]:
        anchor = scan.quest_listing()
        block = parse_block(anchor.span)
        data = block.get("data")
        if not isinstance(data, list):
            raise ParseError("Quest listing has no 'data' list")
        return data

    async def _process_listing(
        self,
        entries: list[Any],
        now: datetime,
        issues: list[CycleIssue],
    ) -> set[int]:
        semaphore = asyncio.Semaphore(self._max_parallel)
        locks: dict[int, asyncio.Lock] = {}
        new_quest_ids: set[int] = set()

        async def worker(raw: Any) -> None:
            async with semaphore:
                entry, problem = normalize_listing_entry(raw)
                if entry is None:
                    ref = raw.get("id") if isinstance(raw, dict) else None
                    self._record_issue(issues, "bad_entry", f"Skipping listing entry ({problem}): {ref!r}")
                    return
                lock = locks.setdefault(entry.quest_id, asyncio.Lock())
                async with lock:
                    if await self._apply_entry(entry, now, issues):
                        new_quest_ids.add(entry.quest_id)

        await asyncio.gather(*(worker(raw) for raw in entries))
        return new_quest_ids

    async def _apply_entry(self, entry: ListingEntry, now: datetime, issues: list[CycleIssue]) -> bool:
        plan = self._plan_entry(entry, now, issues)
        if plan is None:
            return False
        new_type, faction_ids, zone_ids = plan
        try:
            instance, record = await asyncio.to_thread(
                self._store_entry, entry, new_type, faction_ids, zone_ids
            )
        except Exception as exc:
            self._record_issue(
                issues,
                "store_error",
                f"Could not record instance for Quest {entry.quest_id}: {exc}",
                ref_id=entry.quest_id,
            )
            return False

        self.state.active_instances[entry.quest_id] = instance
        self.state.quests[entry.quest_id] = record
        logger.debug("Created QuestInstance for Quest %s ending %s", entry.quest_id, entry.ending.isoformat())
        return True

    def _plan_entry(
        self,
        entry: ListingEntry,
        now: datetime,
        issues: list[CycleIssue],
    ) -> tuple[int | None, list[int], list[int]] | None:
        """Decide what one listing entry should write, or None to skip it."""
        state = self.state
        quest = state.quests.get(entry.quest_id)
        if quest is None:
            self._record_issue(
                issues,
                "missing_quest",
                f"Could not find Quest with id: {entry.quest_id}",
                ref_id=entry.quest_id,
            )
            return None

        if entry.quest_id in state.active_instances:
            return None

        if entry.ending <= now:
            logger.debug("Listing entry for Quest %s already ended at %s", entry.quest_id, entry.ending)
            return None

        new_type: int | None = None
        faction_ids: list[int] = []
        zone_ids: list[int] = []
        if quest.initialized:
            return new_type, faction_ids, zone_ids
        if entry.quest_type is None:
            self._record_issue(
                issues,
                "missing_type",
                f"Listing entry for Quest {entry.quest_id} has no worldquesttype",
                ref_id=entry.quest_id,
            )
            return new_type, faction_ids, zone_ids

        new_type = entry.quest_type
        for faction_id in entry.faction_ids:
            if faction_id in state.factions:
                faction_ids.append(faction_id)
            else:
                self._record_issue(
                    issues,
                    "missing_faction",
                    f"Could not find Faction with id: {faction_id}",
                    ref_id=faction_id,
                )
        for zone_id in entry.zone_ids:
            if zone_id in state.zones:
                zone_ids.append(zone_id)
            else:
                self._record_issue(
                    issues,
                    "missing_zone",
                    f"Could not find Zone with id: {zone_id}",
                    ref_id=zone_id,
                )
        return new_type, faction_ids, zone_ids

    def _store_entry(
        self,
        entry: ListingEntry,
        new_type: int | None,
        faction_ids: list[int],
        zone_ids: list[int],
    ) -> tuple[InstanceRecord, QuestRecord]:
        # runs on a worker thread; must not touch self.state
        with self._uow_factory() as uow:
            row = uow.quest_instances.create(entry.quest_id, entry.ending, rewards=[])
            instance = InstanceRecord(quest_id=entry.quest_id, ending=row.ending, id=row.id)
            updated = uow.quests.update(
                entry.quest_id,
                last_seen=entry.ending,
                type=new_type,
                connect_factions=faction_ids,
                connect_zones=zone_ids,
            )
            record = _quest_record(updated)
            uow.commit()
        return instance, record

    def _record_issue(
        self,
        issues: list[CycleIssue],
        code: str,
        message: str,
        *,
        fatal: bool = False,
        ref_id: int | None = None,
    ) -> CycleIssue:
        issue = CycleIssue(code=code, message=message, fatal=fatal, ref_id=ref_id)
        issues.append(issue)
        if fatal:
            logger.error("%s: %s", code, message)
        else:
            logger.warning("%s: %s", code, message)
        return issue

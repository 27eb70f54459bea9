from __future__ import annotations

import asyncio
from datetime import datetime

from wq_tracker.core.alerts import compose_alert
from wq_tracker.core.engine import ReconciliationEngine
from wq_tracker.persistence.sqlalchemy import (
    SQLAlchemyUnitOfWork,
    build_engine,
    build_session_factory,
    create_schema,
)
from wq_tracker.persistence.sqlalchemy.models import Quest

SAMPLE_PAGE = """
<a href="http://www.wowhead.com/zone=7334/azsuna">Azsuna</a>
<script>
_[41896]{reqclass:0,reqrace:0,name_enus:'Operation Murloc Freedom'};
_[1900]={"name_enus":"Court of Farondis"};
var lvWorldQuests = new Listview({template:'worldquest',data:[
    {id:41896, ending:'2024-01-01T00:00:00Z', worldquesttype:1, factions:[1900], zones:[7334],},
]});
</script>
"""


def make_uow_factory():
    engine = build_engine("sqlite+pysqlite:///:memory:")
    create_schema(engine)
    session_factory = build_session_factory(engine)

    def _uow_factory():
        return SQLAlchemyUnitOfWork(session_factory)

    return _uow_factory, session_factory


async def main() -> None:
    uow_factory, session_factory = make_uow_factory()
    engine = ReconciliationEngine(uow_factory=uow_factory, clock=lambda: datetime(2023, 12, 31, 12, 0))
    engine.load()

    result = await engine.run_cycle(SAMPLE_PAGE)
    print("cycle status:", result.status)
    print("new quest instances:", sorted(result.new_quest_ids))

    alert = compose_alert(
        result.new_quest_ids,
        {41896: "Operation Murloc Freedom"},
        engine.state.quests,
        engine.state.active_instances,
        tz_offset_minutes=-360,
    )
    if alert is not None:
        print("subject:", alert.subject)
        print("body:", alert.body)

    again = await engine.run_cycle(SAMPLE_PAGE)
    print("second run new instances:", sorted(again.new_quest_ids))

    with session_factory() as session:
        quest = session.get(Quest, 41896)
        print("persisted quest type:", quest.type, "zones:", [z.name for z in quest.zones])


if __name__ == "__main__":
    asyncio.run(main())

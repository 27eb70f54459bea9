from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable, Mapping

from .types import Alert, CycleIssue, InstanceRecord, QuestRecord

ALERT_SUBJECT_PREFIX = "WQ Alert"
ERROR_SUBJECT = "WQ Tracker Error"


def format_ending(ending: datetime, tz_offset_minutes: int) -> str:
    """Render ``ending`` (naive UTC) shifted by a fixed offset.

    The host timezone is never consulted, so output is identical wherever
    the tracker runs: ``1/1/2024, 6:00 PM``.
    """
    shifted = ending + timedelta(minutes=tz_offset_minutes)
    hour = shifted.hour % 12 or 12
    period = "PM" if shifted.hour >= 12 else "AM"
    return f"{shifted.month}/{shifted.day}/{shifted.year}, {hour}:{shifted.minute:02d} {period}"


def compose_alert(
    new_ids: Iterable[int],
    watch_list: Mapping[int, str],
    quests: Mapping[int, QuestRecord],
    instances: Mapping[int, InstanceRecord],
    tz_offset_minutes: int = 0,
) -> Alert | None:
    new_set = set(new_ids)
    alert_ids = [quest_id for quest_id in watch_list if quest_id in new_set]
    if not alert_ids:
        return None

    names: list[str] = []
    lines: list[str] = []
    for quest_id in alert_ids:
        quest = quests.get(quest_id)
        name = quest.name if quest is not None and quest.name else watch_list[quest_id]
        names.append(name)
        instance = instances.get(quest_id)
        if instance is None:
            lines.append(name)
        else:
            lines.append(f"{name}: {format_ending(instance.ending, tz_offset_minutes)}")

    return Alert(
        subject=f"{ALERT_SUBJECT_PREFIX}: {', '.join(names)}",
        body="\n".join(lines),
        quest_ids=tuple(alert_ids),
    )


def compose_error_alert(problem: CycleIssue | BaseException | str) -> Alert:
    if isinstance(problem, CycleIssue):
        body = f"[{problem.code}] {problem.message}"
    elif isinstance(problem, BaseException):
        body = f"{type(problem).__name__}: {problem}"
    else:
        body = str(problem)
    return Alert(subject=ERROR_SUBJECT, body=body)

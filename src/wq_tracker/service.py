from __future__ import annotations

import asyncio
import logging
import threading

from .config import TrackerConfig
from .core.alerts import compose_alert, compose_error_alert
from .core.engine import ReconciliationEngine
from .core.errors import FetchError, NotificationError
from .core.ports import NotifierPort, PageFetchPort
from .core.types import Alert, CycleIssue, CycleResult
from .persistence.sqlalchemy import SQLAlchemyUnitOfWork, build_engine, build_session_factory, create_schema
from .transport.http import RequestsPageFetcher
from .transport.mail import SMTPNotifier

logger = logging.getLogger(__name__)


class TrackerService:
    """Runs one fetch -> reconcile -> compose -> notify pipeline per trigger."""

    def __init__(
        self,
        config: TrackerConfig,
        engine: ReconciliationEngine,
        fetcher: PageFetchPort,
        notifier: NotifierPort,
    ):
        self.config = config
        self.engine = engine
        self.fetcher = fetcher
        self.notifier = notifier
        self._cycle_lock = threading.Lock()

    def startup(self) -> None:
        self.engine.load()

    def run_cycle(self) -> CycleResult:
        if not self._cycle_lock.acquire(blocking=False):
            logger.warning("Previous cycle still running; ignoring trigger")
            return CycleResult(status="busy")
        try:
            return self._run_cycle_locked()
        finally:
            self._cycle_lock.release()

    def _run_cycle_locked(self) -> CycleResult:
        logger.info("scheduled task")
        try:
            page_text = self.fetcher.fetch(self.config.page_url)
        except FetchError as exc:
            issue = CycleIssue(code="transport", message=str(exc), fatal=True)
            logger.error("%s: %s", issue.code, issue.message)
            self._notify(compose_error_alert(issue))
            return CycleResult(status="fatal", issues=[issue])

        result = asyncio.run(self.engine.run_cycle(page_text))
        fatal = result.fatal_issue
        if fatal is not None:
            self._notify(compose_error_alert(fatal))
            return result

        state = self.engine.state
        alert = compose_alert(
            result.new_quest_ids,
            self.config.watch_list,
            state.quests,
            state.active_instances,
            tz_offset_minutes=self.config.tz_offset_minutes,
        )
        if alert is not None:
            logger.info("Alerting Quests: %s", ", ".join(str(qid) for qid in alert.quest_ids))
            self._notify(alert)
            result.alert = alert

        logger.info(
            "completed scheduled task: %d new instances, %d expired, %d issues",
            len(result.new_quest_ids),
            result.expired,
            len(result.issues),
        )
        return result

    def _notify(self, alert: Alert) -> bool:
        try:
            self.notifier.send(self.config.alert_email, self.config.alert_sender, alert.subject, alert.body)
        except NotificationError as exc:
            logger.error("Notification failed: %s", exc)
            return False
        return True


def build_service(config: TrackerConfig) -> TrackerService:
    db_engine = build_engine(config.database_url)
    create_schema(db_engine)
    session_factory = build_session_factory(db_engine)

    def uow_factory() -> SQLAlchemyUnitOfWork:
        return SQLAlchemyUnitOfWork(session_factory)

    engine = ReconciliationEngine(uow_factory=uow_factory, max_parallel=config.max_parallel)
    fetcher = RequestsPageFetcher(timeout=config.fetch_timeout)
    notifier = SMTPNotifier(
        config.smtp_host,
        config.smtp_port,
        config.smtp_username,
        config.smtp_password,
        dry_run=config.dry_run,
    )
    return TrackerService(config, engine, fetcher, notifier)

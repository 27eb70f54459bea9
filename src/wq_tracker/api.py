from __future__ import annotations

import logging

from fastapi import BackgroundTasks, FastAPI
from fastapi.responses import PlainTextResponse

from .service import TrackerService

logger = logging.getLogger(__name__)


def create_app(service: TrackerService) -> FastAPI:
    app = FastAPI(title="WQ Tracker")
    app.state.service = service

    @app.post("/scheduled", response_class=PlainTextResponse)
    def scheduled(background_tasks: BackgroundTasks) -> str:
        # respond right away; the cycle outcome never changes the status code
        logger.info("Trigger received")
        background_tasks.add_task(service.run_cycle)
        return "OK"

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    return app

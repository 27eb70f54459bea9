from __future__ import annotations

import argparse
import logging
import sys

import uvicorn

from .api import create_app
from .config import TrackerConfig
from .core.errors import ConfigError
from .logging_setup import configure_logging
from .service import build_service

logger = logging.getLogger("wq_tracker")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="wq-tracker", description="World quest tracker")
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single reconciliation cycle and exit instead of serving the trigger endpoint.",
    )
    parser.add_argument("--host", default="0.0.0.0", help="Bind address for the trigger endpoint.")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        config = TrackerConfig.from_env()
    except ConfigError as exc:
        configure_logging("INFO")
        logger.error("Invalid configuration: %s", exc)
        return 2
    configure_logging(config.log_level)

    service = build_service(config)
    service.startup()

    if args.once:
        result = service.run_cycle()
        return 1 if result.status == "fatal" else 0

    logger.info("app listening on port %s", config.port)
    uvicorn.run(create_app(service), host=args.host, port=config.port, log_config=None)
    return 0


if __name__ == "__main__":
    sys.exit(main())

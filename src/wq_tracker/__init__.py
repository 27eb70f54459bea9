from .config import TrackerConfig
from .core.alerts import compose_alert, compose_error_alert
from .core.classify import classify
from .core.engine import ReconciliationEngine
from .core.lenient import parse_block
from .core.scanner import scan_page
from .core.types import CycleResult
from .service import TrackerService, build_service

__all__ = [
    "ReconciliationEngine",
    "TrackerConfig",
    "TrackerService",
    "build_service",
    "CycleResult",
    "classify",
    "compose_alert",
    "compose_error_alert",
    "parse_block",
    "scan_page",
]

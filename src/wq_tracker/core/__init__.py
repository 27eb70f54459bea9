from .alerts import compose_alert, compose_error_alert, format_ending
from .classify import classify
from .engine import ReconciliationEngine
from .errors import (
    AnchorNotFound,
    ConfigError,
    FetchError,
    NotificationError,
    ParseError,
    TrackerError,
)
from .lenient import parse_block, parse_value
from .ports import NotifierPort, PageFetchPort
from .scanner import PageScan, find_quest_listing, iter_records, iter_zones, scan_page
from .types import (
    QUEST_TYPE_UNSET,
    Alert,
    Anchor,
    AnchorKind,
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

__all__ = [
    "ReconciliationEngine",
    "classify",
    "compose_alert",
    "compose_error_alert",
    "format_ending",
    "parse_block",
    "parse_value",
    "scan_page",
    "PageScan",
    "find_quest_listing",
    "iter_records",
    "iter_zones",
    "PageFetchPort",
    "NotifierPort",
    "TrackerError",
    "ParseError",
    "AnchorNotFound",
    "FetchError",
    "NotificationError",
    "ConfigError",
    "QUEST_TYPE_UNSET",
    "Alert",
    "Anchor",
    "AnchorKind",
    "CycleIssue",
    "CycleResult",
    "EntityKind",
    "InstanceRecord",
    "ItemRecord",
    "ListingEntry",
    "NamedRecord",
    "QuestRecord",
    "ReconciliationState",
]

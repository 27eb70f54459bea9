from __future__ import annotations


class TrackerError(Exception):
    pass


class ParseError(TrackerError):
    def __init__(self, message: str, offset: int | None = None):
        if offset is not None:
            message = f"{message} at offset {offset}"
        super().__init__(message)
        self.offset = offset


class AnchorNotFound(TrackerError):
    def __init__(self, marker: str):
        super().__init__(f"Could not find phrase in body: {marker!r}")
        self.marker = marker


class FetchError(TrackerError):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class NotificationError(TrackerError):
    pass


class ConfigError(TrackerError):
    pass

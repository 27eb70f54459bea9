from __future__ import annotations

from typing import Protocol


class PageFetchPort(Protocol):
    def fetch(self, url: str) -> str:
        ...


class NotifierPort(Protocol):
    def send(self, to: str, sender: str, subject: str, body: str) -> None:
        ...

from __future__ import annotations

import html
import re
from typing import Iterator

from .errors import AnchorNotFound
from .types import Anchor, AnchorKind

QUEST_LISTING_MARKER = "var lvWorldQuests = new Listview("
QUEST_LISTING_END = ");"

_ZONE_LINK = re.compile(
    r"<a\s[^>]*?href=[\"'][^\"']*?\bzone=(?P<id>\d+)[^\"']*[\"'][^>]*>(?P<name>.*?)</a>",
    re.IGNORECASE | re.DOTALL,
)
_RECORD_ANCHOR = re.compile(r"_\[(?P<id>\d+)\]\s*=?\s*(?=\{)")
_TAG = re.compile(r"<[^>]+>")


def _balanced_end(text: str, start: int) -> int:
    """Return the index just past the brace matching ``text[start]``.

    Quoted strings are skipped so braces inside names do not count. Returns
    ``len(text)`` when the block never closes.
    """
    depth = 0
    pos = start
    quote: str | None = None
    length = len(text)
    while pos < length:
        ch = text[pos]
        if quote is not None:
            if ch == "\\":
                pos += 2
                continue
            if ch == quote:
                quote = None
        elif ch in "'\"":
            quote = ch
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return pos + 1
        pos += 1
    return length


def iter_zones(text: str) -> Iterator[Anchor]:
    for match in _ZONE_LINK.finditer(text):
        name = html.unescape(_TAG.sub("", match.group("name"))).strip()
        yield Anchor(AnchorKind.ZONE, int(match.group("id")), name)


def iter_records(text: str) -> Iterator[Anchor]:
    pos = 0
    while True:
        match = _RECORD_ANCHOR.search(text, pos)
        if match is None:
            return
        start = match.end()
        end = _balanced_end(text, start)
        yield Anchor(AnchorKind.RECORD, int(match.group("id")), text[start:end])
        # resume inside the block so nested anchors are still reachable,
        # but always past the previous match start
        pos = match.start() + 1


def find_quest_listing(text: str, marker: str = QUEST_LISTING_MARKER) -> Anchor:
    idx = text.find(marker)
    if idx < 0:
        raise AnchorNotFound(marker)
    start = idx + len(marker)
    end = text.find(QUEST_LISTING_END, start)
    if end < 0:
        end = len(text)
    return Anchor(AnchorKind.QUEST_LISTING, None, text[start:end])


class PageScan:
    """Restartable, lazy view over every anchor in a page.

    Each iteration starts from the top of the text: zones first, then
    records, then the quest listing when its marker is present.
    """

    def __init__(self, text: str, marker: str = QUEST_LISTING_MARKER):
        self.text = text
        self.marker = marker

    def __iter__(self) -> Iterator[Anchor]:
        yield from iter_zones(self.text)
        yield from iter_records(self.text)
        try:
            yield find_quest_listing(self.text, self.marker)
        except AnchorNotFound:
            return

    def zones(self) -> Iterator[Anchor]:
        return iter_zones(self.text)

    def records(self) -> Iterator[Anchor]:
        return iter_records(self.text)

    def quest_listing(self) -> Anchor:
        return find_quest_listing(self.text, self.marker)


def scan_page(text: str, marker: str = QUEST_LISTING_MARKER) -> PageScan:
    return PageScan(text, marker)

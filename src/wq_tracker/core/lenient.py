from __future__ import annotations

import re
from typing import Any

from .errors import ParseError

_WHITESPACE = " \t\r\n\f\v﻿"
_BARE_WORD = re.compile(r"[A-Za-z0-9_$.+\-]+")
_NUMBER = re.compile(r"-?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
MAX_DEPTH = 128
_LITERALS = {"true": True, "false": False, "null": None, "undefined": None}
_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "b": "\b",
    "f": "\f",
    "v": "\v",
    "0": "\0",
    "/": "/",
    "\\": "\\",
    "'": "'",
    '"': '"',
}


class _Reader:
    """Recursive-descent reader for the loose object-literal dialect."""

    def __init__(self, text: str):
        self.text = text
        self.pos = 0
        self.depth = 0

    def skip_ws(self) -> None:
        text = self.text
        while self.pos < len(text) and text[self.pos] in _WHITESPACE:
            self.pos += 1

    def peek(self) -> str:
        self.skip_ws()
        if self.pos >= len(self.text):
            raise ParseError("Unexpected end of input", self.pos)
        return self.text[self.pos]

    def value(self) -> Any:
        ch = self.peek()
        if ch in "{[":
            if self.depth >= MAX_DEPTH:
                raise ParseError("Nesting too deep", self.pos)
            self.depth += 1
            try:
                return self.obj() if ch == "{" else self.array()
            finally:
                self.depth -= 1
        if ch in "'\"":
            return self.string()
        return self.bare()

    def obj(self) -> dict[str, Any]:
        self.pos += 1
        out: dict[str, Any] = {}
        while True:
            ch = self.peek()
            if ch == "}":
                self.pos += 1
                return out
            key = self.key()
            if self.peek() != ":":
                raise ParseError(f"Expected ':' after key {key!r}", self.pos)
            self.pos += 1
            out[key] = self.value()
            ch = self.peek()
            if ch == ",":
                self.pos += 1
            elif ch != "}":
                raise ParseError(f"Expected ',' or '}}', found {ch!r}", self.pos)

    def array(self) -> list[Any]:
        self.pos += 1
        out: list[Any] = []
        while True:
            ch = self.peek()
            if ch == "]":
                self.pos += 1
                return out
            if ch == ",":
                # elided element, e.g. [1,,2]
                self.pos += 1
                continue
            out.append(self.value())
            ch = self.peek()
            if ch == ",":
                self.pos += 1
            elif ch != "]":
                raise ParseError(f"Expected ',' or ']', found {ch!r}", self.pos)

    def key(self) -> str:
        ch = self.peek()
        if ch in "'\"":
            return self.string()
        match = _BARE_WORD.match(self.text, self.pos)
        if match is None:
            raise ParseError(f"Invalid object key starting with {ch!r}", self.pos)
        self.pos = match.end()
        return match.group(0)

    def string(self) -> str:
        quote = self.text[self.pos]
        start = self.pos
        self.pos += 1
        parts: list[str] = []
        text = self.text
        while self.pos < len(text):
            ch = text[self.pos]
            if ch == quote:
                self.pos += 1
                return "".join(parts)
            if ch == "\\":
                if self.pos + 1 >= len(text):
                    break
                esc = text[self.pos + 1]
                if esc == "u":
                    digits = text[self.pos + 2 : self.pos + 6]
                    if len(digits) != 4 or not all(c in "0123456789abcdefABCDEF" for c in digits):
                        raise ParseError("Invalid \\u escape", self.pos)
                    parts.append(chr(int(digits, 16)))
                    self.pos += 6
                    continue
                parts.append(_ESCAPES.get(esc, esc))
                self.pos += 2
                continue
            parts.append(ch)
            self.pos += 1
        raise ParseError("Unterminated string", start)

    def bare(self) -> Any:
        match = _BARE_WORD.match(self.text, self.pos)
        if match is None:
            raise ParseError(f"Unexpected character {self.text[self.pos]!r}", self.pos)
        word = match.group(0)
        self.pos = match.end()
        if word in _LITERALS:
            return _LITERALS[word]
        if _NUMBER.fullmatch(word):
            if any(c in word for c in ".eE"):
                return float(word)
            return int(word)
        # identifiers and member expressions (``Listview.extraCols.popularity``)
        return word


def parse_value(text: str) -> Any:
    reader = _Reader(text)
    result = reader.value()
    reader.skip_ws()
    if reader.pos < len(text) and text[reader.pos] == ";":
        reader.pos += 1
        reader.skip_ws()
    if reader.pos != len(text):
        raise ParseError("Unexpected trailing content", reader.pos)
    return result


def parse_block(text: str) -> dict[str, Any]:
    """Decode one brace-delimited block.

    Accepts bare or single-quoted keys, single-quoted strings and trailing
    commas. Raises ``ParseError`` for truncated or malformed input and when
    the top-level value is not an object.
    """
    if not text or not text.strip():
        raise ParseError("Empty block", 0)
    result = parse_value(text)
    if not isinstance(result, dict):
        raise ParseError(f"Expected an object, got {type(result).__name__}", 0)
    return result

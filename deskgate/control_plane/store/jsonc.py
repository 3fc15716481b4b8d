"""JSON-with-comments support for the engine config file.

``loads`` parses text that may contain ``//`` and ``/* */`` comments and
trailing commas.  ``update_top_level`` rewrites the values of selected
top-level keys in place: comments, key order and whitespace of every other
member stay byte-identical.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

_WS = " \t\r\n"
_LITERAL_STOP = frozenset(',]}:" \t\r\n')
_DEFAULT_INDENT = "  "


class JsoncError(ValueError):
    """Raised when text cannot be parsed as a JSONC object."""

    def __init__(self, message: str, position: int) -> None:
        super().__init__(f"{message} (at offset {position})")
        self.position = position


# -- Parsing -------------------------------------------------------------------


def loads(text: str) -> Any:
    """Parse JSONC text.  Blank input parses as an empty object."""
    if not text.strip():
        return {}
    try:
        return json.loads(strip(text))
    except json.JSONDecodeError as exc:
        raise JsoncError(exc.msg, exc.pos) from None


def dumps(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


def strip(text: str) -> str:
    """Remove comments and trailing commas, leaving plain JSON."""
    out: list[str] = []
    i, n = 0, len(text)
    while i < n:
        ch = text[i]
        if ch == '"':
            end = _string_end(text, i)
            out.append(text[i:end])
            i = end
        elif text.startswith("//", i):
            newline = text.find("\n", i)
            i = n if newline == -1 else newline
        elif text.startswith("/*", i):
            close = text.find("*/", i + 2)
            if close == -1:
                raise JsoncError("Unterminated comment", i)
            out.append(" ")
            i = close + 2
        else:
            out.append(ch)
            i += 1
    return _drop_trailing_commas("".join(out))


def _drop_trailing_commas(text: str) -> str:
    out: list[str] = []
    i, n = 0, len(text)
    while i < n:
        ch = text[i]
        if ch == '"':
            end = _string_end(text, i)
            out.append(text[i:end])
            i = end
            continue
        if ch == ",":
            j = i + 1
            while j < n and text[j] in _WS:
                j += 1
            if j < n and text[j] in "]}":
                i += 1
                continue
        out.append(ch)
        i += 1
    return "".join(out)


def _string_end(text: str, start: int) -> int:
    """Index one past the closing quote of the string opening at ``start``."""
    i, n = start + 1, len(text)
    while i < n:
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == '"':
            return i + 1
        i += 1
    raise JsoncError("Unterminated string", start)


# -- Scanning ------------------------------------------------------------------


@dataclass
class _Member:
    key: str
    key_start: int
    value_start: int
    value_end: int


@dataclass
class _RootObject:
    open: int
    close: int
    members: list[_Member]
    trailing_comma: int | None
    """Offset of a comma after the last member, if the file uses one."""


class _Scanner:
    """Walks JSONC text tracking offsets; values are skipped, not decoded."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0

    def error(self, message: str) -> JsoncError:
        return JsoncError(message, self.pos)

    def peek(self) -> str:
        return self.text[self.pos] if self.pos < len(self.text) else ""

    def expect(self, ch: str) -> None:
        if self.peek() != ch:
            raise self.error(f"Expected {ch!r}")
        self.pos += 1

    def skip_trivia(self) -> None:
        text, n = self.text, len(self.text)
        while self.pos < n:
            if text[self.pos] in _WS:
                self.pos += 1
            elif text.startswith("//", self.pos):
                newline = text.find("\n", self.pos)
                self.pos = n if newline == -1 else newline + 1
            elif text.startswith("/*", self.pos):
                close = text.find("*/", self.pos + 2)
                if close == -1:
                    raise self.error("Unterminated comment")
                self.pos = close + 2
            else:
                return

    def string(self) -> str:
        if self.peek() != '"':
            raise self.error("Expected string")
        end = _string_end(self.text, self.pos)
        raw = self.text[self.pos : end]
        self.pos = end
        return json.loads(raw)

    def value(self) -> None:
        ch = self.peek()
        if ch == "{":
            self._container("{", "}", keyed=True)
        elif ch == "[":
            self._container("[", "]", keyed=False)
        elif ch == '"':
            self.string()
        elif ch:
            self._literal()
        else:
            raise self.error("Unexpected end of input")

    def _container(self, open_ch: str, close_ch: str, *, keyed: bool) -> None:
        self.expect(open_ch)
        while True:
            self.skip_trivia()
            if self.peek() == close_ch:
                self.pos += 1
                return
            if keyed:
                self.string()
                self.skip_trivia()
                self.expect(":")
                self.skip_trivia()
            self.value()
            self.skip_trivia()
            if self.peek() == ",":
                self.pos += 1
            elif self.peek() != close_ch:
                raise self.error(f"Expected ',' or {close_ch!r}")

    def _literal(self) -> None:
        start, text, n = self.pos, self.text, len(self.text)
        while self.pos < n and text[self.pos] not in _LITERAL_STOP and not text.startswith(("//", "/*"), self.pos):
            self.pos += 1
        if self.pos == start:
            raise self.error("Unexpected character")


def _scan_root(text: str) -> _RootObject:
    scanner = _Scanner(text)
    scanner.skip_trivia()
    if scanner.peek() != "{":
        raise scanner.error("Top-level value must be an object")
    open_at = scanner.pos
    scanner.pos += 1

    members: list[_Member] = []
    trailing: int | None = None
    while True:
        scanner.skip_trivia()
        if scanner.peek() == "}":
            return _RootObject(open_at, scanner.pos, members, trailing)
        key_start = scanner.pos
        key = scanner.string()
        scanner.skip_trivia()
        scanner.expect(":")
        scanner.skip_trivia()
        value_start = scanner.pos
        scanner.value()
        members.append(_Member(key, key_start, value_start, scanner.pos))
        trailing = None
        scanner.skip_trivia()
        if scanner.peek() == ",":
            trailing = scanner.pos
            scanner.pos += 1
        elif scanner.peek() != "}":
            raise scanner.error("Expected ',' or '}'")


# -- Editing -------------------------------------------------------------------


def update_top_level(text: str, updates: dict[str, Any]) -> str:
    """Return ``text`` with each key in ``updates`` set to its new value.

    Existing keys have only their value span replaced.  New keys are
    appended after the last member, indented like it.  Blank input yields a
    fresh pretty-printed object.
    """
    if not updates:
        return text
    if not text.strip():
        return dumps(updates)

    root = _scan_root(text)
    # Duplicate keys: the last occurrence is the effective one.
    by_key = {member.key: member for member in root.members}

    edits: list[tuple[int, int, str]] = []
    new_keys: dict[str, Any] = {}
    for key, value in updates.items():
        member = by_key.get(key)
        if member is None:
            new_keys[key] = value
            continue
        indent = _line_indent(text, member.key_start)
        edits.append((member.value_start, member.value_end, _format_value(value, indent)))

    if new_keys:
        edits.append(_insertion(text, root, new_keys))

    for start, end, replacement in sorted(edits, key=lambda edit: edit[0], reverse=True):
        text = text[:start] + replacement + text[end:]
    return text


def _insertion(text: str, root: _RootObject, new_keys: dict[str, Any]) -> tuple[int, int, str]:
    if root.members:
        indent = _line_indent(text, root.members[-1].key_start)
        entries = [f"\n{indent}{json.dumps(key)}: {_format_value(value, indent)}" for key, value in new_keys.items()]
        if root.trailing_comma is not None:
            at = root.trailing_comma + 1
            return at, at, "".join(f"{entry}," for entry in entries)
        at = root.members[-1].value_end
        return at, at, "," + ",".join(entries)

    indent = _DEFAULT_INDENT
    block = ",".join(f"\n{indent}{json.dumps(key)}: {_format_value(value, indent)}" for key, value in new_keys.items())
    inner = text[root.open + 1 : root.close]
    if inner.strip():
        # Only comments inside the braces; keep them after the new members.
        return root.open + 1, root.open + 1, block
    return root.open + 1, root.close, block + "\n"


def _format_value(value: Any, indent: str) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False).replace("\n", "\n" + indent)


def _line_indent(text: str, pos: int) -> str:
    line_start = text.rfind("\n", 0, pos) + 1
    prefix = text[line_start:pos]
    return prefix if not prefix.strip() else _DEFAULT_INDENT

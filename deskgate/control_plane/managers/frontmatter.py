"""YAML frontmatter for skill and command markdown files."""

from __future__ import annotations

import re
from typing import Any

import yaml

_FRONTMATTER_RE = re.compile(r"^---\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|$)", re.DOTALL)


def parse_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    """Split ``text`` into (frontmatter mapping, body).

    Text without a leading ``---`` block, or with one that is not a YAML
    mapping, yields an empty mapping and the text unchanged.
    """
    match = _FRONTMATTER_RE.match(text)
    if not match:
        return {}, text
    try:
        data = yaml.safe_load(match.group(1))
    except yaml.YAMLError:
        return {}, text
    if not isinstance(data, dict):
        return {}, text
    return data, text[match.end() :]


def has_frontmatter(text: str) -> bool:
    return _FRONTMATTER_RE.match(text) is not None


def render_frontmatter(data: dict[str, Any], body: str) -> str:
    """Markdown with a frontmatter block; ``None`` values are omitted."""
    fields = {key: value for key, value in data.items() if value is not None}
    body = body.strip("\n")
    if not fields:
        return f"{body}\n"
    header = yaml.safe_dump(fields, default_flow_style=False, sort_keys=False, allow_unicode=True).strip()
    return f"---\n{header}\n---\n\n{body}\n"

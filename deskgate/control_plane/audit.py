"""Append-only audit trail, one JSON line per completed mutation.

Stored per workspace at ``{root}/.opencode/openwork/audit.jsonl``.  Appends
for one workspace are serialised through an ``asyncio.Lock`` so entries land
in the order their writes completed; file I/O runs in a worker thread.
"""

from __future__ import annotations

import asyncio
from functools import partial
from pathlib import Path

from anyio import to_thread
from loguru import logger
from pydantic import ValidationError

from deskgate.control_plane.models.audit import Actor, AuditEntry
from deskgate.control_plane.models.workspace import Workspace

DEFAULT_AUDIT_LIMIT = 50
MAX_AUDIT_LIMIT = 200


def audit_log_path(root: str | Path) -> Path:
    return Path(root) / ".opencode" / "openwork" / "audit.jsonl"


def clamp_limit(limit: int | None) -> int:
    if limit is None:
        return DEFAULT_AUDIT_LIMIT
    return max(1, min(limit, MAX_AUDIT_LIMIT))


class AuditLog:
    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, root: str | Path) -> asyncio.Lock:
        key = str(root)
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    # -- Write -----------------------------------------------------------------

    async def append(self, root: str | Path, entry: AuditEntry) -> None:
        line = entry.model_dump_json(by_alias=True, exclude_none=True)
        async with self._lock_for(root):
            await to_thread.run_sync(partial(_append_line, audit_log_path(root), line))

    async def record(
        self,
        workspace: Workspace,
        actor: Actor,
        *,
        action: str,
        target: str,
        summary: str,
    ) -> AuditEntry:
        entry = AuditEntry(
            workspace_id=workspace.id,
            actor=actor,
            action=action,
            target=target,
            summary=summary,
        )
        await self.append(workspace.path, entry)
        logger.info("Audit: {} {} on {} ({})", actor.type, action, workspace.id, target)
        return entry

    # -- Read ------------------------------------------------------------------

    async def read_entries(self, root: str | Path, limit: int | None = DEFAULT_AUDIT_LIMIT) -> list[AuditEntry]:
        """Most recent ``limit`` entries, oldest first.

        Missing log reads as empty; malformed lines are skipped.
        """
        lines = await to_thread.run_sync(partial(_read_lines, audit_log_path(root)))
        window = lines[-clamp_limit(limit) :]
        return [entry for entry in map(_parse_line, window) if entry is not None]

    async def read_last(self, root: str | Path) -> AuditEntry | None:
        lines = await to_thread.run_sync(partial(_read_lines, audit_log_path(root)))
        return next((entry for entry in map(_parse_line, reversed(lines)) if entry is not None), None)


# -- Sync helpers (run in thread pool) -----------------------------------------


def _append_line(path: Path, line: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as f:
        f.write(line + "\n")


def _read_lines(path: Path) -> list[str]:
    try:
        content = path.read_text(encoding="utf-8", errors="replace")
    except FileNotFoundError:
        return []
    return [line for line in content.splitlines() if line.strip()]


def _parse_line(line: str) -> AuditEntry | None:
    try:
        return AuditEntry.model_validate_json(line)
    except ValidationError:
        logger.debug("Audit: skipping malformed line")
        return None

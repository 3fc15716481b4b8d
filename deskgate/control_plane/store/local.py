"""Workspace file primitives used by every store and manager.

Blocking calls run on anyio's thread pool.  ``write_text`` replaces the
target through a sibling temp file, so readers see either the old document
or the new one.  When no ``mode`` is given, a file that already exists keeps
its permission bits (a user's ``opencode.json`` stays as they left it).
"""

from __future__ import annotations

import contextlib
import os
import shutil
import stat
import tempfile
from functools import partial
from pathlib import Path

from anyio import to_thread

DEFAULT_MODE = 0o644


async def read_text(path: Path) -> str | None:
    """UTF-8 contents of ``path``; ``None`` if it is missing."""
    return await to_thread.run_sync(partial(_read_or_none, path))


async def write_text(path: Path, data: str, *, mode: int | None = None) -> None:
    await to_thread.run_sync(partial(_replace_file, path, data, mode))


async def remove_file(path: Path) -> bool:
    """Delete one file.  False when there was nothing to delete."""
    return await to_thread.run_sync(partial(_unlink_if_present, path))


async def remove_tree(path: Path) -> None:
    await to_thread.run_sync(partial(shutil.rmtree, path, ignore_errors=True))


# -- Thread-pool side ----------------------------------------------------------


def _read_or_none(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None


def _existing_mode(path: Path) -> int | None:
    try:
        return stat.S_IMODE(path.stat().st_mode)
    except FileNotFoundError:
        return None


def _replace_file(path: Path, data: str, mode: int | None) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    if mode is None:
        existing = _existing_mode(path)
        # mkstemp creates 0600; new files get the usual 0644 instead.
        mode = DEFAULT_MODE if existing is None else existing
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp_name)
        raise


def _unlink_if_present(path: Path) -> bool:
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    return True

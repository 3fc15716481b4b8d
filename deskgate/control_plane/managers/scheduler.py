"""Scheduled jobs and the OS units that run them.

Layout::

    ~/.config/opencode/jobs/{slug}.json                          job record
    ~/Library/LaunchAgents/com.opencode.job.{slug}.plist         macOS
    ~/.config/systemd/user/opencode-job-{slug}.{service,timer}   Linux

Deleting a job unloads its unit before removing the unit files and the job
record.  Other platforms have no scheduler.
"""

from __future__ import annotations

import json
import re
import sys
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

import anyio
from anyio import to_thread
from loguru import logger

from deskgate.control_plane.managers.validators import InvalidItemError
from deskgate.control_plane.models.scheduler import ScheduledJob
from deskgate.control_plane.store.local import remove_file

SUPPORTED_PLATFORMS = frozenset({"darwin", "linux"})

_NON_SLUG_RE = re.compile(r"[^a-z0-9]+")

CommandRunner = Callable[[Sequence[str]], Awaitable[None]]


class SchedulerUnsupportedError(RuntimeError):
    """Raised on platforms without a supported job scheduler."""


class JobNotFoundError(LookupError):
    """Raised when no job matches the requested name."""


@dataclass
class LocatedJob:
    job: ScheduledJob
    job_file: Path
    system_paths: list[Path] = field(default_factory=list)


def slugify(name: str) -> str:
    return _NON_SLUG_RE.sub("-", name.strip().lower()).strip("-")


async def run_quietly(command: Sequence[str]) -> None:
    """Run a service-manager command.  Failures are logged, never raised."""
    try:
        result = await anyio.run_process(list(command), check=False)
    except OSError as exc:
        logger.warning("Scheduler: cannot run {}: {}", command[0], exc)
        return
    if result.returncode != 0:
        logger.debug("Scheduler: {} exited with {}", " ".join(command), result.returncode)


class JobScheduler:
    def __init__(
        self,
        home: str | Path | None = None,
        platform: str = sys.platform,
        run: CommandRunner = run_quietly,
    ) -> None:
        self._home = Path(home).expanduser() if home is not None else None
        self.platform = platform
        self._run = run

    @property
    def home(self) -> Path:
        return self._home or Path.home()

    @property
    def jobs_dir(self) -> Path:
        return self.home / ".config" / "opencode" / "jobs"

    def ensure_supported(self) -> None:
        if self.platform not in SUPPORTED_PLATFORMS:
            msg = "Scheduler is supported only on macOS and Linux."
            raise SchedulerUnsupportedError(msg)

    def system_paths(self, slug: str) -> list[Path]:
        if self.platform == "darwin":
            return [self.home / "Library" / "LaunchAgents" / f"com.opencode.job.{slug}.plist"]
        if self.platform == "linux":
            units = self.home / ".config" / "systemd" / "user"
            return [units / f"opencode-job-{slug}.service", units / f"opencode-job-{slug}.timer"]
        return []

    async def list_jobs(self) -> list[ScheduledJob]:
        self.ensure_supported()
        return await to_thread.run_sync(self._load_all)

    async def resolve(self, name: str) -> LocatedJob:
        """Find a job by slug, file name, or (case-insensitive) job name."""
        self.ensure_supported()
        trimmed = name.strip()
        if not trimmed:
            msg = "name is required"
            raise InvalidItemError(msg, code="job_name_required")
        job = await to_thread.run_sync(self._find, trimmed)
        if job is None:
            msg = f'Job "{trimmed}" not found.'
            raise JobNotFoundError(msg)
        return LocatedJob(job, self.jobs_dir / f"{job.slug}.json", self.system_paths(job.slug))

    async def delete(self, located: LocatedJob) -> None:
        self.ensure_supported()
        slug = located.job.slug
        if self.platform == "darwin":
            (plist,) = located.system_paths
            if plist.exists():
                await self._run(["launchctl", "unload", str(plist)])
                await remove_file(plist)
        else:
            timer = f"opencode-job-{slug}.timer"
            await self._run(["systemctl", "--user", "stop", timer])
            await self._run(["systemctl", "--user", "disable", timer])
            for path in located.system_paths:
                await remove_file(path)
            await self._run(["systemctl", "--user", "daemon-reload"])
        await remove_file(located.job_file)
        logger.info("Scheduler: deleted job {} ({})", located.job.name, slug)

    # -- Job files -------------------------------------------------------------

    def _load(self, path: Path) -> ScheduledJob | None:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return ScheduledJob.model_validate(data)
        except (OSError, ValueError):
            return None

    def _load_all(self) -> list[ScheduledJob]:
        if not self.jobs_dir.is_dir():
            return []
        jobs = [job for path in self.jobs_dir.glob("*.json") if path.is_file() and (job := self._load(path))]
        return sorted(jobs, key=lambda job: job.name.lower())

    def _find(self, name: str) -> ScheduledJob | None:
        slug = slugify(name)
        for candidate in (slug, name):
            path = self.jobs_dir / f"{candidate}.json"
            if candidate and Path(candidate).name == candidate and path.is_file() and (job := self._load(path)):
                return job

        lowered = name.lower()
        for job in self._load_all():
            if job.slug == name or job.slug.endswith(f"-{slug}") or lowered in job.name.lower():
                return job
        return None

"""Unit tests for scheduled jobs against a temporary home directory.

Service-manager commands are recorded instead of run.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from pathlib import Path

import pytest

from deskgate.control_plane.managers.scheduler import (
    JobNotFoundError,
    JobScheduler,
    SchedulerUnsupportedError,
    slugify,
)
from deskgate.control_plane.managers.validators import InvalidItemError


class RecordingRunner:
    def __init__(self) -> None:
        self.commands: list[list[str]] = []

    async def __call__(self, command: Sequence[str]) -> None:
        self.commands.append(list(command))


def write_job(home: Path, slug: str, name: str, schedule: str = "0 9 * * *", **extra: object) -> Path:
    path = home / ".config" / "opencode" / "jobs" / f"{slug}.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps({"slug": slug, "name": name, "schedule": schedule, **extra}), encoding="utf-8")
    return path


@pytest.fixture
def runner() -> RecordingRunner:
    return RecordingRunner()


@pytest.fixture
def linux(tmp_path: Path, runner: RecordingRunner) -> JobScheduler:
    return JobScheduler(home=tmp_path, platform="linux", run=runner)


def test_slugify() -> None:
    assert slugify("  Daily Report! ") == "daily-report"
    assert slugify("a__b--c") == "a-b-c"
    assert slugify("!!!") == ""


async def test_list_sorts_by_name_and_skips_invalid(tmp_path: Path, linux: JobScheduler) -> None:
    write_job(tmp_path, "zeta", "zeta digest")
    write_job(tmp_path, "alpha", "Alpha sync", prompt="sync things")
    jobs_dir = tmp_path / ".config" / "opencode" / "jobs"
    (jobs_dir / "broken.json").write_text("{nope", encoding="utf-8")
    (jobs_dir / "partial.json").write_text(json.dumps({"slug": "partial", "name": "Partial"}), encoding="utf-8")
    (jobs_dir / "notes.txt").write_text("ignored", encoding="utf-8")

    jobs = await linux.list_jobs()
    assert [job.name for job in jobs] == ["Alpha sync", "zeta digest"]
    assert jobs[0].to_wire()["prompt"] == "sync things"


async def test_list_without_jobs_dir(linux: JobScheduler) -> None:
    assert await linux.list_jobs() == []


async def test_unsupported_platform(tmp_path: Path) -> None:
    scheduler = JobScheduler(home=tmp_path, platform="win32")
    with pytest.raises(SchedulerUnsupportedError):
        await scheduler.list_jobs()
    with pytest.raises(SchedulerUnsupportedError):
        await scheduler.resolve("anything")


async def test_resolve_by_slug_name_and_suffix(tmp_path: Path, linux: JobScheduler) -> None:
    write_job(tmp_path, "team-daily-report", "Daily Report")

    for name in ("team-daily-report", "Daily Report", "daily report", "report"):
        located = await linux.resolve(name)
        assert located.job.slug == "team-daily-report"

    assert located.job_file == tmp_path / ".config" / "opencode" / "jobs" / "team-daily-report.json"
    units = tmp_path / ".config" / "systemd" / "user"
    assert located.system_paths == [
        units / "opencode-job-team-daily-report.service",
        units / "opencode-job-team-daily-report.timer",
    ]


async def test_resolve_errors(tmp_path: Path, linux: JobScheduler) -> None:
    with pytest.raises(InvalidItemError) as info:
        await linux.resolve("   ")
    assert info.value.code == "job_name_required"

    write_job(tmp_path, "alpha", "Alpha")
    with pytest.raises(JobNotFoundError, match='Job "beta" not found.'):
        await linux.resolve(" beta ")


async def test_delete_on_linux_stops_timer_and_removes_files(
    tmp_path: Path,
    linux: JobScheduler,
    runner: RecordingRunner,
) -> None:
    job_file = write_job(tmp_path, "nightly", "Nightly")
    units = tmp_path / ".config" / "systemd" / "user"
    units.mkdir(parents=True)
    (units / "opencode-job-nightly.service").write_text("[Service]\n", encoding="utf-8")
    (units / "opencode-job-nightly.timer").write_text("[Timer]\n", encoding="utf-8")

    await linux.delete(await linux.resolve("nightly"))

    assert runner.commands == [
        ["systemctl", "--user", "stop", "opencode-job-nightly.timer"],
        ["systemctl", "--user", "disable", "opencode-job-nightly.timer"],
        ["systemctl", "--user", "daemon-reload"],
    ]
    assert not job_file.exists()
    assert list(units.iterdir()) == []
    assert await linux.list_jobs() == []


async def test_delete_on_macos_unloads_agent(tmp_path: Path, runner: RecordingRunner) -> None:
    scheduler = JobScheduler(home=tmp_path, platform="darwin", run=runner)
    job_file = write_job(tmp_path, "nightly", "Nightly")
    plist = tmp_path / "Library" / "LaunchAgents" / "com.opencode.job.nightly.plist"
    plist.parent.mkdir(parents=True)
    plist.write_text("<plist/>", encoding="utf-8")

    await scheduler.delete(await scheduler.resolve("Nightly"))

    assert runner.commands == [["launchctl", "unload", str(plist)]]
    assert not plist.exists()
    assert not job_file.exists()


async def test_delete_on_macos_without_agent_skips_unload(tmp_path: Path, runner: RecordingRunner) -> None:
    scheduler = JobScheduler(home=tmp_path, platform="darwin", run=runner)
    job_file = write_job(tmp_path, "nightly", "Nightly")

    await scheduler.delete(await scheduler.resolve("nightly"))

    assert runner.commands == []
    assert not job_file.exists()

"""Unit tests for the approval gate: auto mode, host replies, timeouts, cancellation."""

from __future__ import annotations

import asyncio
import time

import pytest

from deskgate.control_plane.approvals import ApprovalService
from deskgate.control_plane.models.audit import Actor
from deskgate.control_plane.models.enums import ActorType, ApprovalMode, ApprovalOutcome

ACTOR = Actor(type=ActorType.REMOTE, client_id="ui")


def _ask(service: ApprovalService) -> asyncio.Task:
    return asyncio.create_task(
        service.request_approval(
            workspace_id="ws_1",
            action="config.patch",
            summary="Patch config",
            paths=["/tmp/opencode.json"],
            actor=ACTOR,
        )
    )


async def _wait_pending(service: ApprovalService) -> str:
    for _ in range(100):
        if service.pending_count:
            return service.list()[0].id
        await asyncio.sleep(0.001)
    pytest.fail("approval never became pending")


async def test_auto_mode_allows_immediately() -> None:
    service = ApprovalService(ApprovalMode.AUTO)
    result = await _ask(service)
    assert result.allowed is True
    assert service.pending_count == 0


async def test_host_allow() -> None:
    service = ApprovalService("manual", timeout_ms=5_000)
    task = _ask(service)
    request_id = await _wait_pending(service)
    pending = service.list()[0]

    assert service.respond(request_id, "allow").allowed is True
    result = await task
    assert result.allowed is True
    assert result.reason is None
    assert pending.outcome == ApprovalOutcome.ALLOWED
    assert service.pending_count == 0


async def test_any_other_reply_denies() -> None:
    service = ApprovalService("manual", timeout_ms=5_000)
    task = _ask(service)
    request_id = await _wait_pending(service)

    service.respond(request_id, "maybe")
    result = await task
    assert result.allowed is False
    assert result.reason == "denied"


async def test_respond_unknown_or_twice_returns_none() -> None:
    service = ApprovalService("manual", timeout_ms=5_000)
    assert service.respond("nope", "allow") is None

    task = _ask(service)
    request_id = await _wait_pending(service)
    assert service.respond(request_id, "deny") is not None
    assert service.respond(request_id, "allow") is None
    assert (await task).allowed is False


async def test_timeout_denies_after_deadline() -> None:
    service = ApprovalService("manual", timeout_ms=100)
    started = time.monotonic()
    result = await _ask(service)
    elapsed = time.monotonic() - started

    assert result.allowed is False
    assert result.reason == "timeout"
    assert elapsed >= 0.09
    assert service.pending_count == 0


async def test_reply_after_timeout_is_ignored() -> None:
    service = ApprovalService("manual", timeout_ms=20)
    task = _ask(service)
    request_id = await _wait_pending(service)
    await task
    assert service.respond(request_id, "allow") is None


async def test_cancelled_caller_drops_record() -> None:
    service = ApprovalService("manual", timeout_ms=5_000)
    task = _ask(service)
    await _wait_pending(service)

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert service.pending_count == 0


async def test_deny_all() -> None:
    service = ApprovalService("manual", timeout_ms=5_000)
    tasks = [_ask(service), _ask(service)]
    for _ in range(100):
        if service.pending_count == 2:
            break
        await asyncio.sleep(0.001)

    assert service.deny_all() == 2
    results = await asyncio.gather(*tasks)
    assert [r.allowed for r in results] == [False, False]


async def test_reply_leaves_other_pending_requests_alone() -> None:
    service = ApprovalService("manual", timeout_ms=200)
    first = _ask(service)
    first_id = await _wait_pending(service)
    second = _ask(service)
    for _ in range(100):
        if service.pending_count == 2:
            break
        await asyncio.sleep(0.001)
    (second_id,) = [request.id for request in service.list() if request.id != first_id]

    assert service.respond(first_id, "allow").allowed is True
    assert (await first).allowed is True
    assert [request.id for request in service.list()] == [second_id]

    result = await second
    assert result.allowed is False
    assert result.reason == "timeout"
    assert service.pending_count == 0

"""
Tests for TaskScope.
"""
import asyncio

import pytest

from ladderbot.orchestrator.task_scope import TaskScope


@pytest.mark.asyncio
async def test_spawn_replaces_same_name():
    scope = TaskScope("t")
    first = scope.spawn("job", asyncio.sleep(10))
    second = scope.spawn("job", asyncio.sleep(10))
    await asyncio.sleep(0)

    assert first.cancelled()
    assert scope.task("job") is second
    scope.cancel_all()
    await scope.join()
    assert scope.names() == []


@pytest.mark.asyncio
async def test_every_survives_errors():
    scope = TaskScope("t")
    calls = []

    async def tick():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("boom")

    scope.every("tick", 0.001, tick, initial_delay=0)
    for _ in range(50):
        await asyncio.sleep(0.001)
        if len(calls) >= 3:
            break
    scope.cancel("tick")
    await scope.join()

    assert len(calls) >= 3
    assert "tick" not in scope


@pytest.mark.asyncio
async def test_cancel_all_skips_calling_task():
    scope = TaskScope("t")
    outcome = {}

    async def exit_sequence():
        scope.cancel_all()
        await scope.join()
        outcome["other_cancelled"] = scope.task("other") is None or scope.task("other").cancelled()
        outcome["self_alive"] = True

    scope.spawn("other", asyncio.sleep(10))
    task = scope.spawn("exit", exit_sequence())
    await task

    assert outcome == {"other_cancelled": True, "self_alive": True}


@pytest.mark.asyncio
async def test_is_active_and_contains():
    scope = TaskScope("t")
    gate = asyncio.Event()
    scope.spawn("wait", gate.wait())
    await asyncio.sleep(0)
    assert scope.is_active("wait")
    assert "wait" in scope

    gate.set()
    for _ in range(3):
        await asyncio.sleep(0)
    assert not scope.is_active("wait")
    assert scope.task("wait") is None

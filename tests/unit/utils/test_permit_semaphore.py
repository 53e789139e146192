"""Unit tests for the bounded permit semaphore and periodic runner."""

from __future__ import annotations

import asyncio

import pytest

from program_deployer.utils.concurrency import (
    BoundedSemaphore,
    PermitTimeoutError,
    run_periodically,
)


def test_limit_must_be_positive() -> None:
    with pytest.raises(ValueError):
        BoundedSemaphore(0)


@pytest.mark.asyncio
async def test_permit_tracks_usage_and_releases() -> None:
    semaphore = BoundedSemaphore(2)

    async with semaphore.permit():
        assert semaphore.snapshot() == {"limit": 2, "in_use": 1, "available": 1, "waiting": 0}

    assert semaphore.in_use == 0
    assert semaphore.available == 2


@pytest.mark.asyncio
async def test_timed_wait_raises_without_taking_a_permit() -> None:
    semaphore = BoundedSemaphore(1)
    await semaphore.acquire()

    with pytest.raises(PermitTimeoutError):
        await semaphore.acquire(timeout_seconds=0.05)

    assert semaphore.in_use == 1
    assert semaphore.snapshot()["waiting"] == 0
    semaphore.release()
    assert semaphore.in_use == 0


@pytest.mark.asyncio
async def test_waiter_proceeds_once_permit_is_released() -> None:
    semaphore = BoundedSemaphore(1)
    order: list[str] = []

    async def holder() -> None:
        async with semaphore.permit():
            order.append("holder")
            await asyncio.sleep(0.05)

    async def waiter() -> None:
        await asyncio.sleep(0.01)
        async with semaphore.permit(timeout_seconds=1.0):
            order.append("waiter")

    await asyncio.gather(holder(), waiter())
    assert order == ["holder", "waiter"]


def test_release_without_acquire_is_rejected() -> None:
    semaphore = BoundedSemaphore(1)
    with pytest.raises(RuntimeError):
        semaphore.release()


@pytest.mark.asyncio
async def test_run_periodically_stops_on_event() -> None:
    stop = asyncio.Event()
    calls: list[int] = []

    async def action() -> None:
        calls.append(1)
        if len(calls) == 3:
            stop.set()

    await asyncio.wait_for(run_periodically(0.01, action, stop_event=stop), timeout=2.0)
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_run_periodically_rejects_non_positive_interval() -> None:
    async def action() -> None:
        return None

    with pytest.raises(ValueError):
        await run_periodically(0, action, stop_event=asyncio.Event())

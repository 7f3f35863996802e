"""Tests for the per-attempt cancellation token."""

import asyncio

import pytest

from tavern_play.cancellation import CancellationToken, GenerationCancelled


def test_cancel_once():
    token = CancellationToken()
    assert not token.cancelled
    assert token.cancel("enough") is True
    assert token.cancel("again") is False
    assert token.cancelled
    assert token.reason == "enough"


def test_raise_if_cancelled():
    token = CancellationToken()
    token.raise_if_cancelled()
    token.cancel()
    with pytest.raises(GenerationCancelled) as exc:
        token.raise_if_cancelled()
    assert exc.value.reason == "Stop generate by user"


async def test_guard_returns_result():
    token = CancellationToken()

    async def work():
        return 42

    assert await token.guard(work()) == 42


async def test_guard_abandons_work_when_fired():
    token = CancellationToken()
    started = asyncio.Event()
    finished = []

    async def slow():
        started.set()
        try:
            await asyncio.sleep(60)
        except asyncio.CancelledError:
            finished.append("cancelled")
            raise

    guarded = asyncio.create_task(token.guard(slow()))
    await started.wait()
    token.cancel("stop now")

    with pytest.raises(GenerationCancelled, match="stop now"):
        await guarded
    assert finished == ["cancelled"]


async def test_guard_refuses_after_fire():
    token = CancellationToken()
    token.cancel()

    async def work():
        return 1

    coro = work()
    with pytest.raises(GenerationCancelled):
        await token.guard(coro)
    coro.close()

"""Tests for the concurrency-limiting request queue."""

import asyncio

import pytest

from portal_docs.request_queue import RequestQueue, get_default_queue


@pytest.mark.asyncio
async def test_never_exceeds_limit():
    queue = RequestQueue(max_concurrent=3)

    async def work(i):
        await asyncio.sleep(0.01)
        return i * 2

    results = await queue.map(range(10), work)

    assert results == [i * 2 for i in range(10)]
    assert queue.peak == 3
    assert queue.active == 0


@pytest.mark.asyncio
async def test_failures_release_slots():
    queue = RequestQueue(max_concurrent=1)

    async def work(i):
        if i == 1:
            raise ValueError("bad item")
        return i

    results = await queue.map([0, 1, 2], work, return_exceptions=True)

    assert results[0] == 0 and results[2] == 2
    assert isinstance(results[1], ValueError)
    assert queue.active == 0


def test_limit_must_be_positive():
    with pytest.raises(ValueError):
        RequestQueue(0)


def test_default_queue_is_shared():
    first = get_default_queue(5)

    assert get_default_queue() is first
    assert first.max_concurrent == 5

import asyncio

import pytest

from transcache.core.single_flight import SingleFlight


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_execution():
    flight = SingleFlight()
    calls = 0
    release = asyncio.Event()

    async def work():
        nonlocal calls
        calls += 1
        await release.wait()
        return "done"

    callers = [asyncio.ensure_future(flight.do("k", work)) for _ in range(5)]
    await asyncio.sleep(0)
    assert flight.in_flight("k")
    release.set()

    assert await asyncio.gather(*callers) == ["done"] * 5
    assert calls == 1


@pytest.mark.asyncio
async def test_key_is_forgotten_after_completion():
    flight = SingleFlight()

    async def work():
        return 1

    assert await flight.do("k", work) == 1
    await asyncio.sleep(0)
    assert not flight.in_flight("k")
    assert len(flight) == 0
    assert await flight.do("k", work) == 1


@pytest.mark.asyncio
async def test_exception_reaches_every_caller():
    flight = SingleFlight()
    release = asyncio.Event()

    async def work():
        await release.wait()
        raise RuntimeError("boom")

    callers = [asyncio.ensure_future(flight.do("k", work)) for _ in range(3)]
    await asyncio.sleep(0)
    release.set()

    results = await asyncio.gather(*callers, return_exceptions=True)
    assert all(isinstance(result, RuntimeError) for result in results)


@pytest.mark.asyncio
async def test_different_keys_run_independently():
    flight = SingleFlight()
    seen = []

    async def work(name):
        seen.append(name)
        return name

    results = await asyncio.gather(flight.do("a", lambda: work("a")), flight.do("b", lambda: work("b")))
    assert results == ["a", "b"]
    assert sorted(seen) == ["a", "b"]


@pytest.mark.asyncio
async def test_cancelled_caller_does_not_cancel_shared_task():
    flight = SingleFlight()
    release = asyncio.Event()

    async def work():
        await release.wait()
        return "ok"

    first = asyncio.ensure_future(flight.do("k", work))
    await asyncio.sleep(0)
    first.cancel()
    second = asyncio.ensure_future(flight.do("k", work))
    await asyncio.sleep(0)
    release.set()

    assert await second == "ok"
    with pytest.raises(asyncio.CancelledError):
        await first


@pytest.mark.asyncio
async def test_wait_returns_after_pending_tasks_finish():
    flight = SingleFlight()
    finished = []

    async def work():
        await asyncio.sleep(0.01)
        finished.append(True)

    flight.spawn("k", work)
    assert flight.pending("k") is not None
    await flight.wait()
    assert finished == [True]
    assert flight.pending("missing") is None

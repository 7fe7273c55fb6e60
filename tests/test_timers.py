import asyncio

import pytest

from wa_rest.services.timers import OneShotTimer


@pytest.mark.asyncio
async def test_fires_once():
    calls = []

    async def callback():
        calls.append(1)

    timer = OneShotTimer(0.01, callback).start()
    assert timer.pending is True

    await asyncio.sleep(0.05)

    assert calls == [1]
    assert timer.fired is True
    assert timer.pending is False


@pytest.mark.asyncio
async def test_cancel_prevents_callback():
    calls = []
    done = []

    async def callback():
        calls.append(1)

    timer = OneShotTimer(0.01, callback, on_done=done.append).start()
    timer.cancel()
    await asyncio.sleep(0.05)

    assert calls == []
    assert timer.cancelled is True
    assert done == [timer]


@pytest.mark.asyncio
async def test_callback_errors_are_contained():
    done = []

    async def callback():
        raise RuntimeError("boom")

    timer = OneShotTimer(0.01, callback, on_done=done.append).start()
    await asyncio.sleep(0.05)

    assert timer.fired is True
    assert done == [timer]

import asyncio

import pytest

from broadcast_hub.services.negotiation.events import EventEmitter


@pytest.mark.asyncio
async def test_sync_and_async_listeners():
    emitter = EventEmitter()
    seen = []

    async def async_listener(value):
        seen.append(("async", value))

    emitter.on("data", lambda value: seen.append(("sync", value)))
    emitter.on("data", async_listener)
    await emitter.emit("data", 1)

    assert seen == [("sync", 1), ("async", 1)]


@pytest.mark.asyncio
async def test_once_and_off():
    emitter = EventEmitter()
    seen = []
    listener = emitter.on("tick", lambda: seen.append("on"))
    emitter.once("tick", lambda: seen.append("once"))

    await emitter.emit("tick")
    emitter.off("tick", listener)
    await emitter.emit("tick")

    assert seen == ["on", "once"]
    assert emitter.listener_count("tick") == 0


@pytest.mark.asyncio
async def test_decorator_registration():
    emitter = EventEmitter()
    seen = []

    @emitter.on("tick")
    def handler():
        seen.append("tick")

    await emitter.emit("tick")
    assert seen == ["tick"]


def test_rejects_non_callable():
    with pytest.raises(TypeError):
        EventEmitter().on("tick", "not a function")


@pytest.mark.asyncio
async def test_ready_latch_fires_late_subscribers():
    emitter = EventEmitter()
    seen = []
    emitter.on("ready", lambda: seen.append("early"))
    emitter.ready()
    emitter.on("ready", lambda: seen.append("late"))

    async def late_async():
        seen.append("late-async")

    emitter.on("ready", late_async)
    await asyncio.sleep(0)

    assert emitter.is_ready
    assert seen == ["early", "late", "late-async"]


@pytest.mark.asyncio
async def test_remove_all_listeners():
    emitter = EventEmitter()
    seen = []
    emitter.on("a", lambda: seen.append("a"))
    emitter.on("b", lambda: seen.append("b"))

    emitter.remove_all_listeners("a")
    await emitter.emit("a")
    await emitter.emit("b")
    assert seen == ["b"]

    emitter.remove_all_listeners()
    await emitter.emit("b")
    assert seen == ["b"]
    assert emitter.listener_count("b") == 0

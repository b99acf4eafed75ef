import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

READY = "ready"


class EventEmitter:
    """Minimal async event emitter.

    Listeners may be plain functions or coroutine functions; `emit` awaits
    whatever a listener returns when it is awaitable. The "ready" event is a
    latch: once `ready()` has fired, late subscribers are invoked immediately.
    """

    def __init__(self):
        self._events: Dict[str, List[tuple[Callable, bool]]] = {}
        self._ready = False
        self._pending: set[asyncio.Future] = set()

    @property
    def is_ready(self) -> bool:
        return self._ready

    def on(self, event: str, fn: Callable | None = None, once: bool = False):
        # Decorator form: @emitter.on("event")
        if fn is None:
            def decorator(f: Callable) -> Callable:
                self.on(event, f, once)
                return f
            return decorator

        if not callable(fn):
            raise TypeError(f"Invalid listener for {event!r}: must be callable")
        if event == READY and self._ready:
            self._schedule(fn())
            return fn
        self._events.setdefault(event, []).append((fn, once))
        return fn

    def once(self, event: str, fn: Callable) -> Callable:
        return self.on(event, fn, once=True)

    def off(self, event: str, fn: Callable) -> None:
        listeners = self._events.get(event)
        if not listeners:
            return
        self._events[event] = [(f, o) for f, o in listeners if f is not fn]

    def remove_all_listeners(self, event: str | None = None) -> None:
        if event is None:
            self._events.clear()
        else:
            self._events.pop(event, None)

    def listener_count(self, event: str) -> int:
        return len(self._events.get(event, []))

    async def emit(self, event: str, *args: Any) -> None:
        for fn, once in list(self._events.get(event, [])):
            if once:
                self.off(event, fn)
            result = fn(*args)
            if inspect.isawaitable(result):
                await result

    def ready(self) -> None:
        self._ready = True
        for fn, _ in self._events.pop(READY, []):
            self._schedule(fn())

    def _schedule(self, result: Any) -> None:
        if not inspect.isawaitable(result):
            return
        future = asyncio.ensure_future(result)
        self._pending.add(future)
        future.add_done_callback(self._pending.discard)

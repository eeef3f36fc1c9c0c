from __future__ import annotations

import asyncio
import itertools
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

T = TypeVar("T")

FrameCallback = Callable[[float], None]


def ease_in_out_quad(t: float) -> float:
    t = max(0.0, min(1.0, t))
    return 2 * t * t if t < 0.5 else 1 - ((-2 * t + 2) ** 2) / 2


def lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t


class FrameClock:
    """Shared per-frame ticker.

    Frame callbacks are called on every `tick()` with the elapsed delta in
    milliseconds. Callbacks may remove themselves (or others) while a tick
    is running; removed callbacks are not called again in that tick.
    """

    def __init__(self) -> None:
        self._callbacks: dict[int, FrameCallback] = {}
        self._handles = itertools.count(1)
        self.elapsed_ms: float = 0.0

    @property
    def active(self) -> bool:
        return bool(self._callbacks)

    def add(self, callback: FrameCallback) -> int:
        handle = next(self._handles)
        self._callbacks[handle] = callback
        return handle

    def remove(self, handle: int) -> None:
        self._callbacks.pop(handle, None)

    def tick(self, delta_ms: float) -> None:
        self.elapsed_ms += delta_ms
        for handle, callback in list(self._callbacks.items()):
            if handle in self._callbacks:
                callback(delta_ms)

    def every(self, interval_ms: float, fn: Callable[[], None]) -> "Periodic":
        return Periodic(self, interval_ms, fn)


class Periodic:
    """Repeating frame-driven timer; must be cancelled by its owner."""

    def __init__(self, clock: FrameClock, interval_ms: float, fn: Callable[[], None]) -> None:
        if interval_ms <= 0:
            raise ValueError("interval_ms must be positive")
        self._clock = clock
        self._interval = interval_ms
        self._fn = fn
        self._accumulated = 0.0
        self._handle: int | None = clock.add(self._step)

    @property
    def active(self) -> bool:
        return self._handle is not None

    def _step(self, delta_ms: float) -> None:
        self._accumulated += delta_ms
        while self._handle is not None and self._accumulated >= self._interval:
            self._accumulated -= self._interval
            self._fn()

    def cancel(self) -> None:
        if self._handle is not None:
            self._clock.remove(self._handle)
            self._handle = None


class ManualClock(FrameClock):
    """Clock advanced explicitly by the caller, for deterministic tests and replays.

    `settle()` yields to the event loop so tasks woken by a tick get to run
    (and register their next frame callbacks) before the following tick.
    """

    def __init__(self, *, frame_ms: float = 1000 / 60, settle_iterations: int = 10) -> None:
        super().__init__()
        self.frame_ms = frame_ms
        self.settle_iterations = settle_iterations

    async def settle(self) -> None:
        for _ in range(self.settle_iterations):
            await asyncio.sleep(0)

    async def advance(self, ms: float) -> None:
        remaining = ms
        await self.settle()
        while remaining > 0:
            step = min(self.frame_ms, remaining)
            self.tick(step)
            remaining -= step
            await self.settle()

    async def run_until(self, aw: Awaitable[T], *, max_ms: float = 600_000) -> T:
        """Tick frames until `aw` completes and return its result."""

        task = asyncio.ensure_future(aw)
        deadline = self.elapsed_ms + max_ms
        await self.settle()
        while not task.done():
            if self.elapsed_ms >= deadline:
                task.cancel()
                raise TimeoutError(f"awaitable still pending after {max_ms}ms of clock time")
            self.tick(self.frame_ms)
            await self.settle()
        return task.result()


class RealtimeClock(FrameClock):
    """Clock driven by the running event loop at `fps`.

    The driver task only runs while frame callbacks are registered, so an
    idle table costs nothing.
    """

    def __init__(self, *, fps: int = 60) -> None:
        super().__init__()
        self._interval_s = 1.0 / fps
        self._driver: asyncio.Task[None] | None = None

    def add(self, callback: FrameCallback) -> int:
        handle = super().add(callback)
        if self._driver is None or self._driver.done():
            self._driver = asyncio.get_running_loop().create_task(self._run())
        return handle

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        last = loop.time()
        while self._callbacks:
            await asyncio.sleep(self._interval_s)
            now = loop.time()
            self.tick((now - last) * 1000)
            last = now

    async def aclose(self) -> None:
        self._callbacks.clear()
        if self._driver is not None and not self._driver.done():
            self._driver.cancel()
            try:
                await self._driver
            except asyncio.CancelledError:
                pass
        self._driver = None


async def tween(
    clock: FrameClock,
    target: Any,
    duration_ms: float,
    *,
    easing: Callable[[float], float] = ease_in_out_quad,
    **props: float,
) -> None:
    """Interpolate `target`'s attributes to `props` over `duration_ms`.

    Resolves on the frame where elapsed >= duration; a non-positive duration
    snaps to the targets immediately.
    """

    if duration_ms <= 0:
        for key, value in props.items():
            setattr(target, key, value)
        return

    start = {key: getattr(target, key) for key in props}
    done: asyncio.Future[None] = asyncio.get_running_loop().create_future()
    elapsed = 0.0
    handle = 0

    def step(delta_ms: float) -> None:
        nonlocal elapsed
        elapsed += delta_ms
        progress = min(elapsed / duration_ms, 1.0)
        eased = easing(progress)
        for key, value in props.items():
            setattr(target, key, value if progress >= 1.0 else lerp(start[key], value, eased))
        if progress >= 1.0:
            clock.remove(handle)
            if not done.done():
                done.set_result(None)

    handle = clock.add(step)
    try:
        await done
    finally:
        clock.remove(handle)


async def pause(clock: FrameClock, duration_ms: float) -> None:
    """Suspend for `duration_ms` of clock time."""

    await tween(clock, None, duration_ms)

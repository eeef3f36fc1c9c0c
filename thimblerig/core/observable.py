from __future__ import annotations

import itertools
import logging
from collections.abc import Callable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Subscription:
    """Handle returned by `Observable.subscribe`; calling it unsubscribes."""

    __slots__ = ("_observable", "handle")

    def __init__(self, observable: "Observable[T]", handle: int) -> None:
        self._observable = observable
        self.handle = handle

    def __call__(self) -> None:
        self._observable.unsubscribe(self.handle)

    @property
    def active(self) -> bool:
        return self._observable.is_subscribed(self.handle)


class Observable(Generic[T]):
    """Notify-on-mutation channel delivering a value to each subscriber.

    Contract:
      - subscribers are called in subscription order.
      - subscriptions are keyed by handle, so the same callable may be
        subscribed twice and removed independently.
      - the subscriber map is replaced (never mutated) on subscribe and
        unsubscribe. A running pass keeps iterating the map it started with:
        callbacks removed mid-pass still fire for that pass, callbacks added
        mid-pass fire from the next pass.

    `notify()` publishes the current snapshot (from the `snapshot` factory);
    `publish(value)` delivers an explicit payload, which is how event
    channels without a snapshot use it.
    """

    def __init__(self, snapshot: Callable[[], T] | None = None, *, name: str = "observable") -> None:
        self._snapshot = snapshot
        self._name = name
        self._subscribers: dict[int, Callable[[T], None]] = {}
        self._handles = itertools.count(1)

    def __len__(self) -> int:
        return len(self._subscribers)

    def subscribe(self, callback: Callable[[T], None]) -> Subscription:
        handle = next(self._handles)
        self._subscribers = {**self._subscribers, handle: callback}
        return Subscription(self, handle)

    def unsubscribe(self, handle: int) -> None:
        if handle not in self._subscribers:
            return
        self._subscribers = {h: cb for h, cb in self._subscribers.items() if h != handle}

    def is_subscribed(self, handle: int) -> bool:
        return handle in self._subscribers

    def notify(self) -> None:
        if self._snapshot is None:
            raise TypeError(f"{self._name} has no snapshot factory; use publish()")
        if not self._subscribers:
            return
        self.publish(self._snapshot())

    def publish(self, value: T) -> None:
        subscribers = self._subscribers
        for handle, callback in subscribers.items():
            try:
                callback(value)
            except Exception:
                # One broken renderer must not starve the others.
                logger.exception("%s subscriber %d failed", self._name, handle)

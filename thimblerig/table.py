from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Coroutine
from datetime import UTC, datetime
from typing import Any, TypeVar
from uuid import UUID, uuid4

from thimblerig.config import Settings
from thimblerig.shuffle.models import SelectionResult, ShufflePhase, ShuffleSnapshot
from thimblerig.shuffle.motion import FrameClock, RealtimeClock
from thimblerig.shuffle.session import ShuffleSession
from thimblerig.wagering.models import BetRecord, WagerSnapshot
from thimblerig.wagering.panel import BettingPanel
from thimblerig.wagering.store import WagerStore
from thimblerig.websocket_hub import TableWebSocketHub

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TableClosedError(RuntimeError):
    """Raised to callers waiting on a round when the table is closed under them."""

    def __init__(self, table_id: str) -> None:
        super().__init__(f"Table {table_id} was closed")
        self.table_id = table_id


def _now() -> datetime:
    return datetime.now(tz=UTC)


class Table:
    """One player's seat: a wager store and a shuffle session side by side.

    The two machines never share state. The table only forwards their
    notifications to the WebSocket hub and turns panel callbacks
    (`bet_placed`, `balance_refresh_requested`) into hub events, so the
    backend that owns money can answer through the wager feed endpoints.
    """

    def __init__(
        self,
        *,
        settings: Settings,
        hub: TableWebSocketHub | None = None,
        seed: int | None = None,
        clock: FrameClock | None = None,
    ) -> None:
        self.table_id: UUID = uuid4()
        self.created_at = _now()
        self.hub = hub

        self.seed = seed if seed is not None else random.SystemRandom().randint(1, 2**31 - 1)
        self.clock = clock if clock is not None else RealtimeClock(fps=settings.shuffle.fps)

        self.wager = WagerStore(config=settings.wager)
        self.panel = BettingPanel(
            store=self.wager,
            on_place_bet=self._on_place_bet,
            on_refresh_balance=self._on_refresh_balance,
        )
        self.shuffle = ShuffleSession(
            config=settings.shuffle,
            layout=settings.layout,
            clock=self.clock,
            rng=random.Random(self.seed),
        )

        self.round_task: asyncio.Task[bool] | None = None
        self._engine_tasks: set[asyncio.Task[Any]] = set()
        self.closed = False
        self._pending: set[asyncio.Task[None]] = set()

        self.wager.subscribe(self._on_wager_changed)
        self.shuffle.subscribe(self._on_shuffle_changed)

    @property
    def id(self) -> str:
        return str(self.table_id)

    # ========== Rounds ==========

    @property
    def round_running(self) -> bool:
        return self.round_task is not None and not self.round_task.done()

    def _spawn(self, coro: Coroutine[Any, Any, T]) -> asyncio.Task[T]:
        """Run an engine coroutine as a task the table owns, so `close()` can cancel it."""

        if self.closed:
            coro.close()
            raise TableClosedError(self.id)
        task = asyncio.get_running_loop().create_task(coro)
        self._engine_tasks.add(task)
        task.add_done_callback(self._engine_tasks.discard)
        return task

    async def _join(self, task: asyncio.Task[T]) -> T:
        # asyncio.wait leaves the task running if this caller is cancelled.
        await asyncio.wait({task})
        if task.cancelled():
            raise TableClosedError(self.id)
        return task.result()

    def start_round_in_background(self) -> bool:
        """Kick off a round without waiting for the shuffle to finish.

        Returns False when the session is busy (not idle, or a round task is
        already scheduled).
        """

        if self.round_running or self.shuffle.phase != ShufflePhase.idle:
            return False
        task = self._spawn(self.shuffle.start_round())
        task.add_done_callback(self._on_round_done)
        self.round_task = task
        return True

    async def start_round(self) -> bool:
        if self.round_running or self.shuffle.phase != ShufflePhase.idle:
            return False
        task = self._spawn(self.shuffle.start_round())
        self.round_task = task
        return await self._join(task)

    async def select_slot(self, slot: int) -> SelectionResult | None:
        return await self._join(self._spawn(self.shuffle.select_slot(slot)))

    def _on_round_done(self, task: asyncio.Task[bool]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Round task for table %s failed", self.id, exc_info=exc)

    async def close(self) -> None:
        """Cancel every running engine task, stop the clock and drop the sockets.

        Callers waiting in `start_round()` / `select_slot()` get TableClosedError.
        """

        self.closed = True
        tasks = list(self._engine_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if isinstance(self.clock, RealtimeClock):
            await self.clock.aclose()
        if self.hub is not None:
            await self.hub.close_table(self.id)

    # ========== Hub bridge ==========

    def _schedule_broadcast(self, payload: dict[str, object]) -> None:
        if self.hub is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop; dropping %s broadcast for table %s", payload.get("type"), self.id)
            return
        task = loop.create_task(self.hub.broadcast(self.id, payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def _on_wager_changed(self, snapshot: WagerSnapshot) -> None:
        self._schedule_broadcast({"type": "wager_updated", "table_id": self.id, "wager": snapshot.model_dump(mode="json")})

    def _on_shuffle_changed(self, snapshot: ShuffleSnapshot) -> None:
        self._schedule_broadcast({"type": "shuffle_updated", "table_id": self.id, "shuffle": snapshot.model_dump(mode="json")})

    def _on_place_bet(self, record: BetRecord) -> None:
        logger.info("Bet placed at table %s: %s %s", self.id, record.bet, record.currency)
        self._schedule_broadcast({"type": "bet_placed", "table_id": self.id, "record": record.model_dump(mode="json")})

    def _on_refresh_balance(self) -> None:
        self._schedule_broadcast({"type": "balance_refresh_requested", "table_id": self.id})


class TableRegistry:
    """In-memory table lookup for the HTTP layer."""

    def __init__(self, *, settings: Settings, hub: TableWebSocketHub | None = None) -> None:
        self.settings = settings
        self.hub = hub
        self._tables: dict[UUID, Table] = {}

    def __len__(self) -> int:
        return len(self._tables)

    def create_table(self, *, seed: int | None = None, clock: FrameClock | None = None) -> Table:
        table = Table(settings=self.settings, hub=self.hub, seed=seed, clock=clock)
        self._tables[table.table_id] = table
        logger.info("Table %s created", table.id)
        return table

    def get_table(self, table_id: UUID) -> Table | None:
        return self._tables.get(table_id)

    async def remove_table(self, table_id: UUID) -> bool:
        table = self._tables.pop(table_id, None)
        if table is None:
            return False
        await table.close()
        logger.info("Table %s closed", table.id)
        return True

    def list_tables(self) -> list[Table]:
        # dicts keep insertion order, so reversing gives newest first
        return list(reversed(self._tables.values()))

    async def close(self) -> None:
        for table in list(self._tables.values()):
            await table.close()
        self._tables.clear()
